"""Tests for request-scoped temp files."""

from __future__ import annotations

import os

import pytest

from chatproxy.utils.body import UploadedFilePart
from chatproxy.utils.tempfiles import temp_file, unique_temp_path, upload_source


def test_temp_file_removed_after_success(tmp_path):
    directory = str(tmp_path / "tmp")
    with temp_file(directory, "a.txt", b"hello") as handle:
        assert os.path.exists(handle.name)
        assert handle.read() == b"hello"
    assert os.listdir(directory) == []


def test_temp_file_removed_after_error(tmp_path):
    directory = str(tmp_path / "tmp")
    with pytest.raises(RuntimeError):
        with temp_file(directory, "a.txt", b"hello"):
            raise RuntimeError("upstream failed")
    assert os.listdir(directory) == []


def test_cleanup_failure_is_reported_not_raised(tmp_path, monkeypatch):
    reported = []

    def refuse(path):
        raise PermissionError("read-only")

    directory = str(tmp_path / "tmp")
    with temp_file(directory, "a.txt", b"x", on_cleanup_error=reported.append):
        monkeypatch.setattr(os, "unlink", refuse)
    monkeypatch.undo()
    assert len(reported) == 1
    assert "read-only" in reported[0]


def test_unique_paths_for_same_name(tmp_path):
    first = unique_temp_path(str(tmp_path), "../same.bin")
    second = unique_temp_path(str(tmp_path), "../same.bin")
    assert first != second
    assert os.path.dirname(first) == str(tmp_path)
    assert first.endswith("-same.bin")


def test_upload_source_inline_for_small_parts(settings):
    part = UploadedFilePart(field_name="file", filename="a.txt", mime_type="text/plain", data=b"abc")
    with upload_source(part, settings) as source:
        assert source == ("a.txt", b"abc", "text/plain")
    assert not os.path.exists(settings.upload_tmp_dir)


def test_upload_source_spills_large_parts(spill_settings):
    part = UploadedFilePart(field_name="file", filename="../big.bin", data=b"0" * 64)
    with upload_source(part, spill_settings) as (name, handle, mime):
        assert name == "big.bin"
        assert mime == "application/octet-stream"
        assert os.path.dirname(handle.name) == spill_settings.upload_tmp_dir
        assert handle.read() == b"0" * 64
    assert os.listdir(spill_settings.upload_tmp_dir) == []

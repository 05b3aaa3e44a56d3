"""Tests for the request body readers."""

from __future__ import annotations

import io

import pytest
from werkzeug.datastructures import MultiDict

from chatproxy.api.errors import BodyReadError, ValidationFailure
from chatproxy.utils.body import MultipartBody, UploadedFilePart, read_json_body, read_multipart


def test_fields_keep_first_value_and_getlist_merges_bracket_names():
    body = MultipartBody(
        form=MultiDict(
            [
                ("model", "whisper-1"),
                ("model", "ignored"),
                ("timestamp_granularities", "word"),
                ("timestamp_granularities[]", "segment"),
            ]
        ),
        files=[UploadedFilePart(field_name="file", data=b"abc"), UploadedFilePart(field_name="extra")],
    )
    assert body.fields == {
        "model": "whisper-1",
        "timestamp_granularities": "word",
        "timestamp_granularities[]": "segment",
    }
    assert body.getlist("timestamp_granularities[]") == ["word", "segment"]
    assert [part.size for part in body.files_for("file")] == [3]
    assert body.files[1].filename == "file"
    assert body.files[1].mime_type == "application/octet-stream"


def test_read_multipart_collects_fields_and_files(app):
    data = {
        "security_key": "k",
        "file": [(io.BytesIO(b"one"), "a.txt", "text/plain"), (io.BytesIO(b"two"), "b.bin")],
    }
    with app.test_request_context("/files", method="POST", data=data, content_type="multipart/form-data"):
        body = read_multipart()
    assert body.fields == {"security_key": "k"}
    assert [(part.filename, part.data) for part in body.files] == [("a.txt", b"one"), ("b.bin", b"two")]


def test_read_multipart_rejects_missing_boundary(app):
    with app.test_request_context("/files", method="POST", data=b"garbage", content_type="multipart/form-data"):
        with pytest.raises(BodyReadError):
            read_multipart()


@pytest.mark.parametrize("raw", [b"", b"[1, 2]", b"{oops", b"\xff\xfe"])
def test_read_json_body_rejects_non_objects(app, raw):
    with app.test_request_context("/chat", method="POST", data=raw, content_type="application/json"):
        with pytest.raises(ValidationFailure):
            read_json_body()

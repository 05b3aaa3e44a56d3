"""Request-scoped temporary files for streaming uploads to the upstream API."""
import itertools
import os
import time
from contextlib import contextmanager

from .logging import log_event
from .payload import to_safe_filename

_sequence = itertools.count(1)


def unique_temp_path(directory: str, name_hint: str) -> str:
    """Path made unique by a millisecond timestamp and a process-wide sequence number."""
    safe_name = to_safe_filename(name_hint, "upload.bin")
    return os.path.join(directory, f"{int(time.time() * 1000)}-{next(_sequence)}-{safe_name}")


@contextmanager
def temp_file(directory: str, name_hint: str, data: bytes, on_cleanup_error=None):
    """Write ``data`` to a fresh temp file and yield it opened for reading.

    The file is removed on every exit path. A failed removal is logged and
    reported through ``on_cleanup_error`` but never raised.
    """
    os.makedirs(directory, exist_ok=True)
    path = unique_temp_path(directory, name_hint)
    try:
        with open(path, "wb") as handle:
            handle.write(data)
        with open(path, "rb") as handle:
            yield handle
    finally:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            log_event(40, "temp_file_cleanup_failed", path=path, error=str(exc))
            if on_cleanup_error is not None:
                on_cleanup_error(f"Failed to delete temp file {os.path.basename(path)}: {exc}")


@contextmanager
def upload_source(part, settings, on_cleanup_error=None):
    """Yield the ``file`` argument for an SDK upload call.

    Small parts go upstream straight from memory; larger ones are spooled to
    a temp file so the SDK streams them from disk.
    """
    filename = to_safe_filename(part.filename, "file")
    if part.size <= settings.inline_upload_max_bytes:
        yield (filename, part.data, part.mime_type)
        return
    with temp_file(settings.upload_tmp_dir, filename, part.data, on_cleanup_error) as handle:
        yield (filename, handle, part.mime_type)

"""Request body readers for JSON and multipart/form-data requests."""
import json
from dataclasses import dataclass, field

from flask import request
from werkzeug.datastructures import MultiDict
from werkzeug.formparser import FormDataParser

from ..api.errors import BodyReadError, ValidationFailure

CHUNK_SIZE = 1024 * 1024
DEFAULT_FILENAME = "file"
DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass
class UploadedFilePart:
    field_name: str
    filename: str = DEFAULT_FILENAME
    mime_type: str = DEFAULT_MIME_TYPE
    data: bytes = b""

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class MultipartBody:
    form: MultiDict = field(default_factory=MultiDict)
    files: list = field(default_factory=list)

    @property
    def fields(self) -> dict:
        """First value of every text field."""
        return {key: self.form.get(key) for key in self.form.keys()}

    def get(self, name, default=None):
        return self.form.get(name, default)

    def getlist(self, name) -> list:
        """Every occurrence of a repeated field; ``name`` and ``name[]`` are merged."""
        base = name[:-2] if name.endswith("[]") else name
        return self.form.getlist(base) + self.form.getlist(f"{base}[]")

    def files_for(self, field_name) -> list:
        return [part for part in self.files if part.field_name == field_name]


def is_multipart() -> bool:
    return request.mimetype == "multipart/form-data"


def read_body() -> str:
    """Return the whole request body as text."""
    try:
        return request.get_data(cache=True).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ValidationFailure("Request body is not valid UTF-8") from exc


def read_json_body() -> dict:
    text = read_body()
    if not text.strip():
        raise ValidationFailure("Request body is empty")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValidationFailure("Invalid JSON body") from exc
    if not isinstance(data, dict):
        raise ValidationFailure("JSON body must be an object")
    return data


def _buffer_part(field_name, storage) -> UploadedFilePart:
    buffer = bytearray()
    while True:
        chunk = storage.stream.read(CHUNK_SIZE)
        if not chunk:
            break
        buffer.extend(chunk)
    return UploadedFilePart(
        field_name=field_name,
        filename=storage.filename or DEFAULT_FILENAME,
        mime_type=storage.mimetype or DEFAULT_MIME_TYPE,
        data=bytes(buffer),
    )


def read_multipart() -> MultipartBody:
    """Parse a multipart/form-data body into text fields and buffered file parts.

    Werkzeug's request-level form parsing silently drops malformed bodies, so
    a strict parser is used here and any parse failure is surfaced as a
    ``BodyReadError``.
    """
    parser = FormDataParser(
        max_content_length=request.max_content_length,
        cls=MultiDict,
        silent=False,
    )
    try:
        _, form, files = parser.parse(
            request.stream,
            request.mimetype,
            request.content_length,
            request.mimetype_params,
        )
    except ValueError as exc:
        raise BodyReadError(f"Malformed multipart body: {exc}") from exc

    parts = []
    for field_name, storage in files.items(multi=True):
        try:
            parts.append(_buffer_part(field_name, storage))
        finally:
            storage.close()
    return MultipartBody(form=form, files=parts)

"""Request payload shaping: control fields, attachments and defaults.

Inbound payloads are loosely typed. A payload is split into the control
fields consumed by the gateway and a pass-through mapping forwarded to the
upstream API as-is. Attachments (inline images and uploaded file ids) are
merged into either the chat ``messages`` list or the responses ``input``
value without touching the text that is already there.
"""
import copy
import json
import os
import re

from pydantic import ValidationError

from ..api.errors import AttachmentError, ValidationFailure
from ..api.schemas import ControlFields, ImageSpec

CHAT_STYLE = "chat"
RESPONSES_STYLE = "responses"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_TEXT_PART_TYPES = ("text", "input_text")


def split_control_fields(data: dict):
    """Return ``(ControlFields, passthrough)`` for an inbound JSON payload."""
    control_values = {key: data[key] for key in ControlFields.model_fields if key in data}
    try:
        control = ControlFields.model_validate(control_values)
    except ValidationError as exc:
        raise ValidationFailure(str(exc)) from exc
    passthrough = {key: value for key, value in data.items() if key not in ControlFields.model_fields}
    return control, passthrough


def parse_image_field(value):
    """Accept an image spec given as a dict, a JSON string or a bare URL."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("{"):
            try:
                value = json.loads(text)
            except json.JSONDecodeError as exc:
                raise ValidationFailure("image must be a JSON object or a URL", param="image") from exc
        else:
            value = {"url": text}
    try:
        return ImageSpec.model_validate(value)
    except ValidationError as exc:
        raise ValidationFailure(str(exc), param="image") from exc


def image_url_value(spec: ImageSpec) -> str:
    if spec.url:
        return spec.url
    encoded = spec.base64 or spec.data
    if not encoded:
        raise AttachmentError("image requires either a url or base64 data", param="image")
    if encoded.startswith("data:"):
        return encoded
    return f"data:{spec.mime_type};base64,{encoded}"


def image_part(spec: ImageSpec, style: str) -> dict:
    url = image_url_value(spec)
    if style == CHAT_STYLE:
        image_url = {"url": url}
        if spec.detail:
            image_url["detail"] = spec.detail
        return {"type": "image_url", "image_url": image_url}
    part = {"type": "input_image", "image_url": url}
    if spec.detail:
        part["detail"] = spec.detail
    return part


def file_part(file_id: str, style: str) -> dict:
    if style == CHAT_STYLE:
        return {"type": "file", "file": {"file_id": file_id}}
    return {"type": "input_file", "file_id": file_id}


def text_part(text: str, style: str) -> dict:
    return {"type": "text" if style == CHAT_STYLE else "input_text", "text": text}


def build_attachments(image=None, file_ids=(), style=RESPONSES_STYLE) -> list:
    attachments = []
    if image is not None:
        attachments.append(image_part(image, style))
    attachments.extend(file_part(file_id, style) for file_id in file_ids)
    return attachments


def _user_entry(text, attachments, style) -> dict:
    content = []
    if isinstance(text, str) and text.strip():
        content.append(text_part(text, style))
    content.extend(attachments)
    return {"role": "user", "content": content}


def build_input_with_files(text, file_ids) -> list:
    """One user entry: optional text part, then one file reference per id."""
    return [_user_entry(text, [file_part(file_id, RESPONSES_STYLE) for file_id in file_ids], RESPONSES_STYLE)]


def _has_text(content: list) -> bool:
    return any(isinstance(part, dict) and part.get("type") in _TEXT_PART_TYPES for part in content)


def _find_entry(items: list, key: str):
    """Index of the entry that receives attachments, or None.

    For chat ``messages`` that is the latest user message (string or list
    content); for responses ``input`` the first user entry carrying a content
    list.
    """
    if key == "messages":
        for index in range(len(items) - 1, -1, -1):
            item = items[index]
            if isinstance(item, dict) and item.get("role") == "user" and isinstance(item.get("content"), (str, list)):
                return index
        return None
    for index, item in enumerate(items):
        if isinstance(item, dict) and item.get("role") == "user" and isinstance(item.get("content"), list):
            return index
    return None


def _merge_into_entry(entry: dict, attachments: list, text, style) -> dict:
    merged = dict(entry)
    content = merged.get("content")
    if isinstance(content, str):
        content = [text_part(content, style)] if content else []
    else:
        content = list(content)
    # Explicit text wins; convenience text only fills an entry that has none.
    if isinstance(text, str) and text.strip() and not _has_text(content):
        content.insert(0, text_part(text, style))
    content.extend(attachments)
    merged["content"] = content
    return merged


def merge_attachments(payload: dict, attachments: list, *, key: str, text=None) -> dict:
    """Return a copy of ``payload`` with ``attachments`` merged into ``payload[key]``.

    The target is one of: missing, plain text, or a structured list. Existing
    content is never dropped or reordered.
    """
    if not attachments:
        return payload
    style = CHAT_STYLE if key == "messages" else RESPONSES_STYLE
    result = dict(payload)
    target = payload.get(key)

    if target is None:
        result[key] = [_user_entry(text, attachments, style)]
    elif isinstance(target, str):
        result[key] = [_user_entry(target if target.strip() else text, attachments, style)]
    elif isinstance(target, list):
        items = copy.deepcopy(target)
        index = _find_entry(items, key)
        if index is None:
            items.append(_user_entry(text, attachments, style))
        else:
            items[index] = _merge_into_entry(items[index], attachments, text, style)
        result[key] = items
    else:
        raise ValidationFailure(f"{key} must be a string or a list", param=key)
    return result


def seed_text(payload: dict, key: str, text) -> dict:
    """Fill ``payload[key]`` from convenience text only when it is absent."""
    if payload.get(key) is not None or not isinstance(text, str) or not text.strip():
        return payload
    result = dict(payload)
    result[key] = text if key == "input" else [{"role": "user", "content": text}]
    return result


def apply_default_model(payload: dict, model: str) -> dict:
    if payload.get("model"):
        return payload
    result = dict(payload)
    result["model"] = model
    return result


def to_safe_filename(name, fallback) -> str:
    """Last path segment of ``name`` (or ``fallback``) restricted to ``[A-Za-z0-9._-]``."""
    candidate = name if isinstance(name, str) and name.strip() else fallback
    if not isinstance(candidate, str) or not candidate.strip():
        candidate = "file"
    segment = os.path.basename(candidate.replace("\\", "/").rstrip("/"))
    safe = _UNSAFE_FILENAME_CHARS.sub("_", segment)
    if not safe.strip("."):
        safe = "_" + safe if safe else "file"
    return safe

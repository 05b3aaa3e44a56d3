"""Route handlers for chatproxy endpoints."""
import json
import time
from datetime import datetime, timezone

from flask import Response, g, jsonify, request, stream_with_context
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from .auth import authorize_diagnostics, require_secret
from .errors import (
    AuthorizationFailure,
    RateLimited,
    ValidationFailure,
    describe_failure,
    is_internal,
    translate_error,
)
from .schemas import EmbeddingsRequest, SimpleChatRequest
from .streaming import stream_responses_sse
from ..utils.body import is_multipart, read_json_body, read_multipart
from ..utils.http import error_response, render_translated
from ..utils.logging import log_event, redact_payload, truncate
from ..utils.payload import (
    CHAT_STYLE,
    RESPONSES_STYLE,
    apply_default_model,
    build_attachments,
    merge_attachments,
    parse_image_field,
    seed_text,
    split_control_fields,
)
from ..utils.tempfiles import upload_source

GREETING = "<h1>Hello, World!</h1>"
JSON_SCHEMA_PROMPT = (
    "You are a machine that only returns and replies with valid, iterable RFC8259 "
    "compliant JSON in your responses according to the schema: {schema}."
)
# Convenience text fields; they only seed the message when the payload has none.
TEXT_FIELDS = ("input_text", "prompt", "message")
# Multipart form fields forwarded to responses.create, with their coercions.
FORM_RESPONSE_FIELDS = {
    "model": str,
    "instructions": str,
    "previous_response_id": str,
    "temperature": float,
    "top_p": float,
    "max_output_tokens": int,
}
CONTROL_FORM_FIELDS = ("openai_api_key", "project", "organization", "timeout", "image")
TEXT_TRANSCRIPT_FORMATS = ("text", "srt", "vtt")


def _to_dict(obj):
    if obj is None:
        return None
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if isinstance(obj, dict):
        return obj
    return {"result": obj}


def _response_excerpt(result) -> str:
    if result is None:
        return "ok"
    if isinstance(result, str):
        return result
    text = getattr(result, "output_text", None)
    if not text:
        choices = getattr(result, "choices", None)
        if choices:
            message = getattr(choices[0], "message", None)
            text = getattr(message, "content", None)
    if not text:
        text = getattr(result, "text", None)
    if not text:
        text = getattr(result, "id", None) or type(result).__name__
    return str(text)


def _pop_convenience_text(payload: dict):
    """Remove the convenience text fields from ``payload`` and return the first non-empty one.

    ``prompt`` is left alone when it is not a string: the responses API uses
    it for prompt templates.
    """
    text = None
    for name in TEXT_FIELDS:
        value = payload.get(name)
        if name == "prompt" and value is not None and not isinstance(value, str):
            continue
        payload.pop(name, None)
        if text is None and isinstance(value, str) and value.strip():
            text = value
    return text


def _normalize_messages(payload: dict) -> dict:
    """Wrap a plain-text ``messages`` value in a single user message."""
    messages = payload.get("messages")
    if not isinstance(messages, str):
        return payload
    result = dict(payload)
    result["messages"] = [{"role": "user", "content": messages}] if messages.strip() else []
    return result


def _parse_form_value(name, raw, cast):
    try:
        return cast(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationFailure(f"Invalid value for {name}", param=name) from exc


def _control_from_mapping(mapping):
    values = {name: mapping.get(name) for name in CONTROL_FORM_FIELDS if mapping.get(name) not in (None, "")}
    control, _ = split_control_fields(values)
    return control


def _require_response_id(response_id: str) -> str:
    response_id = (response_id or "").strip()
    if not response_id:
        raise ValidationFailure("Missing response id", param="response_id")
    return response_id


def _optional_json() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def register_routes(app, settings, state, upstream_factory):
    """Register Flask routes on the app."""

    def _fail(label: str, err: Exception):
        if isinstance(err, HTTPException):
            # 413 and friends are rendered by the app-level error handlers.
            raise err
        if is_internal(err):
            log_event(40, f"{label}_error", request_id=getattr(g, "request_id", ""), error=str(err))
            state.record_failure(f"{label} request failed: {describe_failure(err)}")
        else:
            log_event(30, f"{label}_rejected", request_id=getattr(g, "request_id", ""), error=str(err))
        status, body, mimetype = translate_error(err)
        retry_after = err.retry_after if isinstance(err, RateLimited) else None
        return render_translated(status, body, mimetype, retry_after=retry_after)

    def _call_upstream(label: str, operation, request_summary, **kwargs):
        """Run one upstream call with in-flight tracking, latency/usage metrics and an info entry."""
        started = time.time()
        with state.metrics.track_in_flight():
            result = operation(**kwargs)
        state.metrics.record_request(time.time() - started)
        state.metrics.record_usage(getattr(result, "usage", None))
        state.info_log.info(
            truncate(f"{label} request: {request_summary} -> response: {_response_excerpt(result)}")
        )
        return result

    def _summary(payload) -> str:
        return json.dumps(redact_payload(payload), ensure_ascii=False, default=str)

    def _upload_parts(upstream, parts, purpose):
        uploaded = []
        for part in parts:
            summary = _summary({"filename": part.filename, "mime_type": part.mime_type, "size": part.size})
            with upload_source(part, settings, state.error_log.error) as source:
                file_obj = _call_upstream("File upload", upstream.upload_file, summary, file=source, purpose=purpose)
            uploaded.append(
                {
                    "file_id": file_obj.id,
                    "filename": part.filename,
                    "mime_type": part.mime_type,
                    "size": part.size,
                }
            )
        return uploaded

    def _claim_cooldown():
        allowed, retry_after = state.cooldown.acquire()
        if not allowed:
            raise RateLimited(retry_after=retry_after)

    def _render_diagnostics(title: str, entries) -> str:
        last_access = state.cooldown.last_access_time
        lines = [
            f"chatproxy diagnostics: {title}",
            f"uptime_seconds: {int(time.time() - state.started_at)}",
            "last_diagnostic_access_time: "
            + (datetime.fromtimestamp(last_access, timezone.utc).isoformat() if last_access else "never"),
        ]
        for key, value in state.metrics.snapshot().items():
            lines.append(f"{key}: {value}")
        lines.append("")
        lines.append(f"-- {title} (newest first) --")
        for entry in entries:
            lines.append(f"{entry.timestamp.isoformat()} [{entry.kind}] {entry.message}")
        return "\n".join(lines) + "\n"

    @app.route('/', methods=['GET'])
    def index():
        return Response(GREETING, mimetype="text/html")

    @app.route('/health', methods=['GET'])
    def health():
        try:
            _claim_cooldown()
            models = upstream_factory().list_models()
            count = len(getattr(models, "data", None) or [])
            return jsonify({"status": "ok", "models": count})
        except Exception as err:
            return _fail("health", err)

    @app.route('/health2', methods=['GET'])
    def health2():
        try:
            _claim_cooldown()
            model = upstream_factory().retrieve_model(settings.default_model)
            return jsonify({"status": "ok", "model": _to_dict(model)})
        except Exception as err:
            return _fail("health2", err)

    @app.route('/log', methods=['GET'])
    def diagnostics_log():
        try:
            if not authorize_diagnostics(request.args, settings.log_access_token):
                raise AuthorizationFailure()
            _claim_cooldown()
            return Response(_render_diagnostics("log", state.info_log.recent()), mimetype="text/plain")
        except Exception as err:
            return _fail("log", err)

    @app.route('/log/errors', methods=['GET'])
    def diagnostics_error_log():
        try:
            if not authorize_diagnostics(request.args, settings.log_access_token):
                raise AuthorizationFailure()
            _claim_cooldown()
            return Response(_render_diagnostics("error log", state.error_log.recent()), mimetype="text/plain")
        except Exception as err:
            return _fail("log", err)

    def _chat_json():
        data = read_json_body()
        require_secret(data.get("security_key"), settings)
        control, payload = split_control_fields(data)
        if payload.pop("stream", None) is True:
            raise ValidationFailure(
                "Streaming is not supported on /chat; use /responses with stream=true",
                param="stream",
            )
        text = _pop_convenience_text(payload)
        payload = seed_text(payload, "messages", text)
        payload = _normalize_messages(payload)
        image = parse_image_field(control.image)
        payload = merge_attachments(payload, build_attachments(image, style=CHAT_STYLE), key="messages", text=text)
        if not isinstance(payload.get("messages"), list) or not payload["messages"]:
            raise ValidationFailure("No messages provided", param="messages")
        payload = apply_default_model(payload, settings.default_model)

        upstream = upstream_factory(control)
        completion = _call_upstream("Chat", upstream.create_chat_completion, _summary(payload), **payload)
        return jsonify(_to_dict(completion))

    def _chat_multipart():
        body = read_multipart()
        require_secret(body.get("security_key"), settings)
        control = _control_from_mapping(body.fields)

        payload = {}
        raw_payload = body.get("payload")
        if raw_payload:
            try:
                payload = json.loads(raw_payload)
            except json.JSONDecodeError as exc:
                raise ValidationFailure("payload must be a JSON object", param="payload") from exc
            if not isinstance(payload, dict):
                raise ValidationFailure("payload must be a JSON object", param="payload")
            control_in_payload, payload = split_control_fields(payload)
            control = control.model_copy(update=control_in_payload.model_dump(exclude_none=True))
        for name, cast in FORM_RESPONSE_FIELDS.items():
            raw = body.get(name)
            if raw not in (None, "") and name not in payload:
                payload[name] = _parse_form_value(name, raw, cast)
        raw_input = body.get("input")
        if raw_input and "input" not in payload:
            try:
                payload["input"] = json.loads(raw_input)
            except json.JSONDecodeError:
                payload["input"] = raw_input
        if payload.pop("stream", None) is True:
            raise ValidationFailure("Streaming is not supported for multipart requests", param="stream")

        text = None
        for name in TEXT_FIELDS:
            value = body.get(name)
            if isinstance(value, str) and value.strip():
                text = value
                break
        image = parse_image_field(control.image)
        if not body.files and image is None and text is None and payload.get("input") is None:
            raise ValidationFailure("No input provided", param="input")
        purpose = body.get("file_purpose") or body.get("purpose") or settings.default_file_purpose

        upstream = upstream_factory(control)
        uploaded = _upload_parts(upstream, body.files, purpose)
        file_ids = [item["file_id"] for item in uploaded]
        payload = seed_text(payload, "input", text)
        payload = merge_attachments(
            payload,
            build_attachments(image, file_ids, style=RESPONSES_STYLE),
            key="input",
            text=text,
        )
        payload = apply_default_model(payload, settings.default_model)
        response_obj = _call_upstream("Chat", upstream.create_response, _summary(payload), **payload)
        return jsonify({"response": _to_dict(response_obj), "uploaded_files": uploaded})

    @app.route('/chat', methods=['POST'])
    def chat():
        try:
            if is_multipart():
                return _chat_multipart()
            return _chat_json()
        except Exception as err:
            return _fail("chat", err)

    @app.route('/chat/simple', methods=['POST'])
    def chat_simple():
        try:
            data = read_json_body()
            require_secret(data.get("security_key"), settings)
            try:
                simple = SimpleChatRequest.model_validate(data)
            except ValidationError as e:
                raise ValidationFailure(str(e)) from e

            system_message = JSON_SCHEMA_PROMPT.format(schema=simple.schema_) if simple.schema_ else simple.role
            messages = []
            if system_message:
                messages.append({"role": "system", "content": system_message})
            messages.append({"role": "user", "content": simple.prompt})
            payload = {
                "model": simple.model or settings.default_model,
                "messages": messages,
                "temperature": settings.default_temperature if simple.temperature is None else simple.temperature,
                "top_p": settings.default_top_p if simple.top_p is None else simple.top_p,
            }
            if simple.max_tokens is not None:
                payload["max_tokens"] = simple.max_tokens

            completion = _call_upstream(
                "Simple chat",
                upstream_factory().create_chat_completion,
                _summary({"prompt": simple.prompt, "model": payload["model"]}),
                **payload,
            )
            return jsonify(_to_dict(completion))
        except Exception as err:
            return _fail("chat_simple", err)

    @app.route('/responses', methods=['POST'])
    def responses():
        try:
            data = read_json_body()
            require_secret(data.get("security_key"), settings)
            control, payload = split_control_fields(data)
            text = _pop_convenience_text(payload)
            payload = seed_text(payload, "input", text)
            image = parse_image_field(control.image)
            payload = merge_attachments(
                payload,
                build_attachments(image, style=RESPONSES_STYLE),
                key="input",
                text=text,
            )
            if payload.get("input") is None and not isinstance(payload.get("prompt"), dict):
                raise ValidationFailure("No input provided", param="input")
            payload = apply_default_model(payload, settings.default_model)
            stream = payload.pop("stream", None) is True

            upstream = upstream_factory(control)
            summary = _summary(payload)
            if stream:
                request_id = g.request_id
                return Response(
                    stream_with_context(
                        stream_responses_sse(
                            lambda: upstream.stream_response(**payload),
                            state,
                            summary,
                            request_id=request_id,
                        )
                    ),
                    mimetype="text/event-stream",
                    headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
                )
            response_obj = _call_upstream("Responses", upstream.create_response, summary, **payload)
            return jsonify(_to_dict(response_obj))
        except Exception as err:
            return _fail("responses", err)

    @app.route('/responses/<response_id>', methods=['GET', 'DELETE'])
    def response_item(response_id):
        try:
            source = request.args
            if request.method == "DELETE" and not request.args.get("security_key"):
                source = _optional_json()
            require_secret(source.get("security_key"), settings)
            response_id = _require_response_id(response_id)
            upstream = upstream_factory(_control_from_mapping(source))
            if request.method == "DELETE":
                _call_upstream("Delete response", upstream.delete_response, response_id, response_id=response_id)
                return jsonify({"id": response_id, "object": "response.deleted", "deleted": True})
            result = _call_upstream("Retrieve response", upstream.retrieve_response, response_id, response_id=response_id)
            return jsonify(_to_dict(result))
        except Exception as err:
            return _fail("response_item", err)

    @app.route('/responses/<response_id>/cancel', methods=['POST'])
    def response_cancel(response_id):
        try:
            data = _optional_json()
            require_secret(data.get("security_key"), settings)
            response_id = _require_response_id(response_id)
            upstream = upstream_factory(_control_from_mapping(data))
            result = _call_upstream("Cancel response", upstream.cancel_response, response_id, response_id=response_id)
            return jsonify(_to_dict(result))
        except Exception as err:
            return _fail("response_cancel", err)

    @app.route('/responses/<response_id>/input_items', methods=['GET'])
    def response_input_items(response_id):
        try:
            require_secret(request.args.get("security_key"), settings)
            response_id = _require_response_id(response_id)
            params = {}
            for name in ("after", "before", "order"):
                if request.args.get(name):
                    params[name] = request.args[name]
            if request.args.get("limit"):
                params["limit"] = _parse_form_value("limit", request.args["limit"], int)
            include = request.args.getlist("include")
            if include:
                params["include"] = include
            upstream = upstream_factory(_control_from_mapping(request.args))
            page = _call_upstream(
                "List input items",
                upstream.list_input_items,
                response_id,
                response_id=response_id,
                **params,
            )
            result = _to_dict(page)
            result.setdefault("object", "list")
            return jsonify(result)
        except Exception as err:
            return _fail("response_input_items", err)

    @app.route('/files', methods=['POST'])
    def files():
        try:
            if not is_multipart():
                raise ValidationFailure("Content-Type must be multipart/form-data")
            body = read_multipart()
            require_secret(body.get("security_key"), settings)
            if not body.files:
                raise ValidationFailure("No files provided", param="file")
            purpose = body.get("purpose") or body.get("file_purpose") or settings.default_file_purpose
            upstream = upstream_factory(_control_from_mapping(body.fields))
            uploaded = _upload_parts(upstream, body.files, purpose)
            return jsonify({"files": uploaded, "file_ids": [item["file_id"] for item in uploaded]})
        except Exception as err:
            return _fail("files", err)

    @app.route('/transcriptions', methods=['POST'])
    def transcriptions():
        try:
            if not is_multipart():
                raise ValidationFailure("Content-Type must be multipart/form-data")
            body = read_multipart()
            require_secret(body.get("security_key"), settings)
            audio_parts = body.files_for("file") or body.files
            if not audio_parts:
                raise ValidationFailure("No audio file provided", param="file")
            audio = audio_parts[0]

            params = {"model": body.get("model") or settings.default_transcription_model}
            for name in ("language", "prompt", "response_format"):
                if body.get(name):
                    params[name] = body.get(name)
            if body.get("temperature"):
                params["temperature"] = _parse_form_value("temperature", body.get("temperature"), float)
            granularities = body.getlist("timestamp_granularities[]")
            if granularities:
                params["timestamp_granularities"] = granularities

            upstream = upstream_factory(_control_from_mapping(body.fields))
            summary = _summary({**params, "filename": audio.filename, "size": audio.size})
            with upload_source(audio, settings, state.error_log.error) as source:
                result = _call_upstream("Transcription", upstream.transcribe_audio, summary, file=source, **params)
            if isinstance(result, str) or params.get("response_format") in TEXT_TRANSCRIPT_FORMATS:
                return Response(str(result), mimetype="text/plain")
            return jsonify(_to_dict(result))
        except Exception as err:
            return _fail("transcriptions", err)

    @app.route('/embeddings', methods=['POST'])
    def embeddings():
        try:
            data = read_json_body()
            require_secret(data.get("security_key"), settings)
            control, passthrough = split_control_fields(data)
            try:
                embedding_request = EmbeddingsRequest.model_validate(passthrough)
            except ValidationError as e:
                raise ValidationFailure(str(e)) from e
            payload = embedding_request.model_dump(exclude_none=True)
            payload["model"] = payload.get("model") or settings.default_embedding_model
            upstream = upstream_factory(control)
            summary = _summary({key: value for key, value in payload.items() if key != "input"})
            result = _call_upstream("Embedding", upstream.create_embedding, summary, **payload)
            return jsonify(_to_dict(result))
        except Exception as err:
            return _fail("embeddings", err)

    @app.errorhandler(404)
    def handle_not_found(error):
        return error_response("Not found", 404, "invalid_request_error")

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        return error_response("Not found", 404, "invalid_request_error")

    @app.errorhandler(413)
    def handle_payload_too_large(error):
        return error_response("Request body too large", 413, "invalid_request_error")

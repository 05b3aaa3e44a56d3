"""SSE streaming of upstream responses events."""
import json
import time

import openai

from .errors import describe_failure
from ..utils.logging import log_event, truncate

DONE_SENTINEL = "data: [DONE]\n\n"


def _dump_event(event) -> dict:
    if hasattr(event, "model_dump"):
        return event.model_dump(exclude_none=True)
    if isinstance(event, dict):
        return event
    return {"type": "response.output_text.delta", "delta": str(event)}


def format_sse(payload: dict) -> str:
    event_type = payload.get("type", "message")
    return f"event: {event_type}\ndata: {json.dumps(payload, ensure_ascii=False)}\n\n"


def _failure_event(err: Exception) -> dict:
    if isinstance(err, openai.APIStatusError):
        error = {"message": err.message, "type": "api_error", "status": err.status_code}
    else:
        error = {"message": "Internal Server Error", "type": "internal_error"}
    return {"type": "response.failed", "error": error}


def stream_responses_sse(open_stream, state, request_summary: str, request_id: str = ""):
    """Relay upstream responses events as SSE, ending with a ``[DONE]`` sentinel.

    ``open_stream`` is called lazily so the upstream request starts once the
    client begins reading. If the client goes away the generator is closed,
    which closes the upstream stream and stops consuming events.
    """
    started = time.time()
    stream = None
    usage = None
    failed = False
    with state.metrics.track_in_flight():
        try:
            stream = open_stream()
            for event in stream:
                payload = _dump_event(event)
                if payload.get("type") == "response.completed":
                    usage = (payload.get("response") or {}).get("usage")
                yield format_sse(payload)
        except GeneratorExit:
            log_event(20, "stream_client_disconnected", request_id=request_id)
            raise
        except Exception as err:
            failed = True
            log_event(40, "stream_error", request_id=request_id, error=str(err))
            state.record_failure(f"Streaming request failed: {describe_failure(err)}")
            yield format_sse(_failure_event(err))
        finally:
            close = getattr(stream, "close", None)
            if callable(close):
                close()
    if not failed:
        state.metrics.record_request(time.time() - started)
        state.metrics.record_usage(usage)
        state.info_log.info(truncate(f"Streaming request: {request_summary} -> completed"))
    yield DONE_SENTINEL

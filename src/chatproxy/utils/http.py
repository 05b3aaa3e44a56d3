"""HTTP helpers and error responses."""
from flask import Response, jsonify, request


def get_client_ip() -> str:
    """First X-Forwarded-For hop, else the socket peer."""
    forwarded_for = request.headers.get("X-Forwarded-For", "")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.remote_addr or "unknown"


def error_payload(message: str, error_type: str = "invalid_request_error", param=None, code=None) -> dict:
    return {"error": {"message": message, "type": error_type, "param": param, "code": code}}


def error_response(message: str, status: int = 400, error_type: str = "invalid_request_error", param=None, code=None):
    """Return OpenAI-style error payload."""
    return jsonify(error_payload(message, error_type, param, code)), status


def render_translated(status: int, body, mimetype: str, retry_after=None) -> Response:
    """Build the response for an ``(status, body, mimetype)`` triple from the error translator."""
    if mimetype == "application/json":
        response = jsonify(body)
    else:
        response = Response(body, mimetype=mimetype)
    response.status_code = status
    if retry_after is not None:
        response.headers["Retry-After"] = str(retry_after)
    return response

"""Gateway error taxonomy and the single error translator."""
import openai

from ..utils.http import error_payload

INTERNAL_ERROR_BODY = "Internal Server Error"


class GatewayError(Exception):
    """A failure with a known HTTP status, detected inside the gateway."""

    status = 500
    error_type = "internal_error"

    def __init__(self, message: str, *, param=None):
        super().__init__(message)
        self.message = message
        self.param = param


class ValidationFailure(GatewayError):
    status = 400
    error_type = "invalid_request_error"


class AttachmentError(ValidationFailure):
    """An attachment spec names neither a URL nor inline data."""


class AuthorizationFailure(GatewayError):
    status = 403
    error_type = "permission_error"

    def __init__(self, message: str = "Forbidden", **kwargs):
        super().__init__(message, **kwargs)


class RateLimited(GatewayError):
    status = 429
    error_type = "rate_limit_error"

    def __init__(self, message: str = "Too Many Requests", *, retry_after: int = 0):
        super().__init__(message)
        self.retry_after = retry_after


class BodyReadError(GatewayError):
    """The request body could not be read or parsed as multipart."""


def _upstream_error_object(err: openai.APIStatusError) -> dict:
    body = err.body
    if isinstance(body, dict):
        # The SDK hands over either the whole envelope or its "error" member.
        inner = body.get("error")
        return inner if isinstance(inner, dict) else body
    return {"message": err.message, "type": "api_error", "param": None, "code": None}


def is_internal(err: Exception) -> bool:
    """True when the error is counted as an internal/upstream failure."""
    if isinstance(err, GatewayError):
        return type(err).status >= 500
    return True


def translate_error(err: Exception):
    """Map an exception to ``(status, body, mimetype)``.

    Upstream API errors keep their status and error object; gateway errors
    use the OpenAI-style envelope; everything else is an opaque 500.
    """
    if isinstance(err, openai.APIStatusError):
        return err.status_code, {"error": _upstream_error_object(err)}, "application/json"
    if isinstance(err, GatewayError) and err.status < 500:
        return err.status, error_payload(err.message, err.error_type, err.param), "application/json"
    return 500, INTERNAL_ERROR_BODY, "text/plain"


def describe_failure(err: Exception) -> str:
    """Short description for the diagnostics error log.

    Upstream errors keep their status and message; internal errors are
    reduced to their class name.
    """
    if isinstance(err, openai.APIStatusError):
        return f"upstream {err.status_code}: {err.message}"
    if isinstance(err, GatewayError):
        return f"{type(err).__name__}: {err.message}"
    return type(err).__name__

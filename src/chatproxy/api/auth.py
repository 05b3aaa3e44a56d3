"""Shared-secret and diagnostics token checks."""
import hmac

from .errors import AuthorizationFailure


def authorize(provided, expected) -> bool:
    """Exact match against the server-side secret; fails closed when either side is empty."""
    if not isinstance(provided, str) or not isinstance(expected, str):
        return False
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def authorize_diagnostics(query, expected) -> bool:
    """Validate the ``access_token`` query parameter for the diagnostics views."""
    return authorize(query.get("access_token"), expected)


def require_secret(provided, settings) -> None:
    if not authorize(provided, settings.security_key):
        raise AuthorizationFailure()

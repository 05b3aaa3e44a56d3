"""Flask middleware registration for request context, CORS and logging."""
import time
import uuid

from flask import Response, g, request

from ..utils.http import get_client_ip
from ..utils.logging import log_event

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "*",
}


def register_middlewares(app):
    """Register Flask middlewares on the app."""

    @app.before_request
    def attach_request_context():
        g.request_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
        g.request_start = time.time()

    @app.before_request
    def short_circuit_options():
        # Runs before routing errors are raised, so unknown paths answer too.
        if request.method == "OPTIONS":
            return Response(b"", status=200)
        return None

    @app.after_request
    def add_headers(response):
        response.headers["X-Request-ID"] = getattr(g, "request_id", "")
        for name, value in CORS_HEADERS.items():
            response.headers[name] = value

        if request.method == "OPTIONS":
            return response
        latency_ms = None
        if hasattr(g, "request_start"):
            latency_ms = int((time.time() - g.request_start) * 1000)
        log_event(
            20,
            "request",
            request_id=getattr(g, "request_id", ""),
            method=request.method,
            path=request.path,
            status=response.status_code,
            latency_ms=latency_ms,
            client_ip=get_client_ip(),
        )
        return response

"""Application factory and entrypoint."""
from flask import Flask

from .settings import get_settings
from .state import GatewayState
from ..api.handlers import register_routes
from ..api.middleware import register_middlewares
from ..services.openai_service import UpstreamFactory
from ..utils.logging import log_event, setup_logging


def create_app(settings=None, upstream_factory=None, state=None) -> Flask:
    """Create and configure the Flask application.

    ``upstream_factory`` and ``state`` default to the real OpenAI-backed
    factory and a fresh ``GatewayState``; tests pass their own.
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_dir)

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = settings.max_content_length
    app.config["SETTINGS"] = settings

    state = state or GatewayState.from_settings(settings)
    upstream_factory = upstream_factory or UpstreamFactory(settings)

    register_middlewares(app)
    register_routes(app, settings, state, upstream_factory)
    return app


def run() -> None:
    """Run the threaded Flask server."""
    app = create_app()
    settings = app.config["SETTINGS"]
    for name in ("security_key", "openai_api_key", "log_access_token"):
        if not getattr(settings, name):
            log_event(30, "config_missing", setting=name.upper())
    app.run(host="0.0.0.0", port=settings.port, threaded=True)


if __name__ == "__main__":
    run()

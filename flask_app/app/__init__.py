import logging

from flask import Flask, jsonify

from ptel_engine.cache import CacheManager
from ptel_engine.config import Settings, configure_logging, load_settings
from ptel_engine.exceptions import PtelError
from ptel_engine.geocoding import CascadeOrchestrator
from ptel_engine.geocoding.http import build_client

LOG = logging.getLogger(__name__)


def create_app(settings: Settings = None, cascade: CascadeOrchestrator = None, cache: CacheManager = None):
    """Initialize Flask app with one cache and one cascade shared by every request."""
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    app = Flask(__name__)
    app.json.ensure_ascii = False

    if cascade is None:
        cache = cache or CacheManager(settings.cache)
        # Each request runs its own event loop, so the client keeps no pooled connections
        client = build_client(settings.cascade.user_agent, settings.cascade.timeout_s, keepalive=False)
        cascade = CascadeOrchestrator(settings.cascade, cache=cache, client=client)

    app.extensions["ptel"] = {
        "settings": settings,
        "cache": cache if cache is not None else cascade.cache,
        "cascade": cascade,
    }

    from flask_app.app.routes import api_bp
    app.register_blueprint(api_bp)

    @app.errorhandler(PtelError)
    def handle_ptel_error(exc):
        LOG.warning(f"⚠️ Rejected input: {exc}")
        return jsonify({"error": str(exc)}), 400

    LOG.info("✅ PTEL API ready")
    return app

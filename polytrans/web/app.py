"""Flask application configuration and blueprint registration."""

from __future__ import annotations

from flask import Flask, jsonify

from polytrans import __version__
from polytrans.logger import get_logger

from .routes.assistants import assistants_bp
from .routes.background import background_bp
from .routes.settings import settings_bp
from .routes.translations import translations_bp
from .routes.workflows import workflows_bp
from .state import EXTENSION_KEY

logger = get_logger(__name__)


def build_app(runtime) -> Flask:
    """Create and configure the Flask application around a Runtime."""
    app = Flask(__name__)

    # Ensure JSON responses keep Unicode data.
    app.config["JSON_AS_ASCII"] = False
    app.json.ensure_ascii = False
    app.extensions[EXTENSION_KEY] = runtime

    register_blueprints(app)
    register_default_routes(app)

    return app


def register_blueprints(app: Flask) -> None:
    """Register Flask blueprints."""
    app.register_blueprint(translations_bp, url_prefix="/api/translations")
    app.register_blueprint(workflows_bp, url_prefix="/api/workflows")
    app.register_blueprint(assistants_bp, url_prefix="/api/assistants")
    app.register_blueprint(settings_bp, url_prefix="/api/settings")
    app.register_blueprint(background_bp, url_prefix="/internal/jobs")


def register_default_routes(app: Flask) -> None:
    """Register the health route and JSON error handlers."""

    @app.get("/health")
    def health_check():
        logger.debug("Health check requested")
        return jsonify({"status": "ok", "version": __version__})

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(500)
    def internal_error(e):
        logger.exception("Internal server error: %s", e)
        return jsonify({"error": "Internal server error"}), 500

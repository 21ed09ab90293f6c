import logging

from flask import Flask, g, jsonify, render_template, request
from dotenv import load_dotenv

from app.exhibit.config import load_config
from app.exhibit.db import RecordStore, init_db, teardown_db_session, track_store
from app.exhibit.logging_setup import configure_logging
from app.exhibit.routes import bp as routes_bp
from app.exhibit.security import csrf_guard, ensure_csrf_token
from app.exhibit.auth import bp as auth_bp, enforce_auth_gate
from app.exhibit.modules.search.api import bp as search_api_bp
from app.exhibit.modules.report.api import bp as report_api_bp


def create_app(store: RecordStore | None = None) -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    configure_logging(app.config["LOG_LEVEL"])

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.template_filter("utcformat")
    def _utcformat_filter(value, format: str = "%m/%d/%Y %H:%M:%S") -> str:
        if value is None:
            return "-"
        if hasattr(value, "strftime"):
            return value.strftime(format)
        return str(value)

    # Auth gate runs first so anonymous API calls get 401 rather than a CSRF error.
    app.before_request(enforce_auth_gate)
    app.before_request(csrf_guard)

    store = init_db(app, store)
    track_store(store)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(search_api_bp, url_prefix="/api/records")
    app.register_blueprint(report_api_bp, url_prefix="/api/records/report")

    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        if request.path.startswith("/api/"):
            return jsonify({"error": "Resource not found"}), 404
        return render_template("errors/404.html"), 404

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        if request.path.startswith("/api/"):
            return jsonify({"error": "Internal server error"}), 500
        return render_template("errors/500.html"), 500

    logging.getLogger(__name__).info(
        "create_app() complete; strategies=%s", ", ".join(s.name for s in store.strategies)
    )

    return app

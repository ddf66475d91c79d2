import logging
import os

from flask import Flask, g, jsonify
from dotenv import load_dotenv

from app.doctrack.config import load_config
from app.doctrack.db import init_db, teardown_db_session
from app.doctrack.rbac import load_current_actor
from app.doctrack.routes import bp as routes_bp
from app.doctrack.modules.routing.api import bp as documents_api_bp


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    # JSON API only; keep key order as written
    app.json.sort_keys = False  # type: ignore[attr-defined]

    level = logging.getLevelName(app.config["LOG_LEVEL"])
    if isinstance(level, int):
        logging.getLogger("app.doctrack").setLevel(level)
        app.logger.setLevel(level)

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")

    init_db(app)

    if hasattr(os, "register_at_fork"):
        def _after_fork_child():
            engine = app.extensions.get("sqlalchemy_engine")
            if engine:
                engine.dispose()
                app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

        os.register_at_fork(after_in_child=_after_fork_child)

    app.register_blueprint(routes_bp)
    app.register_blueprint(documents_api_bp, url_prefix="/api/documents")

    app.before_request(load_current_actor)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return jsonify({"ok": False, "error": "not_found", "message": "Not found"}), 404

    @app.errorhandler(405)
    def _err_405(e):  # type: ignore[no-redef]
        return jsonify({"ok": False, "error": "method_not_allowed", "message": "Method not allowed"}), 405

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"ok": False, "error": "internal_error", "message": "Internal server error"}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app

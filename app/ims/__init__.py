import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request, session

from app.ims.config import check_production_config, load_config
from app.ims.db import init_db, teardown_db_session
from app.ims.registry import load_families


def create_app(config_overrides: dict | None = None) -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    if config_overrides:
        app.config.update(config_overrides)
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    level = logging.getLevelName(app.config.get("LOG_LEVEL") or "INFO")
    if isinstance(level, int):
        app.logger.setLevel(level)
        logging.getLogger("app.ims").setLevel(level)

    check_production_config(app.config)

    families = load_families()

    from app.ims.api import bp as api_bp
    from app.ims.auth import load_current_user
    from app.ims.routes import bp as routes_bp
    from app.ims.security import ensure_csrf_token, validate_csrf

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.register_blueprint(routes_bp)
    app.register_blueprint(api_bp, url_prefix="/api")

    def _load_user_wrapper():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            if not validate_csrf(request):
                return jsonify({"error": "CSRF token missing or invalid.", "kind": "InvalidArgument"}), 400
        return None

    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return jsonify({"error": "Not found.", "kind": "NotFound"}), 404

    @app.errorhandler(405)
    def _err_405(e):  # type: ignore[no-redef]
        return jsonify({"error": "Method not allowed."}), 405

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        return jsonify({"error": "File too large.", "kind": "InvalidArgument"}), 413

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        return jsonify({"error": "Internal error.", "request_id": rid}), 500

    logging.getLogger(__name__).info(
        "create_app() complete; families: %s", ", ".join(f.key for f in families)
    )

    return app

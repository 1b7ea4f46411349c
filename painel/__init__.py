import os

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from painel.config import Config
from painel.db import close_db, init_db, is_postgres_url
from painel.db_migrations import register_db_cli
from painel.observability import (
    configure_json_logging,
    ensure_request_id,
    mark_request_start,
    metrics_snapshot,
    observe_response,
)
from painel.security import apply_security_headers, enforce_rate_limit


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    configure_json_logging(app)

    _ensure_storage_dirs(app)
    _register_error_handlers(app)
    _register_security(app)
    _register_auth(app)
    _register_blueprints(app)
    _register_health(app)
    register_db_cli(app)
    app.teardown_appcontext(close_db)
    _maybe_init_schema(app)
    return app


def _ensure_storage_dirs(app: Flask) -> None:
    for key in ("DATABASE_DIR", "UPLOAD_DIR"):
        directory = app.config.get(key)
        if directory:
            os.makedirs(directory, exist_ok=True)


def _maybe_init_schema(app: Flask) -> None:
    auto_init = bool(app.config.get("DB_AUTO_INIT", False))
    if app.testing:
        auto_init = True
    if not auto_init:
        return

    flask_env = (os.environ.get("FLASK_ENV", "development") or "development").strip().lower()
    if not app.testing and flask_env != "development":
        app.logger.warning("DB_AUTO_INIT ignorado fora de development.")
        return

    with app.app_context():
        init_db()


def _register_blueprints(app: Flask) -> None:
    from painel.routes.devolucoes_routes import devolucoes_bp
    from painel.routes.home_routes import home_bp
    from painel.routes.ocorrencias_routes import ocorrencias_bp

    app.register_blueprint(home_bp)
    app.register_blueprint(devolucoes_bp)
    app.register_blueprint(ocorrencias_bp)


def _register_auth(app: Flask) -> None:
    from painel.auth import register_auth

    register_auth(app)


def _register_error_handlers(app: Flask) -> None:
    from painel.errors import AppError

    @app.before_request
    def _ensure_request_id() -> None:
        ensure_request_id()
        mark_request_start()

    @app.after_request
    def _append_request_id(response):
        response.headers["X-Request-Id"] = ensure_request_id()
        response = observe_response(response)
        return apply_security_headers(response)

    @app.errorhandler(AppError)
    def _handle_app_error(exc: AppError):
        request_id = ensure_request_id()
        log_method = app.logger.error if exc.server_fault else app.logger.warning
        log_method(
            "application_error",
            extra={
                "request_id": request_id,
                "error_code": exc.code,
                "http_status": exc.http_status,
                "message_key": exc.message_key,
                "details": exc.details,
                "request_path": request.path,
                "http_method": request.method,
            },
            exc_info=exc.server_fault,
        )
        return jsonify(exc.to_response_payload(request_id)), exc.http_status

    @app.errorhandler(Exception)
    def _handle_unexpected(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc

        request_id = ensure_request_id()
        mapped = AppError(details=str(exc))
        app.logger.exception(
            "unexpected_exception",
            extra={
                "request_id": request_id,
                "error_code": mapped.code,
                "request_path": request.path,
                "http_method": request.method,
            },
        )
        return jsonify(mapped.to_response_payload(request_id)), mapped.http_status


def _register_security(app: Flask) -> None:
    @app.before_request
    def _rate_limit_guard():
        return enforce_rate_limit()


def _register_health(app: Flask) -> None:
    @app.route("/health")
    def health():
        from painel.db import get_read_db, table_exists

        db_path = app.config.get("DB_PATH") or "unknown"
        payload = {
            "status": "ok",
            "db": "postgres" if is_postgres_url(str(db_path)) else "sqlite",
            "env": app.config.get("ENV", "unknown"),
            "metrics": {
                "http": metrics_snapshot(),
            },
        }
        try:
            payload["schema_ready"] = table_exists(get_read_db(), "devolucoes")
        except Exception as exc:
            app.logger.warning("health_db_unavailable", extra={"details": str(exc)})
            payload["status"] = "degraded"
            payload["schema_ready"] = False
        return payload, 200

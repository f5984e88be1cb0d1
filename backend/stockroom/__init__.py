# backend/stockroom/__init__.py
from flask import Flask, g, jsonify, request
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from .config import Config
from .extensions import db, migrate


INVITE_ERROR_STATUS = {
    "not_found": 404,
    "already_used": 409,
    "expired": 410,
}


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(str(app.config.get("LOG_LEVEL", "INFO")).upper())

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.companies import companies_bp
    from .routes.departments import departments_bp
    from .routes.profiles import profiles_bp
    from .routes.invites import invites_bp
    from .routes.products import products_bp
    from .routes.stock import stock_bp
    from .routes.suppliers import suppliers_bp
    from .routes.purchase_orders import purchase_orders_bp
    from .routes.imports import imports_bp
    from .routes.exports import exports_bp
    from .routes.dashboard import dashboard_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(companies_bp)
    app.register_blueprint(departments_bp)
    app.register_blueprint(profiles_bp)
    app.register_blueprint(invites_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(suppliers_bp)
    app.register_blueprint(purchase_orders_bp)
    app.register_blueprint(imports_bp)
    app.register_blueprint(exports_bp)
    app.register_blueprint(dashboard_bp)

    register_error_handlers(app)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = set(app.config.get("CORS_ALLOWED_ORIGINS") or ())
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type, Idempotency-Key"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app


def register_error_handlers(app: Flask) -> None:
    """
    Map domain exceptions to JSON responses.

    Every handler rolls the session back first so a failed write never
    leaves half-applied state behind, and so security events are committed
    on a clean session.
    """
    from .services.invite_service import InviteError
    from .services.policy_service import PermissionDeniedError, log_security_event
    from .services.tenant_service import TenantAccessError
    from .validation import ConflictError, NotFoundError, ValidationError

    def _audit(event_type: str, principal, reason: str | None) -> None:
        if principal is None:
            principal = getattr(g, "principal", None)
        try:
            log_security_event(
                event_type=event_type,
                profile_id=principal.user_id if principal else None,
                company_id=principal.company_id if principal else None,
                success=False,
                resource=request.path,
                action=request.method,
                reason=reason,
                ip_address=request.remote_addr,
                user_agent=request.headers.get("User-Agent"),
            )
        except SQLAlchemyError:
            db.session.rollback()
            app.logger.exception("Failed to record %s security event", event_type)

    @app.errorhandler(ValidationError)
    def handle_validation(exc):
        db.session.rollback()
        return jsonify({"error": str(exc)}), 400

    @app.errorhandler(ConflictError)
    def handle_conflict(exc):
        db.session.rollback()
        return jsonify({"error": str(exc)}), 409

    @app.errorhandler(NotFoundError)
    def handle_not_found(exc):
        db.session.rollback()
        return jsonify({"error": str(exc) or "Not found"}), 404

    @app.errorhandler(TenantAccessError)
    def handle_tenant_access(exc):
        db.session.rollback()
        if exc.cross_tenant:
            app.logger.warning("Cross-tenant access denied on %s %s: %s", request.method, request.path, exc.detail)
            _audit("CROSS_TENANT_ACCESS_DENIED", exc.principal, exc.detail)
        return jsonify({"error": str(exc) or "Not found"}), 404

    @app.errorhandler(PermissionDeniedError)
    def handle_permission_denied(exc):
        db.session.rollback()
        _audit("PERMISSION_DENIED", exc.principal, str(exc))
        return jsonify({"error": "Permission denied", "message": str(exc)}), 403

    @app.errorhandler(InviteError)
    def handle_invite_error(exc):
        db.session.rollback()
        return jsonify({"error": str(exc), "code": exc.code}), INVITE_ERROR_STATUS.get(exc.code, 400)

    @app.errorhandler(IntegrityError)
    def handle_integrity(exc):
        db.session.rollback()
        app.logger.warning("Integrity error on %s %s: %s", request.method, request.path, exc.orig)
        return jsonify({"error": "Conflicting data"}), 409

    @app.errorhandler(OperationalError)
    def handle_store_unavailable(exc):
        db.session.rollback()
        app.logger.exception("Store unavailable on %s %s", request.method, request.path)
        return jsonify({"error": "Service temporarily unavailable"}), 503

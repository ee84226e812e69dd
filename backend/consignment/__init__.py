# backend/consignment/__init__.py
import logging

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services.notification_service import format_money
    app.jinja_env.filters["money"] = format_money

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.organization import organization_bp
    from .routes.users import users_bp
    from .routes.providers import providers_bp
    from .routes.items import items_bp
    from .routes.transactions import transactions_bp
    from .routes.payouts import payouts_bp
    from .routes.statements import statements_bp
    from .routes.reports import reports_bp
    from .routes.orders import orders_bp
    from .routes.notifications import notifications_bp
    from .routes.portal import portal_bp
    from .routes.shop import shop_bp
    from .routes.accounting import accounting_bp
    from .routes.security import security_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(organization_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(providers_bp)
    app.register_blueprint(items_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(payouts_bp)
    app.register_blueprint(statements_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(portal_bp)
    app.register_blueprint(shop_bp)
    app.register_blueprint(accounting_bp)
    app.register_blueprint(security_bp)

    from .responses import register_error_handlers
    register_error_handlers(app)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin in app.config.get("CORS_ALLOWED_ORIGINS", []):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type, X-Cart-Session"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app

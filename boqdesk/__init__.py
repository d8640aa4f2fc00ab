"""
boqdesk/__init__.py

Flask application factory for BOQ Desk.

Requirements:
- Clear architecture, stable imports, JSON API only.
- PostgreSQL-ready (SQLAlchemy + migrations) but SQLite is used for dev and tests.
- The client is never trusted; company scoping and permissions are enforced server-side.
"""

from __future__ import annotations

import click
from flask import Flask, jsonify
from flask_login import current_user

from .errors import BoqDeskError
from .extensions import csrf, db, login_manager, migrate
from .logging_config import configure_logging, get_logger
from .models import Company, User

logger = get_logger("app")


def create_app(config_object: str | object = "config.Config") -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    if not app.testing:
        configure_logging(level=app.config.get("LOG_LEVEL", "INFO"), json_format=app.config.get("LOG_JSON", True))

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)

    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Load user for Flask-Login."""
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "unauthorized", "message": "Authentication required"}), 401

    # ----------------------------------------------------------------------
    # Errors
    # ----------------------------------------------------------------------
    @app.errorhandler(BoqDeskError)
    def handle_domain_error(exc: BoqDeskError):
        if exc.http_status >= 500:
            logger.error("request_failed", extra={"code": exc.code}, exc_info=exc)
        return jsonify(exc.to_dict()), exc.http_status

    @app.errorhandler(404)
    def handle_not_found(exc):
        return jsonify({"error": "not_found", "message": "Resource not found"}), 404

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.audit import audit_bp
    from .blueprints.auth import auth_bp
    from .blueprints.boqs import boqs_bp
    from .blueprints.customers import customers_bp
    from .blueprints.invoices import invoices_bp
    from .blueprints.units import units_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(boqs_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(units_bp)
    app.register_blueprint(audit_bp)

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("create-company")
    @click.argument("name")
    @click.option("--currency", default=None, help="Default currency (falls back to DEFAULT_CURRENCY).")
    def create_company_command(name: str, currency: str | None):
        """Create a company and seed its default units."""
        from .seed import create_company

        company = create_company(name, currency or app.config["DEFAULT_CURRENCY"])
        click.echo(f"Company {company.name} created with id {company.id}.")

    @app.cli.command("seed-units")
    @click.argument("company_id", type=int)
    def seed_units_command(company_id: int):
        """Seed default units of measure for a company."""
        from .seed import seed_default_units

        if db.session.get(Company, company_id) is None:
            raise click.ClickException(f"Company {company_id} does not exist.")
        added = seed_default_units(company_id)
        click.echo(f"Default units seeded ({len(added)} added).")

    # ----------------------------------------------------------------------
    # Home
    # ----------------------------------------------------------------------
    @app.route("/")
    def index():
        """Service banner and the logged-in user, if any."""
        user = current_user.to_dict() if current_user.is_authenticated else None
        return jsonify({"app": app.config.get("APP_NAME", "BOQ Desk"), "user": user})

    return app

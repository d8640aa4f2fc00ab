"""
Application configuration.
This module defines the configuration settings for the BOQ Desk Flask application, including database connection,
secret key, numbering/conversion defaults and logging. It uses environment variables for sensitive information and
defaults for development. In production, make sure to set the appropriate environment variables and secure the secret key.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'boqdesk.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CSRF protection (JSON clients send the token from /auth/csrf-token as X-CSRFToken)
    WTF_CSRF_ENABLED = True

    APP_NAME = "BOQ Desk"

    # Currency used when a BOQ payload does not name one
    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "KES")

    # Invoices created from a BOQ are due this many days after the invoice date
    INVOICE_DUE_DAYS = int(os.environ.get("INVOICE_DUE_DAYS", "30"))

    # Logging: level name and whether to emit single-line JSON records
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_JSON = os.environ.get("LOG_JSON", "1") == "1"


class TestConfig(Config):
    """Configuration used by the pytest suite."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    WTF_CSRF_ENABLED = False
    LOG_JSON = False

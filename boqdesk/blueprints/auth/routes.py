"""
Authentication Routes

Provides:
- /auth/login
- /auth/logout
- /auth/csrf-token
- /auth/seed-admin (first system bootstrap)

Rules:
- Only active users may log in.
- Every User belongs to a Company; the bootstrap creates BOTH the Company and the admin User.
"""

from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from ...errors import GuardError, ValidationError
from ...extensions import db
from ...logging_config import get_logger
from ...models import Company, User
from ...seed import seed_default_units
from ...utils import json_body

logger = get_logger("auth")

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


# ============================================================
# LOGIN
# ============================================================

@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate a user.

    - Only active users may log in
    - Credentials validated via password hash
    """
    if current_user.is_authenticated:
        return jsonify({"user": current_user.to_dict()})

    payload = json_body()
    username = str(payload.get("username") or "").strip()
    password = str(payload.get("password") or "")

    user = User.query.filter_by(username=username).first()

    if not user or not user.check_password(password):
        logger.warning("login_failed", extra={"username": username})
        return jsonify({"error": "invalid_credentials", "message": "Invalid username or password"}), 401

    if not user.is_active:
        return jsonify({"error": "inactive_user", "message": "This account is inactive"}), 403

    login_user(user)
    logger.info("login", extra={"user_id": user.id})
    return jsonify({"user": user.to_dict()})


# ============================================================
# LOGOUT
# ============================================================

@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    """Log out the current user."""
    logout_user()
    return jsonify({"success": True})


@auth_bp.route("/csrf-token")
def csrf_token():
    """Token for JSON clients; send it back as the X-CSRFToken header."""
    return jsonify({"csrf_token": generate_csrf()})


# ============================================================
# SEED FIRST ADMIN (BOOTSTRAP)
# ============================================================

@auth_bp.route("/seed-admin", methods=["POST"])
def seed_admin():
    """
    Bootstrap the FIRST admin of the system.

    Safety Rules:
    - If ANY user already exists -> block
    - The admin gets a Company (created here) with default units
    """
    if User.query.count() > 0:
        raise GuardError("A user already exists in the system")

    payload = json_body()
    username = str(payload.get("username") or "").strip()
    password = str(payload.get("password") or "")
    company_name = str(payload.get("company_name") or "").strip() or "Default Company"

    if not username or not password:
        raise ValidationError("Username and password are required")

    company = Company(name=company_name, currency=current_app.config["DEFAULT_CURRENCY"])
    db.session.add(company)
    db.session.flush()  # Get company.id without full commit

    user = User(
        username=username,
        full_name=str(payload.get("full_name") or "").strip() or "System Administrator",
        email=str(payload.get("email") or "").strip() or None,
        is_admin=True,
        is_active=True,
        company_id=company.id,
    )
    user.set_password(password)

    db.session.add(user)
    db.session.commit()

    seed_default_units(company.id)
    logger.info("admin_seeded", extra={"user_id": user.id, "company_id": company.id})
    return jsonify({"user": user.to_dict()}), 201

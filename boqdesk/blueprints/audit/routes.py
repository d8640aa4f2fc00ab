"""
boqdesk/blueprints/audit/routes.py

Audit trail (admin only).

- GET  /audit/                 newest first; ?entity_type= ?action= ?entity_id= filters, ?limit=
- POST /audit/<id>/restore     re-insert a deleted record from its before-image
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import login_required

from ...audit import restore_deleted
from ...errors import ValidationError
from ...models import AUDIT_ACTIONS, AuditLog
from ...scope import scope_from_request
from ...security import admin_required
from ...utils import parse_optional_int

audit_bp = Blueprint("audit", __name__, url_prefix="/audit")

DEFAULT_LIMIT = 100
MAX_LIMIT = 500


@audit_bp.route("/")
@login_required
@admin_required
def list_entries():
    scope = scope_from_request()
    q = AuditLog.query.filter_by(company_id=scope.company_id)

    entity_type = (request.args.get("entity_type") or "").strip()
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)

    action = (request.args.get("action") or "").strip()
    if action:
        if action not in AUDIT_ACTIONS:
            raise ValidationError(f"Unknown audit action: {action}")
        q = q.filter(AuditLog.action == action)

    entity_id = (request.args.get("entity_id") or "").strip()
    if entity_id:
        q = q.filter(AuditLog.entity_id == entity_id)

    limit = parse_optional_int(request.args.get("limit")) or DEFAULT_LIMIT
    limit = max(1, min(limit, MAX_LIMIT))

    entries = q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit).all()
    return jsonify({"entries": [entry.to_dict() for entry in entries]})


@audit_bp.route("/<int:audit_log_id>/restore", methods=["POST"])
@login_required
@admin_required
def restore(audit_log_id: int):
    scope = scope_from_request()
    result = restore_deleted(audit_log_id, scope)
    return jsonify(result.to_dict()), 201

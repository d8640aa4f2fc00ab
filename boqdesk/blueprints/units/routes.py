"""
boqdesk/blueprints/units/routes.py

Units of measure (Item, Sm, Lm, No, ...), per company.

BOQ items reference units by id or by name; the unit name is what appears on invoice lines.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import login_required

from ...audit import audited_delete, log_action, serialize_model
from ...errors import ValidationError
from ...extensions import db
from ...models import Unit
from ...scope import scope_from_request
from ...utils import json_body, parse_optional_int, store_errors

units_bp = Blueprint("units", __name__, url_prefix="/units")


@units_bp.route("/")
@login_required
def list_units():
    """Active units by sort order. ?all=1 includes inactive ones."""
    scope = scope_from_request()
    q = Unit.query.filter_by(company_id=scope.company_id)
    if request.args.get("all") != "1":
        q = q.filter(Unit.is_active.is_(True))

    units = q.order_by(Unit.sort_order.asc(), Unit.name.asc()).all()
    return jsonify({"units": [unit.to_dict() for unit in units]})


@units_bp.route("/", methods=["POST"])
@login_required
def create_unit():
    scope = scope_from_request()
    payload = json_body()

    name = str(payload.get("name") or "").strip()
    if not name:
        raise ValidationError("Unit name is required", field="name")

    unit = Unit(
        company_id=scope.company_id,
        name=name,
        description=str(payload.get("description") or "").strip() or None,
        is_active=True,
        sort_order=parse_optional_int(payload.get("sort_order")) or 0,
    )
    with store_errors(unique_message=f"Unit {name} already exists"):
        db.session.add(unit)
        db.session.flush()
        log_action(unit, "create", scope, after=serialize_model(unit))
        db.session.commit()

    return jsonify({"unit": unit.to_dict()}), 201


@units_bp.route("/<int:unit_id>/delete", methods=["POST"])
@login_required
def delete_unit(unit_id: int):
    scope = scope_from_request()
    result = audited_delete("unit", unit_id, scope)
    return jsonify(result.to_dict())

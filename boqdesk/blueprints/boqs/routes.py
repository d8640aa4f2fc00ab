"""
boqdesk/blueprints/boqs/routes.py

BOQ routes.

Includes:
- list / create / read / update (draft only)
- next number preview
- percentage copy
- invoice preview and conversion
- audited delete

IMPORTANT:
- The client is never trusted. Totals in the payload are ignored and recomputed; numbers are
  assigned server-side when missing; every query is scoped to the user's company.
"""

from __future__ import annotations

from typing import Dict

from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required
from sqlalchemy import or_

from ...audit import audited_delete, log_action, serialize_model
from ...conversion import convert_boq_to_invoice, flatten_to_invoice_items
from ...copying import copy_boq
from ...documents import Document, parse_document, to_decimal
from ...errors import GuardError, ValidationError
from ...extensions import db
from ...logging_config import get_logger
from ...models import BOQ_STATUSES, Boq, Unit
from ...numbering import next_number
from ...scope import scope_from_request
from ...security import company_record_required
from ...utils import json_body, store_errors

logger = get_logger("boqs")

boqs_bp = Blueprint("boqs", __name__, url_prefix="/boqs")


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _load_boq(boq_id: int, **_: object) -> Boq:
    """Loader for decorator factories."""
    return db.get_or_404(Boq, boq_id)


def _resolve_unit_names(document: Document, company_id: int) -> None:
    """Fill item.unit_name from the company's units (matched by id or by name)."""
    lookup: Dict[str, str] = {}
    for unit in Unit.query.filter_by(company_id=company_id).all():
        lookup[str(unit.id)] = unit.name
        lookup[unit.name] = unit.name

    for item in document.iter_items():
        if item.unit_id and item.unit_id in lookup:
            item.unit_name = lookup[item.unit_id]


# ---------------------------------------------------------------------
# Lists
# ---------------------------------------------------------------------
@boqs_bp.route("/")
@login_required
def list_boqs():
    """List BOQs of the user's company, newest first. Optional ?status= and ?q= filters."""
    scope = scope_from_request()
    q = Boq.query.filter_by(company_id=scope.company_id)

    status = (request.args.get("status") or "").strip()
    if status:
        if status not in BOQ_STATUSES:
            raise ValidationError(f"Unknown status: {status}")
        q = q.filter(Boq.status == status)

    term = (request.args.get("q") or "").strip()
    if term:
        like = f"%{term}%"
        q = q.filter(or_(Boq.number.ilike(like), Boq.client_name.ilike(like), Boq.project_title.ilike(like)))

    boqs = q.order_by(Boq.created_at.desc(), Boq.id.desc()).all()
    return jsonify({"boqs": [boq.to_dict(include_document=False) for boq in boqs]})


@boqs_bp.route("/next-number")
@login_required
def preview_next_number():
    scope = scope_from_request()
    return jsonify({"number": next_number(Boq.numbers_for_company(scope.company_id))})


# ---------------------------------------------------------------------
# Create / read / update
# ---------------------------------------------------------------------
@boqs_bp.route("/", methods=["POST"])
@login_required
def create_boq():
    """
    Create a BOQ from a JSON document.

    Transaction: add -> flush (id exists) -> audit CREATE -> commit (once).
    """
    scope = scope_from_request()
    payload = json_body()

    document = parse_document(payload, default_currency=current_app.config["DEFAULT_CURRENCY"])
    if not document.number:
        document.number = next_number(Boq.numbers_for_company(scope.company_id))
    _resolve_unit_names(document, scope.company_id)

    boq = Boq.from_document(
        document,
        company_id=scope.company_id,
        created_by=scope.actor.id,
        tax_amount=to_decimal(payload.get("tax_amount"), "tax_amount"),
    )
    with store_errors(unique_message=f"BOQ number {document.number} already exists"):
        db.session.add(boq)
        db.session.flush()
        log_action(boq, "create", scope, after=serialize_model(boq))
        db.session.commit()

    logger.info("boq_created", extra={"boq_id": boq.id, "number": boq.number})
    return jsonify({"boq": boq.to_dict()}), 201


@boqs_bp.route("/<int:boq_id>")
@login_required
@company_record_required(_load_boq)
def get_boq(boq_id: int):
    return jsonify({"boq": _load_boq(boq_id).to_dict()})


@boqs_bp.route("/<int:boq_id>", methods=["PUT"])
@login_required
@company_record_required(_load_boq)
def update_boq(boq_id: int):
    """Replace the document of a draft BOQ. Converted BOQs are read-only."""
    scope = scope_from_request()
    boq = _load_boq(boq_id)
    if boq.is_converted:
        raise GuardError(
            f"BOQ {boq.number} has been converted to an invoice and can no longer be edited",
            invoice_id=boq.converted_to_invoice_id,
        )

    payload = json_body()
    document = parse_document(payload, default_currency=current_app.config["DEFAULT_CURRENCY"])
    if not document.number:
        document.number = boq.number
    _resolve_unit_names(document, scope.company_id)

    before = serialize_model(boq)
    tax_amount = to_decimal(payload["tax_amount"], "tax_amount") if "tax_amount" in payload else None

    with store_errors(unique_message=f"BOQ number {document.number} already exists"):
        boq.apply_document(document, tax_amount=tax_amount)
        db.session.flush()
        log_action(boq, "update", scope, before=before, after=serialize_model(boq))
        db.session.commit()

    logger.info("boq_updated", extra={"boq_id": boq.id, "number": boq.number})
    return jsonify({"boq": boq.to_dict()})


# ---------------------------------------------------------------------
# Copy / convert / delete
# ---------------------------------------------------------------------
@boqs_bp.route("/copy", methods=["POST"])
@login_required
def copy_boq_route():
    """Body: {"source_number": ..., "percentage": ..., "new_number": optional}."""
    scope = scope_from_request()
    payload = json_body()

    source_number = str(payload.get("source_number") or "").strip()
    if not source_number:
        raise ValidationError("Source BOQ number is required", field="source_number")

    boq = copy_boq(
        source_number,
        payload.get("percentage"),
        scope,
        new_number=(str(payload.get("new_number") or "").strip() or None),
    )
    return jsonify({"boq": boq.to_dict()}), 201


@boqs_bp.route("/<int:boq_id>/invoice-preview")
@login_required
@company_record_required(_load_boq)
def invoice_preview(boq_id: int):
    """The invoice lines a conversion would produce, without persisting anything."""
    return jsonify(flatten_to_invoice_items(_load_boq(boq_id).document()).to_dict())


@boqs_bp.route("/<int:boq_id>/convert", methods=["POST"])
@login_required
def convert_boq(boq_id: int):
    scope = scope_from_request()
    result = convert_boq_to_invoice(boq_id, scope)
    return jsonify(result.to_dict()), 201


@boqs_bp.route("/<int:boq_id>/delete", methods=["POST"])
@login_required
def delete_boq(boq_id: int):
    scope = scope_from_request()
    result = audited_delete("boq", boq_id, scope)
    return jsonify(result.to_dict())

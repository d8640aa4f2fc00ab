"""
boqdesk/blueprints/invoices/routes.py

Invoice routes: list, read, audited delete.

Invoices are created only by converting a BOQ (see boqs.convert_boq). Deleting an invoice
puts its source BOQ back to draft.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import login_required

from ...audit import audited_delete
from ...extensions import db
from ...models import Invoice
from ...scope import scope_from_request
from ...security import company_record_required
from ...utils import parse_optional_int

invoices_bp = Blueprint("invoices", __name__, url_prefix="/invoices")


def _load_invoice(invoice_id: int, **_: object) -> Invoice:
    """Loader for decorator factories."""
    return db.get_or_404(Invoice, invoice_id)


@invoices_bp.route("/")
@login_required
def list_invoices():
    """Invoices of the user's company, newest first. Optional ?customer_id= filter."""
    scope = scope_from_request()
    q = Invoice.query.filter_by(company_id=scope.company_id)

    customer_id = parse_optional_int(request.args.get("customer_id"))
    if customer_id is not None:
        q = q.filter(Invoice.customer_id == customer_id)

    invoices = q.order_by(Invoice.invoice_date.desc(), Invoice.id.desc()).all()
    return jsonify({"invoices": [invoice.to_dict(include_items=False) for invoice in invoices]})


@invoices_bp.route("/<int:invoice_id>")
@login_required
@company_record_required(_load_invoice)
def get_invoice(invoice_id: int):
    return jsonify({"invoice": _load_invoice(invoice_id).to_dict()})


@invoices_bp.route("/<int:invoice_id>/delete", methods=["POST"])
@login_required
def delete_invoice(invoice_id: int):
    scope = scope_from_request()
    result = audited_delete("invoice", invoice_id, scope)
    return jsonify(result.to_dict())

"""
boqdesk/blueprints/customers/routes.py

Customer routes.

Customers are created by BOQ conversion (exact client-name match, else new). A customer that
invoices still reference cannot be deleted.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import login_required

from ...audit import audited_delete
from ...models import Customer
from ...scope import scope_from_request

customers_bp = Blueprint("customers", __name__, url_prefix="/customers")


@customers_bp.route("/")
@login_required
def list_customers():
    """Customers of the user's company by name. Optional ?q= name filter."""
    scope = scope_from_request()
    q = Customer.query.filter_by(company_id=scope.company_id)

    term = (request.args.get("q") or "").strip()
    if term:
        q = q.filter(Customer.name.ilike(f"%{term}%"))

    customers = q.order_by(Customer.name.asc()).all()
    return jsonify({"customers": [customer.to_dict() for customer in customers]})


@customers_bp.route("/<int:customer_id>/delete", methods=["POST"])
@login_required
def delete_customer(customer_id: int):
    scope = scope_from_request()
    result = audited_delete("customer", customer_id, scope)
    return jsonify(result.to_dict())

"""
BOQ Desk – Domain Models

Master data:
- Company (owning scope of every business record)
- User (Flask-Login identity, belongs to one Company)
- Customer, Unit

Documents:
- Boq: bill of quantities. Header columns for listing/filtering plus the full section tree in
  the `data` JSON column (see boqdesk/documents.py). Summary money columns are derived from
  the tree on every save and are informational only.
- Invoice / InvoiceItem: flat invoice created by converting a Boq.

Audit:
- AuditLog: create / update / delete / restore entries with before-images.

IMPORTANT:
- Boq.converted_to_invoice_id is a plain reference (no FK) so that the boqs <-> invoices tables
  do not form a cycle. The hard link is Invoice.source_boq_id (FK, no cascade): a BOQ that an
  invoice still points to cannot be deleted by the database.
- Relationships towards Invoice are one-way (no backref on Boq/Customer): the ORM must not null
  out invoice FKs on delete.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from .documents import Document
from .extensions import db
from .utils import money

BOQ_STATUSES = ("draft", "converted", "cancelled")
AUDIT_ACTIONS = ("create", "update", "delete", "restore")


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


# ---------------------------------------------------------------------
# Company & users
# ---------------------------------------------------------------------
class Company(db.Model):
    """Owning scope. Every business record belongs to exactly one company."""

    __tablename__ = "companies"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)
    currency = db.Column(db.String(10), nullable=False, default="KES")

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    users = db.relationship("User", back_populates="company", lazy=True)

    def __repr__(self):
        return f"<Company {self.name}>"


class User(UserMixin, db.Model):
    """System login user."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    full_name = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    is_admin = db.Column(db.Boolean, default=False, nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    company_id = db.Column(
        db.Integer,
        db.ForeignKey("companies.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    company = db.relationship("Company", back_populates="users")

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.full_name,
            "email": self.email,
            "is_admin": self.is_admin,
            "company_id": self.company_id,
        }

    def __repr__(self):
        return f"<User {self.username}>"


# ---------------------------------------------------------------------
# Master data
# ---------------------------------------------------------------------
class Customer(db.Model):
    __tablename__ = "customers"

    id = db.Column(db.Integer, primary_key=True)

    company_id = db.Column(
        db.Integer,
        db.ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name = db.Column(db.String(255), nullable=False, index=True)
    email = db.Column(db.String(255))
    phone = db.Column(db.String(50))
    address = db.Column(db.String(255))
    city = db.Column(db.String(100))
    country = db.Column(db.String(100))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "country": self.country,
        }

    def __repr__(self):
        return f"<Customer {self.name}>"


class Unit(db.Model):
    """Unit of measure (Item, Sm, Lm, No, ...)."""

    __tablename__ = "units"

    id = db.Column(db.Integer, primary_key=True)

    company_id = db.Column(
        db.Integer,
        db.ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name = db.Column(db.String(50), nullable=False)
    description = db.Column(db.String(255))
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    sort_order = db.Column(db.Integer, default=0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (db.UniqueConstraint("company_id", "name", name="uq_unit_company_name"),)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
        }


# ---------------------------------------------------------------------
# BOQ
# ---------------------------------------------------------------------
class Boq(db.Model):
    __tablename__ = "boqs"

    id = db.Column(db.Integer, primary_key=True)

    company_id = db.Column(
        db.Integer,
        db.ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    number = db.Column(db.String(50), nullable=False, index=True)
    boq_date = db.Column(db.Date, nullable=False, index=True)
    due_date = db.Column(db.Date, nullable=True, index=True)

    client_name = db.Column(db.String(255), nullable=False, index=True)
    client_email = db.Column(db.String(255))
    client_phone = db.Column(db.String(50))
    client_address = db.Column(db.String(255))
    client_city = db.Column(db.String(100))
    client_country = db.Column(db.String(100))

    contractor = db.Column(db.String(255))
    project_title = db.Column(db.String(255))
    currency = db.Column(db.String(10), nullable=False, default="KES")

    subtotal = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    tax_amount = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    total_amount = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0.00"))

    status = db.Column(db.String(20), nullable=False, default="draft", index=True)

    # Full section tree (Document.to_dict()).
    data = db.Column(db.JSON, nullable=False)

    terms_and_conditions = db.Column(db.Text, nullable=True)

    # Conversion marker
    converted_to_invoice_id = db.Column(db.Integer, nullable=True, index=True)
    converted_at = db.Column(db.DateTime, nullable=True, index=True)

    created_by = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("company_id", "number", name="uq_boq_company_number"),
        db.CheckConstraint("status IN ('draft', 'converted', 'cancelled')", name="valid_boq_status"),
    )

    @property
    def is_converted(self) -> bool:
        return self.converted_to_invoice_id is not None

    def document(self) -> Document:
        """Rebuild the Document tree from storage."""
        return Document.from_dict(self.data or {})

    def apply_document(self, document: Document, *, tax_amount: Optional[Decimal] = None) -> None:
        """Copy a Document into this row; header columns and totals are re-derived from it."""
        self.number = document.number
        self.boq_date = document.date
        self.due_date = document.due_date

        self.client_name = document.client.name
        self.client_email = document.client.email
        self.client_phone = document.client.phone
        self.client_address = document.client.address
        self.client_city = document.client.city
        self.client_country = document.client.country

        self.contractor = document.contractor
        self.project_title = document.project_title
        self.currency = document.currency
        self.terms_and_conditions = document.terms_and_conditions

        if tax_amount is not None:
            self.tax_amount = money(tax_amount)
        self.subtotal = money(document.subtotal)
        self.total_amount = money(document.subtotal + Decimal(str(self.tax_amount or 0)))

        self.data = document.to_dict()

    @classmethod
    def from_document(
        cls,
        document: Document,
        *,
        company_id: int,
        created_by: Optional[int] = None,
        tax_amount: Decimal = Decimal("0"),
    ) -> "Boq":
        boq = cls(company_id=company_id, created_by=created_by, status="draft", tax_amount=Decimal("0.00"))
        boq.apply_document(document, tax_amount=tax_amount)
        return boq

    @staticmethod
    def numbers_for_company(company_id: int) -> List[str]:
        rows = db.session.query(Boq.number).filter(Boq.company_id == company_id).all()
        return [row.number for row in rows]

    def to_dict(self, include_document: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "number": self.number,
            "boq_date": _iso(self.boq_date),
            "due_date": _iso(self.due_date),
            "client_name": self.client_name,
            "project_title": self.project_title,
            "currency": self.currency,
            "subtotal": str(self.subtotal),
            "tax_amount": str(self.tax_amount),
            "total_amount": str(self.total_amount),
            "status": self.status,
            "converted_to_invoice_id": self.converted_to_invoice_id,
            "converted_at": _iso(self.converted_at),
        }
        if include_document:
            data["document"] = self.document().to_dict(include_totals=True)
        return data

    def __repr__(self):
        return f"<Boq {self.number}>"


# ---------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------
class Invoice(db.Model):
    __tablename__ = "invoices"

    id = db.Column(db.Integer, primary_key=True)

    company_id = db.Column(
        db.Integer,
        db.ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    invoice_number = db.Column(db.String(50), nullable=False, index=True)
    invoice_date = db.Column(db.Date, nullable=False, index=True)
    due_date = db.Column(db.Date, nullable=True)

    status = db.Column(db.String(20), nullable=False, default="draft", index=True)
    currency = db.Column(db.String(10), nullable=False, default="KES")

    subtotal = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    tax_amount = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    total_amount = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0.00"))

    notes = db.Column(db.Text, nullable=True)

    source_boq_id = db.Column(db.Integer, db.ForeignKey("boqs.id"), nullable=True, index=True)

    created_by = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    customer = db.relationship("Customer", foreign_keys=[customer_id])
    source_boq = db.relationship("Boq", foreign_keys=[source_boq_id])

    items = db.relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.sort_order",
    )

    __table_args__ = (
        db.UniqueConstraint("company_id", "invoice_number", name="uq_invoice_company_number"),
    )

    @staticmethod
    def numbers_for_company(company_id: int) -> List[str]:
        rows = db.session.query(Invoice.invoice_number).filter(Invoice.company_id == company_id).all()
        return [row.invoice_number for row in rows]

    def to_dict(self, include_items: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "invoice_date": _iso(self.invoice_date),
            "due_date": _iso(self.due_date),
            "status": self.status,
            "currency": self.currency,
            "customer_id": self.customer_id,
            "subtotal": str(self.subtotal),
            "tax_amount": str(self.tax_amount),
            "total_amount": str(self.total_amount),
            "notes": self.notes,
            "source_boq_id": self.source_boq_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data

    def __repr__(self):
        return f"<Invoice {self.invoice_number}>"


class InvoiceItem(db.Model):
    __tablename__ = "invoice_items"

    id = db.Column(db.Integer, primary_key=True)

    invoice_id = db.Column(
        db.Integer,
        db.ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    sort_order = db.Column(db.Integer, nullable=False, default=0)
    description = db.Column(db.Text, nullable=False)
    quantity = db.Column(db.Numeric(18, 4), nullable=False, default=1)
    unit_price = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    line_total = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    unit_of_measure = db.Column(db.String(50))
    section_name = db.Column(db.String(255))

    tax_percentage = db.Column(db.Numeric(6, 2), nullable=False, default=Decimal("0.00"))
    tax_amount = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0.00"))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    invoice = db.relationship("Invoice", back_populates="items")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sort_order": self.sort_order,
            "description": self.description,
            "quantity": str(self.quantity),
            "unit_price": str(self.unit_price),
            "line_total": str(self.line_total),
            "unit_of_measure": self.unit_of_measure,
            "section_name": self.section_name,
        }


# ---------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------
class AuditLog(db.Model):
    """Audit entry. `deleted_data` holds the full before-image of a deleted record."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    company_id = db.Column(
        db.Integer,
        db.ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    # Identity snapshot: survives user renames / deletion
    actor_name = db.Column(db.String(255), nullable=True)
    actor_email = db.Column(db.String(255), nullable=True)

    action = db.Column(db.String(20), nullable=False, index=True)

    entity_type = db.Column(db.String(100), nullable=False, index=True)
    entity_id = db.Column(db.String(64), nullable=False, index=True)
    entity_name = db.Column(db.String(255), nullable=True)
    entity_number = db.Column(db.String(100), nullable=True)

    details = db.Column(db.JSON, nullable=True)
    before_data = db.Column(db.JSON, nullable=True)
    after_data = db.Column(db.JSON, nullable=True)
    deleted_data = db.Column(db.JSON, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.Text, nullable=True)

    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    user = db.relationship("User", backref=db.backref("audit_entries", lazy=True))

    __table_args__ = (
        db.CheckConstraint(
            "action IN ('create', 'update', 'delete', 'restore')", name="valid_audit_action"
        ),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
            "entity_number": self.entity_number,
            "details": self.details,
            "before_data": self.before_data,
            "after_data": self.after_data,
            "deleted_data": self.deleted_data,
            "actor": {"id": self.user_id, "name": self.actor_name, "email": self.actor_email},
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "timestamp": _iso(self.timestamp),
        }

"""
boqdesk/conversion.py

BOQ -> Invoice conversion.

Two layers:

1) flatten_rows / flatten_to_invoice_items (pure)
   Walk the section tree in stored order and emit invoice rows:

     SECTION: {title}            qty 1, price 0, total 0, unit "Item"   (only for non-empty titles)
     {name}: {label}             qty 1, price 0, total 0, unit "Item"   (every subsection)
     {item description}          qty, rate, qty x rate, unit            (complete items only)

   The filter step then removes zero-shaped rows whose description contains "SECTION:".
   Subsection headers are zero-shaped too but are KEPT. This asymmetry is long-standing
   behaviour of the invoice print layout and is reproduced as-is.

2) convert_boq_to_invoice (persistence)
   guard -> customer -> invoice (+ audit) -> line items -> stamp BOQ

IMPORTANT:
- Every step commits on its own. A failure after the invoice exists raises
  PartialConversionError carrying the invoice id and the failed stage; nothing is rolled back
  or retried automatically.
- A failure while creating the customer is NOT fatal: the invoice is created without one and a
  NonFatalWarning is returned.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from .audit import log_action, serialize_model
from .documents import DEFAULT_SECTION_NAME, ZERO, Document, Item
from .errors import GuardError, NonFatalWarning, NotFoundError, PartialConversionError
from .extensions import db
from .logging_config import get_logger
from .models import Boq, Customer, Invoice, InvoiceItem
from .numbering import next_invoice_number
from .scope import Scope
from .utils import money, store_errors

logger = get_logger("conversion")

HEADER_UNIT = "Item"
SECTION_HEADER_PREFIX = "SECTION:"


@dataclass(frozen=True)
class InvoiceLine:
    description: str
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal
    unit_of_measure: str = HEADER_UNIT
    section_name: Optional[str] = None

    @property
    def is_zero_shaped(self) -> bool:
        return self.quantity == 1 and self.unit_price == 0 and self.line_total == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "quantity": str(self.quantity),
            "unit_price": str(self.unit_price),
            "line_total": str(self.line_total),
            "unit_of_measure": self.unit_of_measure,
            "section_name": self.section_name,
        }


@dataclass(frozen=True)
class FlattenResult:
    items: List[InvoiceLine]
    subtotal: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {"items": [line.to_dict() for line in self.items], "subtotal": str(self.subtotal)}


def _header(description: str, section_name: Optional[str]) -> InvoiceLine:
    return InvoiceLine(
        description=description,
        quantity=Decimal("1"),
        unit_price=ZERO,
        line_total=ZERO,
        unit_of_measure=HEADER_UNIT,
        section_name=section_name,
    )


def _line(item: Item, section_name: str) -> InvoiceLine:
    return InvoiceLine(
        description=item.description,
        quantity=item.quantity,
        unit_price=item.rate,
        line_total=item.line_total,
        unit_of_measure=item.unit_name or item.unit_id or HEADER_UNIT,
        section_name=section_name,
    )


def flatten_rows(document: Document) -> List[InvoiceLine]:
    """All rows in document order, before filtering."""
    rows: List[InvoiceLine] = []

    for section in document.sections:
        section_title = section.title or DEFAULT_SECTION_NAME
        if section.title:
            rows.append(_header(f"{SECTION_HEADER_PREFIX} {section.title}", section.title))

        for sub in section.subsections:
            section_name = f"{section_title} - {sub.label}"
            rows.append(_header(f"{sub.name}: {sub.label}", section_name))
            rows.extend(_line(item, section_name) for item in sub.items if item.is_complete)

        # Documents saved before subsections existed
        rows.extend(_line(item, section_title) for item in section.items if item.is_complete)

    return rows


def flatten_to_invoice_items(document: Document) -> FlattenResult:
    """Rows that go on the invoice, plus their subtotal. Pure and idempotent."""
    items = [
        row
        for row in flatten_rows(document)
        if not (row.is_zero_shaped and SECTION_HEADER_PREFIX in row.description)
    ]
    subtotal = sum((row.line_total for row in items), ZERO)
    return FlattenResult(items=items, subtotal=subtotal)


# ---------------------------------------------------------------------
# Conversion service
# ---------------------------------------------------------------------
@dataclass
class ConversionResult:
    invoice: Invoice
    warnings: List[NonFatalWarning] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "invoice": self.invoice.to_dict(),
            "warnings": [w.to_dict() for w in self.warnings],
        }


def _create_customer(document: Document, scope: Scope) -> Customer:
    client = document.client
    customer = Customer(
        company_id=scope.company_id,
        name=client.name,
        email=client.email,
        phone=client.phone,
        address=client.address,
        city=client.city,
        country=client.country,
    )
    db.session.add(customer)
    db.session.flush()
    log_action(customer, "create", scope, after=serialize_model(customer), details={"source": "boq_conversion"})
    db.session.commit()
    return customer


def _resolve_customer(document: Document, scope: Scope, warnings: List[NonFatalWarning]) -> Optional[Customer]:
    """Exact-name lookup within the company; create the customer when missing."""
    customer = Customer.query.filter_by(company_id=scope.company_id, name=document.client.name).first()
    if customer is not None:
        return customer

    try:
        return _create_customer(document, scope)
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning("customer_create_failed", extra={"client_name": document.client.name}, exc_info=True)
        warnings.append(
            NonFatalWarning("customer_create_failed", "Invoice created without a customer link", str(exc))
        )
        return None


def _insert_invoice_items(invoice: Invoice, lines: List[InvoiceLine]) -> None:
    for index, line in enumerate(lines):
        db.session.add(
            InvoiceItem(
                invoice_id=invoice.id,
                sort_order=index,
                description=line.description,
                quantity=line.quantity,
                unit_price=line.unit_price,
                line_total=line.line_total,
                unit_of_measure=line.unit_of_measure,
                section_name=line.section_name,
            )
        )
    db.session.commit()


def _stamp_boq(boq: Boq, invoice: Invoice, scope: Scope) -> None:
    before = serialize_model(boq)
    boq.converted_to_invoice_id = invoice.id
    boq.converted_at = datetime.utcnow()
    boq.status = "converted"
    db.session.flush()
    log_action(
        boq,
        "update",
        scope,
        before=before,
        after=serialize_model(boq),
        details={"converted_to_invoice": invoice.invoice_number},
    )
    db.session.commit()


def convert_boq_to_invoice(boq_id: int, scope: Scope, today: Optional[date] = None) -> ConversionResult:
    """Convert one BOQ into a new invoice. See module docstring for the step order."""
    boq = Boq.query.filter_by(id=boq_id, company_id=scope.company_id).populate_existing().first()
    if boq is None:
        raise NotFoundError("BOQ not found", boq_id=boq_id)
    if boq.is_converted:
        raise GuardError(
            f"BOQ {boq.number} has already been converted to an invoice",
            invoice_id=boq.converted_to_invoice_id,
        )

    today = today or date.today()
    document = boq.document()
    flattened = flatten_to_invoice_items(document)
    warnings: List[NonFatalWarning] = []

    customer = _resolve_customer(document, scope, warnings)

    subtotal = money(flattened.subtotal)
    invoice = Invoice(
        company_id=scope.company_id,
        customer_id=customer.id if customer is not None else None,
        invoice_number=next_invoice_number(Invoice.numbers_for_company(scope.company_id), today=today),
        invoice_date=today,
        due_date=today + timedelta(days=int(current_app.config.get("INVOICE_DUE_DAYS", 30))),
        status="draft",
        currency=document.currency,
        subtotal=subtotal,
        tax_amount=Decimal("0.00"),
        total_amount=subtotal,
        notes=document.notes or f"Converted from BOQ {boq.number}",
        source_boq_id=boq.id,
        created_by=scope.actor.id,
    )
    with store_errors(
        unique_message=f"Invoice number {invoice.invoice_number} already exists",
        context="Failed to create invoice",
    ):
        db.session.add(invoice)
        db.session.flush()
        log_action(invoice, "create", scope, after=serialize_model(invoice), details={"source_boq": boq.number})
        db.session.commit()

    invoice_id = invoice.id

    try:
        _insert_invoice_items(invoice, flattened.items)
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("conversion_partial", extra={"boq_id": boq_id, "invoice_id": invoice_id, "stage": "line_items"})
        raise PartialConversionError(
            f"Invoice {invoice.invoice_number} was created but its line items could not be saved",
            invoice_id=invoice_id,
            stage="line_items",
            boq_id=boq_id,
        ) from exc

    try:
        _stamp_boq(boq, invoice, scope)
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("conversion_partial", extra={"boq_id": boq_id, "invoice_id": invoice_id, "stage": "stamp"})
        raise PartialConversionError(
            f"Invoice {invoice.invoice_number} was created but BOQ {boq.number} could not be marked as converted",
            invoice_id=invoice_id,
            stage="stamp",
            boq_id=boq_id,
        ) from exc

    logger.info(
        "boq_converted",
        extra={"boq_id": boq_id, "invoice_id": invoice_id, "lines": len(flattened.items)},
    )
    db.session.refresh(invoice)
    return ConversionResult(invoice=invoice, warnings=warnings)

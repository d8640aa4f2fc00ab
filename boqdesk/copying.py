"""
boqdesk/copying.py

Percentage copies of a BOQ.

A percentage copy is a NEW document whose subtotal is `percentage`% of the original's.

Rule:
- Only the rate of each item is scaled. Quantities, descriptions, units, client data and
  section/subsection labels are copied verbatim.
- Totals are never copied: they are properties recomputed from quantity x rate, so
  copy.subtotal == original.subtotal * percentage / 100 holds by construction.
- Every section, subsection and item gets a fresh id. Only the document number is supplied
  by the caller.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import Any, Dict, Optional

from .audit import log_action, serialize_model
from .documents import Document, Item, Section, Subsection, new_id, to_decimal
from .errors import NotFoundError, ValidationError
from .extensions import db
from .logging_config import get_logger
from .models import Boq
from .numbering import next_number
from .scope import Scope
from .utils import store_errors

logger = get_logger("copying")

HUNDRED = Decimal("100")


def percentage_ratio(percentage: Any) -> Decimal:
    """Validate a percentage in (0, 100] and return it as a fraction."""
    value = to_decimal(percentage, "percentage")
    if value <= 0 or value > HUNDRED:
        raise ValidationError("Percentage must be between 0 and 100", field="percentage")
    return value / HUNDRED


def _copy_item(item: Item, ratio: Decimal) -> Item:
    return replace(item, id=new_id(), rate=item.rate * ratio)


def _copy_section(section: Section, ratio: Decimal) -> Section:
    return replace(
        section,
        id=new_id(),
        subsections=[
            replace(sub, id=new_id(), items=[_copy_item(i, ratio) for i in sub.items])
            for sub in section.subsections
        ],
        items=[_copy_item(i, ratio) for i in section.items],
    )


def create_percentage_copy(original: Document, percentage: Any, new_number: str) -> Document:
    """Derive a new Document worth `percentage`% of `original`. Pure; `original` is untouched."""
    if not (new_number or "").strip():
        raise ValidationError("New BOQ number is required", field="new_number")

    ratio = percentage_ratio(percentage)
    return replace(
        original,
        id=new_id(),
        number=new_number.strip(),
        client=replace(original.client),
        sections=[_copy_section(section, ratio) for section in original.sections],
    )


# ---------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------
def copy_boq(
    source_number: str,
    percentage: Any,
    scope: Scope,
    new_number: Optional[str] = None,
) -> Boq:
    """
    Fetch a BOQ by number (within the caller's company), persist its percentage copy.

    Transaction: add -> flush (id exists) -> audit CREATE -> commit (once).
    """
    ratio = percentage_ratio(percentage)

    source = Boq.query.filter_by(company_id=scope.company_id, number=(source_number or "").strip()).first()
    if source is None:
        raise NotFoundError(f"BOQ {source_number} not found")

    if not new_number:
        new_number = next_number(Boq.numbers_for_company(scope.company_id))

    document = create_percentage_copy(source.document(), percentage, new_number)

    details: Dict[str, Any] = {
        "copied_from": source.number,
        "percentage": str(to_decimal(percentage, "percentage")),
    }

    boq_copy = Boq.from_document(
        document,
        company_id=scope.company_id,
        created_by=scope.actor.id,
        tax_amount=(source.tax_amount or Decimal("0")) * ratio,
    )
    with store_errors(unique_message=f"BOQ number {boq_copy.number} already exists"):
        db.session.add(boq_copy)
        db.session.flush()
        log_action(boq_copy, "create", scope, after=serialize_model(boq_copy), details=details)
        db.session.commit()

    logger.info(
        "boq_copy_created",
        extra={"boq_id": boq_copy.id, "number": boq_copy.number, "source": source.number},
    )
    return boq_copy

"""
boqdesk/seed.py

Seed default master data.

Rules:
- Safe to run multiple times (idempotent).
- Units are seeded per company; existing names are left untouched.
"""

from __future__ import annotations

from typing import List

from .extensions import db
from .logging_config import get_logger
from .models import Company, Unit

logger = get_logger("seed")


DEFAULT_UNITS = [
    # name, description
    ("Item", "Lump sum item"),
    ("Sm", "Square metre"),
    ("Lm", "Linear metre"),
    ("No", "Number"),
    ("Cm", "Cubic metre"),
]


def seed_default_units(company_id: int) -> List[str]:
    """Create missing default units for a company. Returns the names that were added."""
    existing = {
        name for (name,) in db.session.query(Unit.name).filter(Unit.company_id == company_id).all()
    }

    added: List[str] = []
    for sort_order, (name, description) in enumerate(DEFAULT_UNITS):
        if name in existing:
            continue
        db.session.add(
            Unit(
                company_id=company_id,
                name=name,
                description=description,
                is_active=True,
                sort_order=sort_order,
            )
        )
        added.append(name)

    db.session.commit()
    if added:
        logger.info("units_seeded", extra={"company_id": company_id, "units": added})
    return added


def create_company(name: str, currency: str = "KES") -> Company:
    """Create a company and its default units."""
    company = Company(name=name.strip(), currency=currency)
    db.session.add(company)
    db.session.commit()
    seed_default_units(company.id)
    logger.info("company_created", extra={"company_id": company.id, "company_name": company.name})
    return company

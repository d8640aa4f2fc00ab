"""
Utility functions shared across the app. This includes:
- parse_optional_int / json_body: request parsing helpers used by the blueprints.
- store_errors: translate SQLAlchemy failures into domain StoreErrors.
- money: round a Decimal to cents for the summary columns.
"""

from __future__ import annotations

from contextlib import contextmanager
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterator, Optional

from flask import request
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .errors import StoreError, ValidationError
from .extensions import db


def money(value: Any) -> Decimal:
    """Quantize to 2 decimals (None => 0.00)."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def parse_optional_int(value: Any) -> Optional[int]:
    """Parse optional int; returns None for empty/invalid."""
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def json_body() -> Dict[str, Any]:
    """Return the request JSON object or raise ValidationError."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def is_foreign_key_violation(exc: IntegrityError) -> bool:
    """
    Recognise FK violations across drivers:
    - PostgreSQL: 'violates foreign key constraint'
    - SQLite:     'FOREIGN KEY constraint failed'
    """
    return "foreign key" in str(exc.orig).lower()


def is_unique_violation(exc: IntegrityError) -> bool:
    text = str(exc.orig).lower()
    return "unique" in text or "duplicate key" in text


@contextmanager
def store_errors(
    *,
    unique_message: Optional[str] = None,
    reference_message: Optional[str] = None,
    context: str = "Database operation failed",
) -> Iterator[None]:
    """
    Run a unit of work; on failure roll the session back and raise StoreError.

    Known constraint patterns are rewritten into the given domain messages, anything else
    is passed through with `context` prepended.
    """
    try:
        yield
    except IntegrityError as exc:
        db.session.rollback()
        if reference_message and is_foreign_key_violation(exc):
            raise StoreError(reference_message, constraint=True) from exc
        if unique_message and is_unique_violation(exc):
            raise StoreError(unique_message, constraint=True) from exc
        raise StoreError(f"{context}: {exc.orig}", constraint=True) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StoreError(f"{context}: {exc}") from exc

"""
boqdesk/errors.py

Typed error taxonomy for BOQ Desk.

Hierarchy:

    BoqDeskError (base)
    |
    +-- ValidationError         incomplete / partially filled item, missing field
    +-- GuardError              business rule blocks the mutation (already converted, still referenced)
    +-- NotFoundError           record does not exist in the caller's company
    +-- StoreError              constraint violation or transport failure from the database
        +-- PartialConversionError   conversion stopped after some steps were committed

Secondary failures that must not abort an already committed action are NOT exceptions:
they are NonFatalWarning values collected on the result object and logged.

Every error carries a machine-readable `code` and an HTTP status used by the app-level
error handler (see create_app).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


class BoqDeskError(Exception):
    """Base class for all domain errors."""

    code = "error"
    http_status = 500

    def __init__(self, message: str, **data: Any) -> None:
        super().__init__(message)
        self.message = message
        self.data = data

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.code, "message": self.message}
        payload.update(self.data)
        return payload


class ValidationError(BoqDeskError):
    """Input rejected before any side effect."""

    code = "validation_error"
    http_status = 400


class GuardError(BoqDeskError):
    """An entity-specific rule blocks the mutation. Raised before any mutation is attempted."""

    code = "guard_error"
    http_status = 409


class NotFoundError(BoqDeskError):
    code = "not_found"
    http_status = 404


class StoreError(BoqDeskError):
    """
    Database rejected an operation.

    `constraint=True` marks a recognised constraint violation (unique / foreign key) that
    was rewritten into a domain message.
    """

    code = "store_error"
    http_status = 500

    def __init__(self, message: str, *, constraint: bool = False, **data: Any) -> None:
        super().__init__(message, **data)
        self.constraint = constraint
        if constraint:
            self.http_status = 409


class PartialConversionError(StoreError):
    """
    Conversion failed after the invoice was already committed.

    `stage` names the step that failed ("line_items" or "stamp") so repair tooling can finish
    or roll back the conversion by hand.
    """

    code = "partial_conversion"

    def __init__(self, message: str, *, invoice_id: int, stage: str, boq_id: int) -> None:
        super().__init__(message, invoice_id=invoice_id, stage=stage, boq_id=boq_id)
        self.invoice_id = invoice_id
        self.stage = stage
        self.boq_id = boq_id


@dataclass(frozen=True)
class NonFatalWarning:
    """A secondary failure reported alongside a successful primary operation."""

    code: str
    message: str
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "detail": self.detail}

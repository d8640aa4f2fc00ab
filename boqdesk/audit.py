"""
boqdesk/audit.py

Audit logging and the audited mutation gateway.

Goals:
- Capture WHO did WHAT to WHICH entity, with before-images.
- Store actor name/email snapshots to preserve identity even if the user changes later.
- Store IP address and user agent (best effort) for traceability.

Two entry points:

1) log_action(entity, action, scope, before=..., after=...)
   ADDS an AuditLog entry to the current SQLAlchemy session for create/update.
   The caller controls the transaction: flush -> log_action -> commit (once).

2) audited_delete(entity_key, entity_id, scope)
   The only way business records are deleted. Strict order:
     (1) entity guard            -> GuardError, nothing else runs
     (2) fetch + snapshot        -> NotFoundError if missing
     (3) delete + commit         -> StoreError (FK violations get a domain message)
     (4) write ONE audit entry   -> failure is a NonFatalWarning, the delete stands
     (5) after-delete hook       -> failure is a NonFatalWarning
   Entities are configured in AUDITED_ENTITIES, not coded per type.

IMPORTANT:
- Steps (3) and (4) are separate commits. There is no cross-step transaction: a failed audit
  write after a committed delete is logged and reported, never rolled back.
- Two concurrent deletes of the same id may both pass step (2); only one of them deletes a row.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Type

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from .errors import GuardError, NonFatalWarning, NotFoundError, ValidationError
from .extensions import db
from .logging_config import get_logger
from .models import AUDIT_ACTIONS, AuditLog, Boq, Customer, Invoice, InvoiceItem, Unit
from .scope import Scope
from .utils import store_errors

logger = get_logger("audit")


# ---------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------
def _safe_value(value: Any) -> Any:
    """
    Convert a column value to a JSON-safe representation.

    - JSON natives (str/int/float/bool/None/dict/list) are kept as-is.
    - Decimal => str (no float rounding); date/datetime => ISO 8601.
    - Anything else falls back to str().
    """
    if value is None or isinstance(value, (str, int, float, bool, dict, list)):
        return value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def serialize_model(instance: Any) -> Dict[str, Any]:
    """
    Convert a SQLAlchemy model instance to a dict snapshot based on table columns.

    NOTES:
    - Captures only scalar column values (not relationships).
    """
    return {column.name: _safe_value(getattr(instance, column.name)) for column in instance.__table__.columns}


def _coerce(column, value: Any) -> Any:
    """Inverse of _safe_value for one column, used when restoring a snapshot."""
    if value is None:
        return None
    try:
        python_type = column.type.python_type
    except NotImplementedError:
        return value
    if python_type is datetime:
        return datetime.fromisoformat(value)
    if python_type is date:
        return date.fromisoformat(value)
    if python_type is Decimal:
        return Decimal(str(value))
    return value


def _instance_from_snapshot(model: Type[db.Model], snapshot: Dict[str, Any]) -> Any:
    values = {
        column.name: _coerce(column, snapshot[column.name])
        for column in model.__table__.columns
        if column.name in snapshot
    }
    return model(**values)


# ---------------------------------------------------------------------
# create / update
# ---------------------------------------------------------------------
def build_entry(
    action: str,
    scope: Scope,
    *,
    entity_type: str,
    entity_id: Any,
    entity_name: Optional[str] = None,
    entity_number: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    deleted_data: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    if action not in AUDIT_ACTIONS:
        raise ValidationError(f"Unknown audit action: {action}")

    return AuditLog(
        company_id=scope.company_id,
        user_id=scope.actor.id,
        actor_name=scope.actor.name,
        actor_email=scope.actor.email,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        entity_name=entity_name,
        entity_number=entity_number,
        details=details or {},
        before_data=before,
        after_data=after,
        deleted_data=deleted_data,
        ip_address=scope.ip_address,
        user_agent=scope.user_agent,
    )


def log_action(
    entity: Any,
    action: str,
    scope: Scope,
    *,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    details: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Add an AuditLog entry for `entity` to the current db session.

    The entity must have an id (call after flush). The caller commits.
    """
    entity_id = getattr(entity, "id", None)
    if entity_id is None:
        raise ValueError("log_action entity must have an 'id' attribute (after flush).")

    audited = entity_for_model(type(entity))
    entry = build_entry(
        action,
        scope,
        entity_type=audited.entity_type if audited else entity.__class__.__name__,
        entity_id=entity_id,
        entity_name=audited.name_of(entity) if audited else None,
        entity_number=audited.number_of(entity) if audited else None,
        details=details,
        before=before,
        after=after,
    )
    db.session.add(entry)
    return entry


def write_audit_entry(entry: AuditLog) -> None:
    """Persist a standalone audit entry (its own commit)."""
    db.session.add(entry)
    db.session.commit()


# ---------------------------------------------------------------------
# Guards and hooks
# ---------------------------------------------------------------------
def guard_boq_not_converted(entity_id: int, scope: Scope) -> None:
    """Re-read the conversion pointer from the database (never trust a loaded object)."""
    row = (
        db.session.query(Boq.number, Boq.converted_to_invoice_id)
        .filter(Boq.id == entity_id, Boq.company_id == scope.company_id)
        .first()
    )
    if row is not None and row.converted_to_invoice_id is not None:
        raise GuardError(
            f"Cannot delete BOQ {row.number}: It has been converted to an invoice. "
            "Please delete the invoice first if you really need to delete this BOQ.",
            invoice_id=row.converted_to_invoice_id,
        )


def guard_customer_unreferenced(entity_id: int, scope: Scope) -> None:
    count = (
        db.session.query(func.count(Invoice.id))
        .filter(Invoice.customer_id == entity_id, Invoice.company_id == scope.company_id)
        .scalar()
    )
    if count:
        raise GuardError(
            f"Cannot delete customer: It is referenced by {count} invoice(s).",
            invoice_count=count,
        )


def revert_source_boq(snapshot: Dict[str, Any], scope: Scope) -> Optional[NonFatalWarning]:
    """After an invoice is deleted, put the BOQ it came from back to draft."""
    invoice_id = snapshot.get("id")
    try:
        boq = Boq.query.filter_by(company_id=scope.company_id, converted_to_invoice_id=invoice_id).first()
        if boq is None:
            return None

        before = serialize_model(boq)
        boq.status = "draft"
        boq.converted_to_invoice_id = None
        boq.converted_at = None
        db.session.flush()
        log_action(
            boq,
            "update",
            scope,
            before=before,
            after=serialize_model(boq),
            details={"reason": "source invoice deleted", "invoice_id": invoice_id},
        )
        db.session.commit()
        logger.info("boq_conversion_reverted", extra={"boq_id": boq.id, "invoice_id": invoice_id})
        return None
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning("boq_conversion_revert_failed", extra={"invoice_id": invoice_id}, exc_info=True)
        return NonFatalWarning("boq_revert_failed", "Failed to reverse BOQ status", str(exc))


def restamp_source_boq(invoice: Invoice, scope: Scope) -> None:
    """When an invoice comes back, mark the BOQ it came from as converted again."""
    if invoice.source_boq_id is None:
        return
    boq = Boq.query.filter_by(id=invoice.source_boq_id, company_id=scope.company_id).populate_existing().first()
    if boq is None:
        raise GuardError(
            f"Cannot restore invoice {invoice.invoice_number}: its source BOQ no longer exists",
            boq_id=invoice.source_boq_id,
        )
    if boq.converted_to_invoice_id is not None and boq.converted_to_invoice_id != invoice.id:
        raise GuardError(
            f"Cannot restore invoice {invoice.invoice_number}: BOQ {boq.number} has since been converted again",
            invoice_id=boq.converted_to_invoice_id,
        )

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
        details={"reason": "source invoice restored", "invoice_id": invoice.id},
    )


def _invoice_snapshot(invoice: Invoice) -> Dict[str, Any]:
    snapshot = serialize_model(invoice)
    snapshot["items"] = [serialize_model(item) for item in invoice.items]
    return snapshot


# ---------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class AuditedEntity:
    key: str
    model: Type[db.Model]
    entity_type: str
    name_of: Callable[[Any], Optional[str]]
    number_of: Callable[[Any], Optional[str]] = lambda record: None
    guard: Optional[Callable[[int, Scope], None]] = None
    snapshot: Callable[[Any], Dict[str, Any]] = serialize_model
    after_delete: Optional[Callable[[Dict[str, Any], Scope], Optional[NonFatalWarning]]] = None
    # Runs inside the restore transaction before the record is inserted; GuardError aborts it
    after_restore: Optional[Callable[[Any, Scope], None]] = None
    # Rows stored under snapshot[children_key] are restored into children_model
    children_key: Optional[str] = None
    children_model: Optional[Type[db.Model]] = None
    label: str = "record"

    def reference_message(self, name: Optional[str]) -> str:
        return (
            f"Cannot delete {self.label} {name or ''}".rstrip()
            + ": It is referenced by other records (e.g. invoices). Please remove those references first."
        )


AUDITED_ENTITIES: Dict[str, AuditedEntity] = {
    "boq": AuditedEntity(
        key="boq",
        model=Boq,
        entity_type="BOQ",
        label="BOQ",
        name_of=lambda boq: boq.number,
        number_of=lambda boq: boq.number,
        guard=guard_boq_not_converted,
    ),
    "invoice": AuditedEntity(
        key="invoice",
        model=Invoice,
        entity_type="Invoice",
        label="invoice",
        name_of=lambda invoice: invoice.invoice_number,
        number_of=lambda invoice: invoice.invoice_number,
        snapshot=_invoice_snapshot,
        after_delete=revert_source_boq,
        after_restore=restamp_source_boq,
        children_key="items",
        children_model=InvoiceItem,
    ),
    "customer": AuditedEntity(
        key="customer",
        model=Customer,
        entity_type="Customer",
        label="customer",
        name_of=lambda customer: customer.name,
        guard=guard_customer_unreferenced,
    ),
    "unit": AuditedEntity(
        key="unit",
        model=Unit,
        entity_type="Unit",
        label="unit",
        name_of=lambda unit: unit.name,
    ),
}


def get_entity(entity_key: str) -> AuditedEntity:
    try:
        return AUDITED_ENTITIES[entity_key]
    except KeyError:
        raise ValidationError(f"Unknown entity type: {entity_key}")


def entity_for_model(model: Type[Any]) -> Optional[AuditedEntity]:
    for audited in AUDITED_ENTITIES.values():
        if audited.model is model:
            return audited
    return None


def entity_for_type(entity_type: str) -> Optional[AuditedEntity]:
    for audited in AUDITED_ENTITIES.values():
        if audited.entity_type == entity_type:
            return audited
    return None


# ---------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------
@dataclass
class MutationResult:
    success: bool
    entity_type: str
    entity_id: Any
    audit_log_id: Optional[int] = None
    warnings: List[NonFatalWarning] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "audit_log_id": self.audit_log_id,
            "warnings": [w.to_dict() for w in self.warnings],
        }


def audited_delete(entity_key: str, entity_id: int, scope: Scope) -> MutationResult:
    """Delete one record through the gateway. See module docstring for the step order."""
    audited = get_entity(entity_key)
    model = audited.model

    # (1) guard
    if audited.guard is not None:
        audited.guard(entity_id, scope)

    # (2) snapshot, read fresh from the database
    record = (
        model.query.filter_by(id=entity_id, company_id=scope.company_id)
        .populate_existing()
        .first()
    )
    if record is None:
        raise NotFoundError(f"{audited.entity_type} not found", entity_id=entity_id)

    snapshot = audited.snapshot(record)
    entity_name = audited.name_of(record)
    entity_number = audited.number_of(record)

    # (3) delete
    with store_errors(
        reference_message=audited.reference_message(entity_name),
        context=f"Failed to delete {audited.label}",
    ):
        db.session.delete(record)
        db.session.commit()

    logger.info(
        "record_deleted",
        extra={"entity_type": audited.entity_type, "entity_id": entity_id, "actor_id": scope.actor.id},
    )

    result = MutationResult(success=True, entity_type=audited.entity_type, entity_id=entity_id)

    # (4) audit entry
    entry = build_entry(
        "delete",
        scope,
        entity_type=audited.entity_type,
        entity_id=entity_id,
        entity_name=entity_name,
        entity_number=entity_number,
        details={
            "deleted_at": datetime.utcnow().isoformat(),
            "deleted_by": scope.actor.display_name,
            "table_name": model.__tablename__,
            "where_key": "id",
            "where_value": str(entity_id),
        },
        deleted_data=snapshot,
    )
    try:
        write_audit_entry(entry)
        result.audit_log_id = entry.id
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning(
            "audit_write_failed",
            extra={"entity_type": audited.entity_type, "entity_id": entity_id},
            exc_info=True,
        )
        result.warnings.append(
            NonFatalWarning("audit_write_failed", "Deletion succeeded but was not recorded in the audit log", str(exc))
        )

    # (5) after-delete hook
    if audited.after_delete is not None:
        warning = audited.after_delete(snapshot, scope)
        if warning is not None:
            result.warnings.append(warning)

    return result


def restore_deleted(audit_log_id: int, scope: Scope) -> MutationResult:
    """
    Re-insert a record from the before-image of a delete entry and log one `restore` entry.

    Restore runs as a single commit: the record, its children, the entity's after_restore
    changes and the audit entry.
    """
    entry = AuditLog.query.filter_by(id=audit_log_id, company_id=scope.company_id).first()
    if entry is None:
        raise NotFoundError("Audit entry not found", audit_log_id=audit_log_id)
    if entry.action != "delete" or not entry.deleted_data:
        raise GuardError("Only delete entries with a captured snapshot can be restored")

    audited = entity_for_type(entry.entity_type)
    if audited is None:
        raise GuardError(f"Entity type {entry.entity_type} cannot be restored")

    snapshot = dict(entry.deleted_data)
    if snapshot.get("company_id") != scope.company_id:
        raise GuardError("Snapshot belongs to another company")
    if db.session.get(audited.model, snapshot.get("id")) is not None:
        raise GuardError(f"{audited.entity_type} {entry.entity_name or entry.entity_id} already exists")

    children = snapshot.pop(audited.children_key, []) if audited.children_key else []

    with store_errors(
        unique_message=f"Cannot restore {audited.label}: a record with the same number or name exists",
        context=f"Failed to restore {audited.label}",
    ):
        record = _instance_from_snapshot(audited.model, snapshot)
        # Checked before the record is added, so a GuardError wins over constraint errors
        if audited.after_restore is not None:
            try:
                audited.after_restore(record, scope)
            except GuardError:
                db.session.rollback()
                raise
        db.session.add(record)
        db.session.flush()
        for child in children:
            db.session.add(_instance_from_snapshot(audited.children_model, child))

        restore_entry = build_entry(
            "restore",
            scope,
            entity_type=audited.entity_type,
            entity_id=record.id,
            entity_name=entry.entity_name,
            entity_number=entry.entity_number,
            details={"restored_from_audit_log_id": entry.id},
            after=serialize_model(record),
        )
        db.session.add(restore_entry)
        db.session.commit()

    logger.info("record_restored", extra={"entity_type": audited.entity_type, "entity_id": record.id})
    return MutationResult(
        success=True,
        entity_type=audited.entity_type,
        entity_id=record.id,
        audit_log_id=restore_entry.id,
    )

"""
boqdesk/documents.py

Bill of Quantities document model.

Shape:
    Document -> Section (ordered) -> Subsection (ordered) -> Item (ordered)

Rules enforced here (pure, no database access):
- Order of sections, subsections and items is insertion order and is never resorted.
- An item is COMPLETE when description is non-empty AND quantity > 0 AND rate > 0.
- An item with none of the three is EMPTY: dropped silently before persistence/conversion.
- An item with one or two of the three is PARTIALLY FILLED: ValidationError.
- line_total / subsection total / section total / subtotal are properties recomputed on
  every access. They are never stored as trusted data.

The persisted form (Boq.data JSON column) is produced by Document.to_dict() and read back
with Document.from_dict(). Untrusted request payloads go through parse_document().
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterator, List, Optional

from .errors import ValidationError

ZERO = Decimal("0")

DEFAULT_SECTION_NAME = "General"


def new_id() -> str:
    """Fresh identity for a section / subsection / item."""
    return uuid.uuid4().hex


def to_decimal(value: Any, field_name: str = "value") -> Decimal:
    """
    Parse a numeric payload value into Decimal.

    - None / "" => 0 (UI scaffolding sends blanks for untouched cells)
    - accepts comma or dot as the decimal separator, never as a thousands separator:
      "12,5" is 12.5, "1,000" is 1.0, and "1,234.50" (both separators) is rejected
    - floats go through str() so 0.1 stays 0.1
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValidationError(f"Invalid {field_name}: {value!r}", field=field_name)
    else:
        raw = str(value).strip()
        if raw == "":
            return ZERO
        if "," in raw and "." in raw:
            raise ValidationError(f"Invalid {field_name}: {value!r}", field=field_name)
        raw = raw.replace(",", ".")
        try:
            result = Decimal(raw)
        except (InvalidOperation, ValueError):
            raise ValidationError(f"Invalid {field_name}: {value!r}", field=field_name)

    if not result.is_finite():
        raise ValidationError(f"Invalid {field_name}: {value!r}", field=field_name)
    return result


def _to_date(value: Any, field_name: str) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"Invalid {field_name}: {value!r}", field=field_name)


def _clean(value: Any) -> Optional[str]:
    """Strip strings; empty becomes None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# ---------------------------------------------------------------------
# Tree nodes
# ---------------------------------------------------------------------
@dataclass
class Item:
    description: str = ""
    quantity: Decimal = ZERO
    rate: Decimal = ZERO
    unit_id: Optional[str] = None
    unit_name: Optional[str] = None
    id: str = field(default_factory=new_id)

    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.rate

    def _filled(self) -> tuple[bool, bool, bool]:
        return (bool((self.description or "").strip()), self.quantity > 0, self.rate > 0)

    @property
    def is_complete(self) -> bool:
        return all(self._filled())

    @property
    def is_empty(self) -> bool:
        return not any(self._filled())

    @property
    def is_partially_filled(self) -> bool:
        filled = self._filled()
        return any(filled) and not all(filled)

    def to_dict(self, include_totals: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "description": self.description,
            "quantity": str(self.quantity),
            "unit_id": self.unit_id,
            "unit_name": self.unit_name,
            "rate": str(self.rate),
        }
        if include_totals:
            data["line_total"] = str(self.line_total)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Item":
        # Stored "amount"/"line_total" values are ignored; totals are recomputed.
        unit_id = data.get("unit_id", data.get("unit"))
        return cls(
            id=data.get("id") or new_id(),
            description=str(data.get("description") or ""),
            quantity=to_decimal(data.get("quantity"), "quantity"),
            rate=to_decimal(data.get("rate"), "rate"),
            unit_id=_clean(unit_id),
            unit_name=_clean(data.get("unit_name")),
        )


@dataclass
class Subsection:
    name: str = ""
    label: str = ""
    items: List[Item] = field(default_factory=list)
    id: str = field(default_factory=new_id)

    @property
    def total(self) -> Decimal:
        return sum((item.line_total for item in self.items), ZERO)

    def to_dict(self, include_totals: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "label": self.label,
            "items": [item.to_dict(include_totals) for item in self.items],
        }
        if include_totals:
            data["total"] = str(self.total)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Subsection":
        return cls(
            id=data.get("id") or new_id(),
            name=str(data.get("name") or ""),
            label=str(data.get("label") or ""),
            items=[Item.from_dict(raw) for raw in data.get("items") or []],
        )


@dataclass
class Section:
    title: Optional[str] = None
    subsections: List[Subsection] = field(default_factory=list)
    # Older documents carry items directly on the section, without subsections.
    items: List[Item] = field(default_factory=list)
    id: str = field(default_factory=new_id)

    @property
    def total(self) -> Decimal:
        sub_total = sum((sub.total for sub in self.subsections), ZERO)
        return sub_total + sum((item.line_total for item in self.items), ZERO)

    def iter_items(self) -> Iterator[Item]:
        for sub in self.subsections:
            yield from sub.items
        yield from self.items

    def to_dict(self, include_totals: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "subsections": [sub.to_dict(include_totals) for sub in self.subsections],
        }
        if self.items:
            data["items"] = [item.to_dict(include_totals) for item in self.items]
        if include_totals:
            data["total"] = str(self.total)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Section":
        return cls(
            id=data.get("id") or new_id(),
            title=_clean(data.get("title")),
            subsections=[Subsection.from_dict(raw) for raw in data.get("subsections") or []],
            items=[Item.from_dict(raw) for raw in data.get("items") or []],
        )


@dataclass
class Client:
    name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "country": self.country,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Client":
        data = data or {}
        return cls(
            name=(_clean(data.get("name")) or ""),
            email=_clean(data.get("email")),
            phone=_clean(data.get("phone")),
            address=_clean(data.get("address")),
            city=_clean(data.get("city")),
            country=_clean(data.get("country")),
        )


@dataclass
class Document:
    number: Optional[str] = None
    date: Optional[date] = None
    currency: str = "KES"
    client: Client = field(default_factory=Client)
    sections: List[Section] = field(default_factory=list)
    due_date: Optional[date] = None
    contractor: Optional[str] = None
    project_title: Optional[str] = None
    notes: Optional[str] = None
    terms_and_conditions: Optional[str] = None
    id: str = field(default_factory=new_id)

    @property
    def subtotal(self) -> Decimal:
        return sum((section.total for section in self.sections), ZERO)

    def iter_items(self) -> Iterator[Item]:
        for section in self.sections:
            yield from section.iter_items()

    def without_empty_items(self) -> "Document":
        """Return a copy with EMPTY items removed. Structure and order are kept."""
        sections = [
            replace(
                section,
                subsections=[
                    replace(sub, items=[i for i in sub.items if not i.is_empty])
                    for sub in section.subsections
                ],
                items=[i for i in section.items if not i.is_empty],
            )
            for section in self.sections
        ]
        return replace(self, sections=sections)

    def validate(self, *, require_number: bool = True) -> None:
        """
        Raise ValidationError if the document cannot be persisted.

        Expects empty items to be dropped already (see without_empty_items).
        """
        if require_number and not (self.number or "").strip():
            raise ValidationError("BOQ number is required", field="number")
        if self.date is None:
            raise ValidationError("BOQ date is required", field="date")
        if not self.client.name:
            raise ValidationError("Client name is required", field="client.name")

        items = list(self.iter_items())
        if not items:
            raise ValidationError("Add at least one item", field="sections")

        for item in items:
            if item.is_partially_filled:
                raise ValidationError(
                    "Each item needs description, quantity > 0, and rate > 0",
                    field="sections",
                    item_id=item.id,
                )

    def to_dict(self, include_totals: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "number": self.number,
            "date": self.date.isoformat() if self.date else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "currency": self.currency,
            "client": self.client.to_dict(),
            "contractor": self.contractor,
            "project_title": self.project_title,
            "notes": self.notes,
            "terms_and_conditions": self.terms_and_conditions,
            "sections": [section.to_dict(include_totals) for section in self.sections],
        }
        if include_totals:
            data["subtotal"] = str(self.subtotal)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        return cls(
            id=data.get("id") or new_id(),
            number=_clean(data.get("number")),
            date=_to_date(data.get("date"), "date"),
            due_date=_to_date(data.get("due_date"), "due_date"),
            currency=_clean(data.get("currency")) or "KES",
            client=Client.from_dict(data.get("client")),
            contractor=_clean(data.get("contractor")),
            project_title=_clean(data.get("project_title")),
            notes=_clean(data.get("notes")),
            terms_and_conditions=_clean(data.get("terms_and_conditions")),
            sections=[Section.from_dict(raw) for raw in data.get("sections") or []],
        )


def _check_list(value: Any, field_name: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"{field_name} must be a list", field=field_name)
    return value


def _check_object(value: Any, field_name: str) -> None:
    if not isinstance(value, dict):
        raise ValidationError(f"{field_name} must be an object", field=field_name)


def _check_shape(payload: Dict[str, Any]) -> None:
    """Reject payloads whose tree is not objects and lists, before anything is read from it."""
    client = payload.get("client")
    if client is not None:
        _check_object(client, "client")

    for s, section in enumerate(_check_list(payload.get("sections"), "sections")):
        path = f"sections[{s}]"
        _check_object(section, path)
        for i, item in enumerate(_check_list(section.get("items"), f"{path}.items")):
            _check_object(item, f"{path}.items[{i}]")
        for u, sub in enumerate(_check_list(section.get("subsections"), f"{path}.subsections")):
            sub_path = f"{path}.subsections[{u}]"
            _check_object(sub, sub_path)
            for i, item in enumerate(_check_list(sub.get("items"), f"{sub_path}.items")):
                _check_object(item, f"{sub_path}.items[{i}]")


def parse_document(payload: Dict[str, Any], *, default_currency: str = "KES") -> Document:
    """
    Build a Document from an untrusted request payload.

    Empty items are dropped, partially filled items are rejected. The number is left
    optional here: the caller assigns one from the numbering service when it is missing.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    _check_shape(payload)

    document = Document.from_dict(payload)
    if not _clean(payload.get("currency")):
        document.currency = default_currency

    document = document.without_empty_items()
    document.validate(require_number=False)
    return document

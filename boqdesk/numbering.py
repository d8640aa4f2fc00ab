"""
boqdesk/numbering.py

Document number generation.

BOQ numbers:      BOQ-YYYYMMDD-NNNN   (sequence restarts every day)
Invoice numbers:  INV-YYYY-NNN        (sequence restarts every year)

IMPORTANT:
- These functions only PROPOSE a number from a snapshot of existing numbers.
  Two callers working from the same snapshot get the same proposal.
  Uniqueness is enforced by the (company_id, number) unique constraints in the database;
  a collision surfaces as a StoreError on insert.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Iterable, Optional

BOQ_PREFIX = "BOQ"
INVOICE_PREFIX = "INV"

SEQUENCE_WIDTH = 4
INVOICE_SEQUENCE_WIDTH = 3

_BOQ_NUMBER_RE = re.compile(r"^BOQ-(\d{8})-(\d+)$")


def parse_boq_number(number: str) -> Optional[tuple[str, int]]:
    """Return (date_stamp, sequence) for a well-formed BOQ number, else None."""
    match = _BOQ_NUMBER_RE.match((number or "").strip())
    if not match:
        return None
    return match.group(1), int(match.group(2))


def next_number(
    existing_numbers: Iterable[str],
    today: Optional[date] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Propose the next BOQ number for today.

    - Numbers stamped with today's date: max sequence + 1.
    - No number stamped today (or no numbers at all): sequence 0001.
    - Numbers given but none of them parse: time-derived HHMM suffix.
    """
    now = now or datetime.now()
    today = today or now.date()
    stamp = today.strftime("%Y%m%d")

    existing = [n for n in existing_numbers if n]
    parsed = [p for p in (parse_boq_number(n) for n in existing) if p is not None]

    if existing and not parsed:
        return f"{BOQ_PREFIX}-{stamp}-{now.strftime('%H%M')}"

    todays = [seq for day, seq in parsed if day == stamp]
    sequence = max(todays) + 1 if todays else 1
    return f"{BOQ_PREFIX}-{stamp}-{str(sequence).zfill(SEQUENCE_WIDTH)}"


def next_invoice_number(existing_numbers: Iterable[str], today: Optional[date] = None) -> str:
    """Propose the next invoice number: max trailing sequence of this year's numbers + 1."""
    today = today or date.today()
    prefix = f"{INVOICE_PREFIX}-{today.year}-"

    highest = 0
    for number in existing_numbers:
        if not number or not number.startswith(prefix):
            continue
        match = re.search(r"(\d+)$", number)
        if match:
            highest = max(highest, int(match.group(1)))

    return f"{prefix}{str(highest + 1).zfill(INVOICE_SEQUENCE_WIDTH)}"

"""Numbering tests: BOQ-YYYYMMDD-NNNN and INV-YYYY-NNN proposals."""

from datetime import date, datetime

from boqdesk.numbering import next_invoice_number, next_number, parse_boq_number

TODAY = date(2024, 3, 5)
NOW = datetime(2024, 3, 5, 14, 7)


class TestNextBoqNumber:
    def test_empty_collection_starts_at_one(self):
        assert next_number([], today=TODAY, now=NOW) == "BOQ-20240305-0001"

    def test_same_input_same_output(self):
        existing = ["BOQ-20240305-0001"]
        assert next_number(existing, today=TODAY, now=NOW) == next_number(existing, today=TODAY, now=NOW)

    def test_max_of_today_plus_one(self):
        existing = ["BOQ-20240305-0002", "BOQ-20240305-0009", "BOQ-20240305-0004"]
        assert next_number(existing, today=TODAY, now=NOW) == "BOQ-20240305-0010"

    def test_other_dates_are_ignored(self):
        existing = ["BOQ-20240304-0042", "BOQ-20231231-0100"]
        assert next_number(existing, today=TODAY, now=NOW) == "BOQ-20240305-0001"

    def test_unparsable_numbers_fall_back_to_time_suffix(self):
        existing = ["QUOTE-17", "manual"]
        assert next_number(existing, today=TODAY, now=NOW) == "BOQ-20240305-1407"

    def test_unparsable_entries_do_not_hide_parsable_ones(self):
        existing = ["manual", "BOQ-20240305-0003"]
        assert next_number(existing, today=TODAY, now=NOW) == "BOQ-20240305-0004"

    def test_sequence_wider_than_padding(self):
        assert next_number(["BOQ-20240305-9999"], today=TODAY, now=NOW) == "BOQ-20240305-10000"

    def test_parse(self):
        assert parse_boq_number("BOQ-20240305-0012") == ("20240305", 12)
        assert parse_boq_number("BOQ-2024-0012") is None


class TestNextInvoiceNumber:
    def test_first_of_year(self):
        assert next_invoice_number([], today=TODAY) == "INV-2024-001"

    def test_increments_within_year(self):
        existing = ["INV-2024-001", "INV-2024-007", "INV-2023-050"]
        assert next_invoice_number(existing, today=TODAY) == "INV-2024-008"

    def test_previous_year_only(self):
        assert next_invoice_number(["INV-2023-050"], today=TODAY) == "INV-2024-001"

"""
Document model tests.

Covers item completeness classification, empty-item dropping, partial-item rejection,
derived totals, ordering and the stored dict form of a nested tree.
"""

from datetime import date
from decimal import Decimal

import pytest

from boqdesk.documents import Document, Item, Section, Subsection, parse_document, to_decimal
from boqdesk.errors import ValidationError
from tests.conftest import make_item, make_sample_document, sample_payload


class TestItemCompleteness:
    """An item is complete, empty or partially filled."""

    @pytest.mark.parametrize(
        "description, quantity, rate",
        [
            ("Cement", 0, 0),
            ("", 10, 0),
            ("", 0, 50),
            ("Cement", 10, 0),
            ("Cement", 0, 50),
            ("", 10, 50),
        ],
    )
    def test_one_or_two_conditions_is_partial(self, description, quantity, rate):
        item = make_item(description, quantity, rate)
        assert item.is_partially_filled
        assert not item.is_complete
        assert not item.is_empty

    def test_all_three_is_complete(self):
        item = make_item("Cement", 10, 50)
        assert item.is_complete
        assert not item.is_partially_filled

    def test_none_is_empty(self):
        item = make_item("   ", 0, 0)
        assert item.is_empty
        assert not item.is_partially_filled

    def test_negative_quantity_counts_as_unset(self):
        assert make_item("Cement", -1, 50).is_partially_filled


class TestValidation:
    """Partially filled items block persistence; empty items are dropped silently."""

    def test_partial_item_fails(self):
        doc = make_sample_document()
        doc.sections[0].subsections[0].items.append(make_item("Sand", 0, 30))

        with pytest.raises(ValidationError) as exc_info:
            doc.without_empty_items().validate()
        assert "description, quantity > 0, and rate > 0" in exc_info.value.message

    def test_empty_item_is_dropped_not_rejected(self):
        doc = make_sample_document()
        doc.sections[0].subsections[1].items.append(Item())

        cleaned = doc.without_empty_items()
        cleaned.validate()

        assert len(cleaned.sections[0].subsections[1].items) == 1
        # the original is untouched
        assert len(doc.sections[0].subsections[1].items) == 2

    def test_document_without_items_fails(self):
        doc = make_sample_document()
        doc.sections[0].subsections = [Subsection(name="A", label="Empty", items=[Item()])]

        with pytest.raises(ValidationError, match="at least one item"):
            doc.without_empty_items().validate()

    @pytest.mark.parametrize("field_name", ["number", "date", "client"])
    def test_required_header_fields(self, field_name):
        doc = make_sample_document()
        if field_name == "number":
            doc.number = ""
        elif field_name == "date":
            doc.date = None
        else:
            doc.client.name = ""

        with pytest.raises(ValidationError):
            doc.validate()


class TestTotals:
    """Totals are derived bottom-up on every access."""

    def test_scenario_subtotal(self, sample_document):
        general = sample_document.sections[0]
        assert general.subsections[0].total == Decimal("500")
        assert general.subsections[1].total == Decimal("500")
        assert general.total == Decimal("1000")
        assert sample_document.subtotal == Decimal("1000")

    def test_totals_follow_edits(self, sample_document):
        sample_document.sections[0].subsections[0].items[0].quantity = Decimal("20")
        assert sample_document.subtotal == Decimal("1500")

    def test_legacy_section_items_count(self, sample_document):
        sample_document.sections.append(Section(title="Extras", items=[make_item("Paint", 2, 25)]))
        assert sample_document.subtotal == Decimal("1050")

    def test_stored_line_total_is_ignored(self):
        item = Item.from_dict({"description": "Cement", "quantity": "10", "rate": "50", "line_total": "99999"})
        assert item.line_total == Decimal("500")


class TestSerialization:
    def test_nested_tree_keeps_order_and_ids(self, sample_document):
        restored = Document.from_dict(sample_document.to_dict())

        assert restored == sample_document
        assert [s.name for s in restored.sections[0].subsections] == ["A", "B"]
        assert restored.sections[0].subsections[0].items[0].id == sample_document.sections[0].subsections[0].items[0].id

    def test_to_dict_with_totals(self, sample_document):
        data = sample_document.to_dict(include_totals=True)
        assert data["subtotal"] == "1000"
        assert data["sections"][0]["subsections"][1]["items"][0]["line_total"] == "500"

    def test_legacy_unit_key(self):
        item = Item.from_dict({"description": "Tiles", "quantity": 1, "rate": 1, "unit": "Sm"})
        assert item.unit_id == "Sm"


class TestParsing:
    def test_parse_payload(self):
        doc = parse_document(sample_payload(), default_currency="USD")

        assert doc.number is None
        assert doc.date == date(2024, 1, 15)
        assert doc.currency == "USD"
        assert doc.subtotal == Decimal("1000")
        # the blank row is dropped
        assert len(doc.sections[0].subsections[1].items) == 1

    def test_sections_must_be_a_list(self):
        payload = sample_payload()
        payload["sections"] = {"title": "General"}
        with pytest.raises(ValidationError):
            parse_document(payload)

    def test_client_must_be_an_object(self):
        payload = sample_payload()
        payload["client"] = "Kamau Holdings"
        with pytest.raises(ValidationError) as exc_info:
            parse_document(payload)
        assert exc_info.value.data["field"] == "client"

    @pytest.mark.parametrize(
        "mangle, field",
        [
            (lambda p: p.update(sections=["General"]), "sections[0]"),
            (lambda p: p["sections"][0].update(subsections="A"), "sections[0].subsections"),
            (lambda p: p["sections"][0]["subsections"].append(None), "sections[0].subsections[2]"),
            (lambda p: p["sections"][0]["subsections"][0].update(items={"description": "Cement"}),
             "sections[0].subsections[0].items"),
            (lambda p: p["sections"][0]["subsections"][0]["items"].append("Sand"),
             "sections[0].subsections[0].items[1]"),
            (lambda p: p["sections"][0].update(items=[7]), "sections[0].items[0]"),
        ],
    )
    def test_tree_nodes_must_be_objects_in_lists(self, mangle, field):
        payload = sample_payload()
        mangle(payload)
        with pytest.raises(ValidationError) as exc_info:
            parse_document(payload)
        assert exc_info.value.data["field"] == field

    @pytest.mark.parametrize(
        "raw, expected",
        [(None, "0"), ("", "0"), ("12,5", "12.5"), (0.1, "0.1"), (7, "7")],
    )
    def test_to_decimal(self, raw, expected):
        assert to_decimal(raw) == Decimal(expected)

    @pytest.mark.parametrize("raw", ["1,234.50", "1.234,50"])
    def test_to_decimal_rejects_mixed_separators(self, raw):
        with pytest.raises(ValidationError):
            to_decimal(raw, "rate")

    @pytest.mark.parametrize("raw", ["abc", True, "NaN", "inf"])
    def test_to_decimal_rejects(self, raw):
        with pytest.raises(ValidationError):
            to_decimal(raw, "rate")

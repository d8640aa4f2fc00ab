"""
Percentage copy tests.

The copy scales item rates, keeps quantities, and gets fresh ids throughout.
"""

from decimal import Decimal

import pytest

from boqdesk.copying import copy_boq, create_percentage_copy
from boqdesk.errors import NotFoundError, StoreError, ValidationError
from boqdesk.models import AuditLog, Boq
from tests.conftest import make_item, make_sample_document


def _all_ids(document):
    ids = {document.id}
    for section in document.sections:
        ids.add(section.id)
        for sub in section.subsections:
            ids.add(sub.id)
            ids.update(item.id for item in sub.items)
        ids.update(item.id for item in section.items)
    return ids


class TestCreatePercentageCopy:
    def test_forty_percent_scenario(self, sample_document):
        copy = create_percentage_copy(sample_document, 40, "BOQ-20240115-0002")

        cement, mason = list(copy.iter_items())
        assert copy.subtotal == Decimal("400")
        assert (cement.quantity, cement.rate) == (Decimal("10"), Decimal("20"))
        assert (mason.quantity, mason.rate) == (Decimal("5"), Decimal("40"))
        assert copy.number == "BOQ-20240115-0002"

    @pytest.mark.parametrize("percentage", ["0.5", "12.5", "33.33", "66.7", "99.99", "100"])
    def test_subtotal_scales_by_percentage(self, percentage):
        doc = make_sample_document()
        doc.sections[0].subsections[0].items.append(make_item("Ballast", "3.75", "1234.56"))

        copy = create_percentage_copy(doc, percentage, "N-1")

        expected = doc.subtotal * Decimal(percentage) / Decimal("100")
        assert abs(copy.subtotal - expected) < Decimal("0.0001")
        assert [i.quantity for i in copy.iter_items()] == [i.quantity for i in doc.iter_items()]

    def test_fresh_ids_and_untouched_original(self, sample_document):
        before = sample_document.to_dict()
        copy = create_percentage_copy(sample_document, 50, "N-1")

        assert _all_ids(copy).isdisjoint(_all_ids(sample_document))
        assert sample_document.to_dict() == before

    def test_non_numeric_fields_copied(self, sample_document):
        copy = create_percentage_copy(sample_document, 50, "N-1")

        assert copy.client == sample_document.client
        assert copy.project_title == sample_document.project_title
        assert [s.label for s in copy.sections[0].subsections] == ["Materials", "Labor"]
        assert copy.sections[0].subsections[0].items[0].unit_name == "Bag"

    @pytest.mark.parametrize("percentage", [0, -5, "100.01", 250, "abc"])
    def test_percentage_out_of_range(self, sample_document, percentage):
        with pytest.raises(ValidationError):
            create_percentage_copy(sample_document, percentage, "N-1")

    def test_new_number_required(self, sample_document):
        with pytest.raises(ValidationError):
            create_percentage_copy(sample_document, 40, "  ")


class TestCopyBoqService:
    def test_persists_copy_with_audit_entry(self, scope, make_boq):
        source = make_boq(tax_amount=Decimal("160.00"))

        copy = copy_boq(source.number, 40, scope, new_number="BOQ-20240115-0100")

        assert copy.id != source.id
        assert copy.status == "draft"
        assert copy.subtotal == Decimal("400.00")
        assert copy.tax_amount == Decimal("64.00")
        assert copy.total_amount == Decimal("464.00")

        entry = AuditLog.query.filter_by(entity_type="BOQ", entity_id=str(copy.id)).one()
        assert entry.action == "create"
        assert entry.details["copied_from"] == source.number
        assert entry.actor_name == scope.actor.name

    def test_generates_number_when_missing(self, scope, make_boq):
        source = make_boq()
        copy = copy_boq(source.number, 50, scope)

        assert copy.number.startswith("BOQ-")
        assert copy.number != source.number
        assert Boq.query.count() == 2

    def test_unknown_source(self, scope):
        with pytest.raises(NotFoundError):
            copy_boq("BOQ-19990101-0001", 40, scope)

    def test_duplicate_number_is_store_error(self, scope, make_boq):
        source = make_boq()
        with pytest.raises(StoreError) as exc_info:
            copy_boq(source.number, 40, scope, new_number=source.number)

        assert exc_info.value.constraint is True
        assert Boq.query.count() == 1

"""Tag assignment, tag lookup and the unit-count mirror."""

import logging

import pytest

from stockledger.extensions import db
from stockledger.models import ProductUnit
from stockledger.services import stock_service, unit_service
from stockledger.services.unit_service import DuplicateTagError, NotUnitTrackedError
from stockledger.validation import NotFoundError, ValidationError


def _ready(product_id):
    return stock_service.get_ready_stock(product_id)


def test_assign_tag_creates_unit_when_none_free(make_product):
    product = make_product()

    before = _ready(product.id)
    unit = unit_service.assign_tag(product.id, "TAG-001")

    assert unit.tag == "TAG-001"
    assert unit.status == "in_stock"
    assert _ready(product.id) == before + 1
    assert db.session.query(ProductUnit).filter_by(product_id=product.id).count() == 1


def test_assign_tag_absorbs_free_untagged_unit(make_product):
    product = make_product()
    unit_service.receive_units(product.id, 2)
    db.session.commit()

    before = _ready(product.id)
    unit_service.assign_tag(product.id, "TAG-001")

    # Tag went onto an existing unit: ready +1, no new unit
    assert _ready(product.id) == before + 1
    assert db.session.query(ProductUnit).filter_by(product_id=product.id).count() == 2


def test_tag_unique_across_products(make_product):
    a = make_product("Kaos A")
    b = make_product("Kaos B")
    unit_service.assign_tag(a.id, "SHARED")

    with pytest.raises(DuplicateTagError):
        unit_service.assign_tag(b.id, "SHARED")

    assert _ready(b.id) == 0
    assert db.session.query(ProductUnit).filter_by(tag="SHARED").count() == 1


def test_tag_unique_within_product(make_product, tag_units):
    product = make_product()
    tag_units(product, "A1")

    with pytest.raises(DuplicateTagError):
        unit_service.assign_tag(product.id, "A1")

    assert _ready(product.id) == 1


def test_tags_are_normalized_before_uniqueness_check(make_product):
    product = make_product()
    unit = unit_service.assign_tag(product.id, " ab 12 ")
    assert unit.tag == "AB12"

    with pytest.raises(DuplicateTagError):
        unit_service.assign_tag(product.id, "ab12")


def test_assign_tag_rejects_manual_product(make_product):
    product = make_product("Topi", unit_tracked=False, manual_stock=4)

    with pytest.raises(NotUnitTrackedError):
        unit_service.assign_tag(product.id, "TAG-001")


def test_assign_tag_missing_product():
    with pytest.raises(NotFoundError):
        unit_service.assign_tag(999999, "TAG-001")


def test_assign_tag_blank_tag(make_product):
    product = make_product()
    with pytest.raises(ValidationError):
        unit_service.assign_tag(product.id, "   ")


def test_find_by_tag(make_product, tag_units):
    product = make_product()
    tag_units(product, "A", "B")

    match = unit_service.find_by_tag("b")
    assert match.product.id == product.id
    assert match.unit.tag == "B"

    assert unit_service.find_by_tag("NOPE") is None


class _RowsQuery:
    """Stands in for a tag query over rows imported around the unique index."""

    def __init__(self, rows):
        self.rows = rows

    def filter(self, *criteria):
        return self

    def order_by(self, *clauses):
        return self

    def all(self):
        return self.rows


def test_find_by_tag_with_duplicate_rows_logs_and_keeps_lowest_id(make_product, tag_units, monkeypatch, caplog):
    shirt = make_product("Kaos")
    cap = make_product("Topi")
    first, = tag_units(shirt, "DUP")
    second, = tag_units(cap, "DUP-2")
    unit_ids = [first.id, second.id]
    product_ids = [first.product.id, second.product.id]
    monkeypatch.setattr(db.session(), "query", lambda *entities: _RowsQuery([first, second]))

    with caplog.at_level(logging.WARNING):
        match = unit_service.find_by_tag("dup")

    assert match.unit.id == unit_ids[0]
    assert match.product.id == shirt.id
    assert "tag_integrity_violation" in caplog.text
    assert str(unit_ids) in caplog.text
    assert str(product_ids) in caplog.text


def test_mirror_counts_all_in_stock_units(make_product, tag_units):
    product = make_product()
    unit_service.receive_units(product.id, 2)
    db.session.commit()
    tag_units(product, "X")  # absorbed by a received unit
    tag_units(product, "Y")  # absorbed by the other
    tag_units(product, "Z")  # new unit

    db.session.refresh(product)
    assert product.manual_stock == 3
    assert _ready(product.id) == 3


def test_list_units_filters_by_status(make_product, tag_units):
    product = make_product()
    tag_units(product, "A", "B")

    assert [u.tag for u in unit_service.list_units(product.id)] == ["A", "B"]
    assert unit_service.list_units(product.id, status="sold") == []

    with pytest.raises(ValidationError):
        unit_service.list_units(product.id, status="lost")

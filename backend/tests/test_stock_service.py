"""Ready-stock aggregation and manual stock adjustments."""

import pytest
from sqlalchemy import event

from stockledger.extensions import db
from stockledger.models import StockMovement
from stockledger.services import catalog_service, stock_service, unit_service
from stockledger.services.stock_service import InsufficientManualStockError
from stockledger.validation import ValidationError


def test_get_all_with_stock_figures(make_product, tag_units):
    shirt = make_product("Kaos")
    cap = make_product("Topi", unit_tracked=False, manual_stock=7)
    tag_units(shirt, "A", "B")
    unit_service.receive_units(shirt.id, 1)  # untagged: not ready, not counted as barcode
    db.session.commit()

    rows = {r["id"]: r for r in stock_service.get_all_with_stock()}

    assert rows[shirt.id]["ready_stock"] == 2
    assert rows[shirt.id]["barcode_count"] == 2
    assert rows[shirt.id]["manual_stock"] == 3
    assert rows[cap.id]["ready_stock"] == 7
    assert rows[cap.id]["barcode_count"] == 0


def test_get_all_with_stock_uses_two_reads(make_product, tag_units):
    for i in range(5):
        product = make_product(f"Kaos {i}")
        tag_units(product, f"T{i}-A", f"T{i}-B")
    make_product("Topi", unit_tracked=False, manual_stock=3)
    db.session.expire_all()

    statements = []

    def _record(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(db.engine, "before_cursor_execute", _record)
    try:
        rows = stock_service.get_all_with_stock()
    finally:
        event.remove(db.engine, "before_cursor_execute", _record)

    selects = [s for s in statements if s.lstrip().upper().startswith("SELECT")]
    assert len(rows) == 6
    assert len(selects) == 2


def test_inactive_products_hidden(make_product):
    product = make_product()
    catalog_service.delete_product(product.id)

    assert stock_service.get_all_with_stock() == []
    assert [r["id"] for r in stock_service.get_all_with_stock(include_inactive=True)] == [product.id]


def test_adjust_manual_stock_appends_movement(make_product):
    cap = make_product("Topi", unit_tracked=False, manual_stock=5)

    stock_service.adjust_manual_stock(cap.id, 3, "recount")
    stock_service.adjust_manual_stock(cap.id, -2, "damaged")

    assert stock_service.get_ready_stock(cap.id) == 6
    movements = stock_service.list_movements(product_id=cap.id)
    assert [(m.type, m.quantity, m.reason) for m in movements] == [
        ("out", 2, "damaged"),
        ("in", 3, "recount"),
    ]


def test_adjust_manual_stock_never_negative(make_product):
    cap = make_product("Topi", unit_tracked=False, manual_stock=2)

    with pytest.raises(InsufficientManualStockError):
        stock_service.adjust_manual_stock(cap.id, -3, "damaged")

    assert stock_service.get_ready_stock(cap.id) == 2
    assert db.session.query(StockMovement).count() == 0


def test_adjust_manual_stock_rejects_unit_product(make_product):
    shirt = make_product()
    with pytest.raises(ValidationError):
        stock_service.adjust_manual_stock(shirt.id, 1, "recount")


@pytest.mark.parametrize("delta", [0, 1.5, True, "3"])
def test_adjust_manual_stock_rejects_bad_delta(make_product, delta):
    cap = make_product("Topi", unit_tracked=False, manual_stock=2)
    with pytest.raises(ValidationError):
        stock_service.adjust_manual_stock(cap.id, delta, "recount")

"""Supplier receipts and the payment bridge."""

import pytest

from stockledger.extensions import db
from stockledger.models import ProductUnit, Sale, StockMovement
from stockledger.services import catalog_service, payment_service, procurement_service, stock_service, unit_service
from stockledger.services.procurement_service import ProcurementStateError
from stockledger.services.sales_service import InsufficientStockError
from stockledger.validation import NotFoundError, ValidationError


def test_receive_adds_stock_and_movements(make_product):
    cap = make_product("Topi", unit_tracked=False, manual_stock=2)
    shirt = make_product("Kaos")

    po = procurement_service.create_procurement(
        "CV Sumber Jaya",
        [{"product_id": cap.id, "quantity": 3, "cost": 10000}, {"product_id": shirt.id, "quantity": 2, "cost": 25000}],
    )
    assert po.document_number == "PO-000001"
    assert po.status == "pending"
    assert po.total_amount == 80000

    procurement_service.receive_procurement(po.id)

    assert stock_service.get_ready_stock(cap.id) == 5
    # Received units are untagged: counted by the mirror, not yet ready
    assert stock_service.get_ready_stock(shirt.id) == 0
    db.session.refresh(shirt)
    assert shirt.manual_stock == 2

    movements = db.session.query(StockMovement).order_by(StockMovement.id).all()
    assert [(m.product_id, m.type, m.quantity, m.reason) for m in movements] == [
        (cap.id, "in", 3, "procurement"),
        (shirt.id, "in", 2, "procurement"),
    ]
    assert all(m.reference_id == str(po.id) for m in movements)

    unit_service.assign_tag(shirt.id, "NEW-1")
    assert db.session.query(ProductUnit).filter_by(product_id=shirt.id).count() == 2
    assert stock_service.get_ready_stock(shirt.id) == 1


def test_receive_after_deactivation_for_both_stock_modes(make_product):
    cap = make_product("Topi", unit_tracked=False, manual_stock=2)
    shirt = make_product("Kaos")
    po = procurement_service.create_procurement(
        "CV Sumber Jaya",
        [{"product_id": cap.id, "quantity": 3}, {"product_id": shirt.id, "quantity": 2}],
    )
    catalog_service.delete_product(cap.id)
    catalog_service.delete_product(shirt.id)

    received = procurement_service.receive_procurement(po.id)

    assert received.status == "received"
    db.session.refresh(cap)
    db.session.refresh(shirt)
    assert (cap.manual_stock, shirt.manual_stock) == (5, 2)
    units = db.session.query(ProductUnit).filter_by(product_id=shirt.id).all()
    assert len(units) == 2
    assert all(u.tag is None and u.status == "in_stock" for u in units)
    movements = db.session.query(StockMovement).order_by(StockMovement.id).all()
    assert [(m.product_id, m.quantity, m.reason) for m in movements] == [
        (cap.id, 3, "procurement"),
        (shirt.id, 2, "procurement"),
    ]


def test_receive_twice_rejected(make_product):
    cap = make_product("Topi", unit_tracked=False)
    po = procurement_service.create_procurement("Supplier", [{"product_id": cap.id, "quantity": 1}])
    procurement_service.receive_procurement(po.id)

    with pytest.raises(ProcurementStateError):
        procurement_service.receive_procurement(po.id)
    with pytest.raises(ProcurementStateError):
        procurement_service.cancel_procurement(po.id)

    assert stock_service.get_ready_stock(cap.id) == 1


def test_cancel_pending(make_product):
    cap = make_product("Topi", unit_tracked=False)
    po = procurement_service.create_procurement("Supplier", [{"product_id": cap.id, "quantity": 1}])

    cancelled = procurement_service.cancel_procurement(po.id)

    assert cancelled.status == "cancelled"
    assert procurement_service.list_procurements("pending") == []
    with pytest.raises(ProcurementStateError):
        procurement_service.receive_procurement(po.id)


@pytest.mark.parametrize("supplier, items", [
    ("", [{"product_id": 1, "quantity": 1}]),
    ("Supplier", []),
    ("Supplier", [{"product_id": "1", "quantity": 1}]),
])
def test_invalid_procurements(db_session, supplier, items):
    with pytest.raises(ValidationError):
        procurement_service.create_procurement(supplier, items)


def test_procurement_not_found(db_session):
    with pytest.raises(NotFoundError):
        procurement_service.receive_procurement(999999)


def test_successful_payment_creates_sale(make_product, tag_units):
    shirt = make_product(price=75000)
    tag_units(shirt, "A", "B")

    intent = payment_service.create_payment_intent([{"product_id": shirt.id, "quantity": 2}])
    assert intent.status == "pending"
    assert intent.amount == 150000
    assert intent.payment_method == "qris"
    assert intent.order_reference.startswith("ORD_")
    assert stock_service.get_ready_stock(shirt.id) == 2

    settled = payment_service.record_provider_status(intent.order_reference, "00")

    assert settled.status == "success"
    sale = db.session.get(Sale, settled.sale_id)
    assert sale.payment_method == "qris"
    assert sale.payment_reference == intent.order_reference
    assert stock_service.get_ready_stock(shirt.id) == 0


def test_terminal_status_recorded_once(make_product, tag_units):
    shirt = make_product()
    tag_units(shirt, "A")
    intent = payment_service.create_payment_intent([{"product_id": shirt.id, "quantity": 1}])

    payment_service.record_provider_status(intent.order_reference, "canceled")
    again = payment_service.record_provider_status(intent.order_reference, "success")

    assert again.status == "canceled"
    assert again.sale_id is None
    assert db.session.query(Sale).count() == 0


def test_success_without_stock_records_failure(make_product, tag_units):
    from stockledger.services import sales_service

    shirt = make_product()
    tag_units(shirt, "A")
    intent = payment_service.create_payment_intent([{"product_id": shirt.id, "quantity": 1}])
    sales_service.create_sale([{"product_id": shirt.id, "quantity": 1}])

    with pytest.raises(InsufficientStockError):
        payment_service.record_provider_status(intent.order_reference, "success")

    recorded = payment_service.get_payment_intent(intent.order_reference)
    assert recorded.status == "success"
    assert recorded.sale_id is None
    assert recorded.failure_reason


@pytest.mark.parametrize("status", ["", "pending", "99"])
def test_non_terminal_status_rejected(db_session, status):
    with pytest.raises(ValidationError):
        payment_service.record_provider_status("ORD_X", status)


def test_unknown_order_reference(db_session):
    with pytest.raises(NotFoundError):
        payment_service.record_provider_status("ORD_MISSING", "success")

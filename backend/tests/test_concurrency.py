"""Unit-of-work wrapper: retries, storage failures and rollback."""

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from stockledger.extensions import db
from stockledger.models import Product, StockMovement
from stockledger.services import stock_service
from stockledger.services.concurrency import ConcurrentUpdateError, StorageError, run_with_retry


def _disk_error(*args, **kwargs):
    raise OperationalError("INSERT INTO stock_movements", {}, Exception("disk I/O error"))


def _stale():
    return StaleDataError("UPDATE statement on table 'products' expected to update 1 row(s); 0 were matched.")


def test_storage_failure_rolls_back_and_names_operation(make_product, monkeypatch):
    cap = make_product("Topi", unit_tracked=False, manual_stock=4)
    calls = []

    def _failing_movement(*args, **kwargs):
        calls.append(kwargs)
        _disk_error()

    monkeypatch.setattr(stock_service, "record_movement", _failing_movement)

    with pytest.raises(StorageError) as excinfo:
        stock_service.adjust_manual_stock(cap.id, 3)

    assert "adjust_manual_stock failed" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, OperationalError)
    # Storage failures are not retried
    assert len(calls) == 1

    db.session.expire_all()
    assert db.session.get(Product, cap.id).manual_stock == 4
    assert db.session.query(StockMovement).count() == 0


def test_conflicts_give_up_after_configured_attempts(app, db_session):
    calls = []

    def _always_stale():
        calls.append(1)
        raise _stale()

    with pytest.raises(ConcurrentUpdateError) as excinfo:
        run_with_retry(_always_stale, op_name="update_product", backoff_base=0)

    assert len(calls) == app.config["DB_RETRY_ATTEMPTS"]
    assert "update_product" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, StaleDataError)


def test_conflict_then_success_returns_result(db_session):
    calls = []

    def _stale_once():
        calls.append(1)
        if len(calls) == 1:
            raise _stale()
        return "ok"

    assert run_with_retry(_stale_once, op_name="update_product", backoff_base=0) == "ok"
    assert len(calls) == 2


def test_explicit_attempts_override_config(db_session):
    calls = []

    def _always_stale():
        calls.append(1)
        raise _stale()

    with pytest.raises(ConcurrentUpdateError):
        run_with_retry(_always_stale, op_name="update_product", attempts=1, backoff_base=0)

    assert len(calls) == 1


def test_other_errors_propagate_unchanged(db_session):
    calls = []

    def _boom():
        calls.append(1)
        raise KeyError("missing")

    with pytest.raises(KeyError):
        run_with_retry(_boom, op_name="update_product", backoff_base=0)

    assert len(calls) == 1


def test_storage_failure_maps_to_503(client, make_product, monkeypatch):
    cap = make_product("Topi", unit_tracked=False, manual_stock=4)
    monkeypatch.setattr(stock_service, "record_movement", _disk_error)

    response = client.post(f"/api/products/{cap.id}/stock-adjustments", json={"delta": 1})

    assert response.status_code == 503
    assert response.get_json() == {"error": "Storage unavailable"}

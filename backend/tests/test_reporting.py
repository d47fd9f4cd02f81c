"""Monthly audit merge, stock audit export and sales summary."""

import pytest

from stockledger.services import audit_service, reporting_service, sales_service, stock_service
from stockledger.time_utils import utcnow
from stockledger.validation import NotFoundError, ValidationError


def test_later_edit_after_close_wins_in_month_view(make_product):
    cap = make_product("Topi", unit_tracked=False, manual_stock=4)
    audit_service.start_or_resume("2026-10-05")
    audit_service.record_manual_count("2026-10-05", cap.id, 4)
    audit_service.close_session("2026-10-05")

    audit_service.record_manual_count("2026-10-05", cap.id, 6)

    audits = reporting_service.audits_by_month(2026, 10)

    assert [a["date"] for a in audits] == ["2026-10-05"]
    row = audits[0]["results"][0]
    assert (row["product_id"], row["physical_stock"]) == (cap.id, 6)
    assert audits[0]["updated_at"].endswith("Z")


def test_month_view_excludes_other_months(make_product):
    make_product("Topi", unit_tracked=False, manual_stock=4)
    audit_service.start_or_resume("2026-09-30")
    audit_service.close_session("2026-09-30")
    audit_service.start_or_resume("2026-10-01")

    assert [a["date"] for a in reporting_service.audits_by_month(2026, 10)] == ["2026-10-01"]
    assert [a["date"] for a in reporting_service.audits_by_month(2026, 9)] == ["2026-09-30"]
    assert reporting_service.audits_by_month(2026, 8) == []


@pytest.mark.parametrize("year, month", [(2026, 0), (2026, 13), (26, 1), ("2026", 1)])
def test_month_must_be_valid(db_session, year, month):
    with pytest.raises(ValidationError):
        reporting_service.audits_by_month(year, month)


def test_stock_audit_rows(make_product, tag_units):
    today = utcnow().date()
    cap = make_product("Topi", unit_tracked=False, manual_stock=5, min_stock=2)
    shirt = make_product("Kaos", min_stock=5)
    tag_units(shirt, "A", "B")

    stock_service.adjust_manual_stock(cap.id, 3, "recount")
    sales_service.create_sale([{"product_id": cap.id, "quantity": 2}])

    audit_service.start_or_resume(today)
    audit_service.record_manual_count(today, cap.id, 6)

    rows = {r["product_id"]: r for r in reporting_service.stock_audit_rows(today.year, today.month)}

    assert rows[cap.id]["system_stock"] == 6
    assert rows[cap.id]["physical_stock"] == 6
    assert rows[cap.id]["variance"] == 0
    assert (rows[cap.id]["stock_in"], rows[cap.id]["stock_out"]) == (3, 2)
    assert rows[cap.id]["audit_date"] == today.isoformat()
    assert rows[cap.id]["audit_completed"] is True
    assert rows[cap.id]["stock_status"] == "Sesuai"

    assert rows[shirt.id]["physical_stock"] is None
    assert rows[shirt.id]["variance"] is None
    assert rows[shirt.id]["ready_stock"] == 2
    assert rows[shirt.id]["audit_completed"] is False
    assert rows[shirt.id]["stock_status"] == "Stok Rendah"


def test_sales_summary(make_product, tag_units):
    today = utcnow().date()
    shirt = make_product("Kaos", price=50000)
    cap = make_product("Topi", unit_tracked=False, manual_stock=5, price=20000)
    tag_units(shirt, "A", "B")

    sales_service.create_sale([{"product_id": shirt.id, "quantity": 2}, {"product_id": cap.id, "quantity": 1}])
    sales_service.create_sale([{"product_id": cap.id, "quantity": 2}], {"payment_method": "qris"})

    summary = reporting_service.sales_summary(today.year, today.month)

    assert summary["total_revenue"] == 160000
    assert summary["total_transactions"] == 2
    assert summary["total_lines"] == 3
    assert summary["total_units"] == 5
    assert summary["average_transaction_value"] == 80000
    assert summary["revenue_by_payment_method"] == {"cash": 120000, "qris": 40000}
    assert [s["document_number"] for s in summary["sales"]] == ["S-000001", "S-000002"]


def test_reports_listing(make_product):
    make_product("Topi", unit_tracked=False, manual_stock=1)
    audit_service.start_or_resume("2026-10-01")
    audit_service.start_or_resume("2026-10-02")
    first = audit_service.close_session("2026-10-01")
    second = audit_service.close_session("2026-10-02")

    assert [r.id for r in reporting_service.list_reports()] == [second.id, first.id]
    assert [r.id for r in reporting_service.list_reports(start="2026-10-02")] == [second.id]
    assert reporting_service.get_report(first.id).document_number == "SA-000001"

    with pytest.raises(NotFoundError):
        reporting_service.get_report(99)

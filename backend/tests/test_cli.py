"""Flask CLI commands."""

import pytest


@pytest.fixture
def runner(app, db_session):
    return app.test_cli_runner()


def test_add_product_and_assign_tag(runner):
    result = runner.invoke(args=["catalog", "add-product", "--name", "Kaos Polos", "--price", "50000"])
    assert result.exit_code == 0, result.output
    assert "Created unit product: Kaos Polos" in result.output

    from stockledger.services import catalog_service
    product_id = str(catalog_service.list_products()[0].id)

    result = runner.invoke(args=["catalog", "assign-tag", product_id, "tag-9"])
    assert result.exit_code == 0, result.output
    assert "Tag TAG-9" in result.output
    assert "ready stock 1" in result.output

    result = runner.invoke(args=["catalog", "assign-tag", product_id, "TAG-9"])
    assert result.exit_code != 0
    assert "already assigned" in result.output

    result = runner.invoke(args=["catalog", "stock"])
    assert "Kaos Polos" in result.output


def test_manual_product_and_audit_close(runner):
    result = runner.invoke(args=["catalog", "add-product", "--name", "Topi", "--manual", "--stock", "4", "--min-stock", "5"])
    assert result.exit_code == 0, result.output
    assert "Created manual product" in result.output

    assert runner.invoke(args=["audits", "show", "--date", "2026-10-19"]).exit_code != 0

    from stockledger.services import audit_service
    audit_service.start_or_resume("2026-10-19")

    shown = runner.invoke(args=["audits", "show", "--date", "2026-10-19"])
    assert shown.exit_code == 0, shown.output
    assert "0/1 audited" in shown.output
    assert "Stok Rendah" in shown.output

    closed = runner.invoke(args=["audits", "close", "--date", "2026-10-19"])
    assert closed.exit_code == 0, closed.output
    assert "SA-000001" in closed.output


def test_show_rejects_bad_date(runner):
    result = runner.invoke(args=["audits", "show", "--date", "19/10/2026"])
    assert result.exit_code != 0

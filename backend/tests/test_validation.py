"""Column-driven payload validation."""

import pytest

from stockledger.models import Product
from stockledger.validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_product,
    require_quantity,
    validate_payload,
)

POLICY = ModelValidationPolicy(
    writable_fields={"name", "category", "price", "min_stock", "is_active"},
    required_on_create={"name"},
    extra_fields={"unit_tracked"},
)


def _validate(payload, partial=False):
    return validate_payload(model=Product, payload=payload, policy=POLICY, partial=partial)


def test_values_are_coerced_by_column_type():
    patch = _validate({
        "name": "  Kaos Polos ",
        "category": None,
        "price": " 50000 ",
        "min_stock": -2,
        "is_active": False,
        "unit_tracked": "passed through",
    })

    assert patch == {
        "name": "Kaos Polos",
        "category": None,
        "price": 50000,
        "min_stock": -2,
        "is_active": False,
        "unit_tracked": "passed through",
    }


@pytest.mark.parametrize("price", [1.5, 2.0, True, "1e3", "12a", "", "+5"])
def test_integer_columns_reject_non_integers(price):
    with pytest.raises(ValidationError):
        _validate({"name": "X", "price": price})


@pytest.mark.parametrize("payload", [
    {"name": "   "},
    {"name": None},
    {"name": "X" * 256},
    {"name": "X", "is_active": "true"},
    {"name": "X", "stock_mode": "manual"},
    {"name": "X", "bogus": 1},
    ["not", "a", "dict"],
])
def test_invalid_payloads(payload):
    with pytest.raises(ValidationError):
        _validate(payload)


def test_missing_required_fields_only_on_create():
    with pytest.raises(ValidationError, match="name"):
        _validate({"price": 1})

    assert _validate({"price": 1}, partial=True) == {"price": 1}
    assert _validate(None, partial=True) == {}


def test_product_rules():
    enforce_rules_product({"price": 0, "min_stock": 0})

    for patch in ({"price": -1}, {"cost": 1_000_000_000}, {"min_stock": -1}, {"unit_tracked": 1}):
        with pytest.raises(ValidationError):
            enforce_rules_product(patch)


def test_require_quantity():
    assert require_quantity(3) == 3
    assert require_quantity(0, "count", allow_zero=True) == 0

    for value in (0, -1, True, 1.0, "2"):
        with pytest.raises(ValidationError):
            require_quantity(value)

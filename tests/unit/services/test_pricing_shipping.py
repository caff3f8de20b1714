# tests/unit/services/test_pricing_shipping.py
from decimal import Decimal

import pytest

from plastik.core.enums import ShippingMethod
from plastik.services.pricing import calculate_price_without_fees, to_minor_units
from plastik.services.shipping import calculate_shipping_cost, parcel_weight


@pytest.mark.parametrize("price,expected", [
    (35.0, Decimal("32.20")),
    ("10", Decimal("9.20")),
    (19.99, Decimal("18.39")),
])
def test_discogs_fee_is_removed(price, expected):
    assert calculate_price_without_fees(price) == expected


def test_minor_units():
    assert to_minor_units(Decimal("32.20")) == 3220
    assert to_minor_units(18.39) == 1839


def test_parcel_weight_uses_default_record_weight():
    assert parcel_weight([None, None]) == 180 * 2 + 100
    assert parcel_weight([230.0]) == 330


def test_estonia_rates():
    assert calculate_shipping_cost(500, "EE", ShippingMethod.SMARTPOST) == Decimal("2.99")
    assert calculate_shipping_cost(500, "Estonia", ShippingMethod.LOCAL_PICKUP) == Decimal("0.00")


@pytest.mark.parametrize("weight,expected", [
    (2000, Decimal("15.00")),
    (2001, Decimal("18.00")),
    (5000, Decimal("24.00")),
    (5001, Decimal("29.00")),
])
def test_europe_weight_tiers(weight, expected):
    assert calculate_shipping_cost(weight, "DE") == expected


def test_rest_of_world_tiers():
    assert calculate_shipping_cost(1000, "US") == Decimal("25.00")
    assert calculate_shipping_cost(4000, "JP") == Decimal("30.00")
    assert calculate_shipping_cost(6000, "AU") == Decimal("55.00")


def test_country_names_are_accepted():
    assert calculate_shipping_cost(1000, "Germany") == Decimal("15.00")

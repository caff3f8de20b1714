"""
Shipping cost calculation by parcel weight and destination.

Rates are in EUR. Weight is in grams and includes packaging.
"""
import logging
from decimal import Decimal
from typing import Iterable, Optional

from plastik.core.enums import ShippingMethod

logger = logging.getLogger(__name__)

DEFAULT_RECORD_WEIGHT = 180     # grams per record when Discogs has no weight
PACKAGING_WEIGHT = 100          # grams per parcel

ESTONIA = {"EE", "ESTONIA"}
ESTONIA_RATES = {
    ShippingMethod.SMARTPOST: Decimal("2.99"),
    ShippingMethod.STANDARD: Decimal("2.99"),
    ShippingMethod.LOCAL_PICKUP: Decimal("0.00"),
}

EUROPE_RATES = [
    (2000, Decimal("15.00")),
    (3000, Decimal("18.00")),
    (5000, Decimal("24.00")),
    (None, Decimal("29.00")),
]

REST_OF_WORLD_RATES = [
    (3000, Decimal("25.00")),
    (5000, Decimal("30.00")),
    (None, Decimal("55.00")),
]

EUROPEAN_COUNTRIES = {
    "AT": "Austria", "BE": "Belgium", "BG": "Bulgaria", "HR": "Croatia", "CY": "Cyprus",
    "CZ": "Czech Republic", "DK": "Denmark", "FI": "Finland", "FR": "France", "DE": "Germany",
    "GR": "Greece", "HU": "Hungary", "IE": "Ireland", "IT": "Italy", "LV": "Latvia",
    "LT": "Lithuania", "LU": "Luxembourg", "MT": "Malta", "NL": "Netherlands", "NO": "Norway",
    "PL": "Poland", "PT": "Portugal", "RO": "Romania", "SK": "Slovakia", "SI": "Slovenia",
    "ES": "Spain", "SE": "Sweden", "CH": "Switzerland", "GB": "United Kingdom",
}
_EUROPE_LOOKUP = {code for code in EUROPEAN_COUNTRIES} | {name.upper() for name in EUROPEAN_COUNTRIES.values()}


def parcel_weight(weights: Iterable[Optional[float]]) -> float:
    """Total parcel weight for records of the given weights (None means unknown)."""
    return sum(w if w else DEFAULT_RECORD_WEIGHT for w in weights) + PACKAGING_WEIGHT


def _tiered(rates, weight: float) -> Decimal:
    for max_weight, cost in rates:
        if max_weight is None or weight <= max_weight:
            return cost
    return rates[-1][1]


def calculate_shipping_cost(
    total_weight: float,
    destination_country: str,
    shipping_method: ShippingMethod = ShippingMethod.STANDARD,
) -> Decimal:
    """
    Calculate shipping cost based on total weight and destination country

    Args:
        total_weight: Total weight in grams
        destination_country: ISO country code or English country name
        shipping_method: Only changes the price for Estonian deliveries
    """
    country = (destination_country or "").strip().upper()
    if country in ESTONIA:
        return ESTONIA_RATES[shipping_method]
    if shipping_method == ShippingMethod.LOCAL_PICKUP:
        logger.warning(f"Local pickup requested for {destination_country}; charging standard rate")
    if country in _EUROPE_LOOKUP:
        return _tiered(EUROPE_RATES, total_weight)
    return _tiered(REST_OF_WORLD_RATES, total_weight)

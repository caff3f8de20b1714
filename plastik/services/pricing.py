"""Price helpers for checkout."""
from decimal import Decimal, ROUND_HALF_UP

# Discogs takes an 8% fee on marketplace sales; the shop passes that saving on.
DISCOGS_FEE_PERCENTAGE = Decimal("0.08")


def calculate_price_without_fees(original_price) -> Decimal:
    price = Decimal(str(original_price)) * (Decimal("1") - DISCOGS_FEE_PERCENTAGE)
    return price.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def to_minor_units(amount) -> int:
    """Euros to cents, as Stripe expects."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

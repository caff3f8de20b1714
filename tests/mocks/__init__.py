from tests.mocks.mock_discogs import FakeDiscogs, make_listing, make_release
from tests.mocks.stripe_events import checkout_completed, event, payment_intent, sign

__all__ = [
    "FakeDiscogs",
    "make_listing",
    "make_release",
    "checkout_completed",
    "event",
    "payment_intent",
    "sign",
]

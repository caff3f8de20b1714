class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass

class MarketplaceError(BaseServiceError):
    """Base exception for marketplace (Discogs) errors."""
    pass

class DiscogsAPIError(MarketplaceError):
    """Raised when Discogs API calls fail."""
    pass

class MarketplaceUnavailableError(DiscogsAPIError):
    """Raised when Discogs keeps failing after every retry attempt (5xx, 429, timeouts)."""
    pass

class DiscogsPermanentError(DiscogsAPIError):
    """Raised for 4xx responses from Discogs. Never retried."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code

class ListingNotFoundError(DiscogsPermanentError):
    """Raised when a marketplace listing does not exist (any more)."""

    def __init__(self, message: str):
        super().__init__(message, status_code=404)

class ListingUnavailableError(MarketplaceError):
    """Raised when a shopper tries to buy a listing with nothing left in stock."""
    pass

class OrderServiceError(BaseServiceError):
    """Base exception for order service errors."""
    pass

class OrderNotFoundError(OrderServiceError):
    """Raised when an order is not found."""
    pass

class InvalidStatusTransitionError(OrderServiceError):
    """Raised when an order status change would move backwards or out of a final state."""
    pass

class OrderTotalMismatchError(OrderServiceError):
    """Raised when a supplied order total disagrees with its items."""
    pass

class CheckoutError(BaseServiceError):
    """Base exception for checkout session creation errors."""
    pass

class CartTooLargeError(CheckoutError):
    """Raised when a cart snapshot does not fit in the payment session metadata."""
    pass

class PaymentProviderError(CheckoutError):
    """Raised when Stripe rejects or fails a checkout request."""
    pass

class WebhookError(BaseServiceError):
    """Base exception for inbound payment webhook errors."""
    pass

class WebhookSignatureError(WebhookError):
    """Raised when the webhook signature is missing or does not match."""
    pass

class WebhookPayloadError(WebhookError):
    """Raised when a verified webhook carries a payload we cannot parse."""
    pass

class BatchContractError(BaseServiceError):
    """Raised when a batch function returns a different number of results than items."""
    pass

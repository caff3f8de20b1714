import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from plastik.core.config import Settings
from plastik.core.exceptions import (
    DiscogsPermanentError,
    ListingNotFoundError,
    MarketplaceUnavailableError,
)

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class DiscogsClient:
    """
    Asynchronous client for the Discogs REST API.

    Covers what the storefront needs from the marketplace: paging through the
    seller's inventory, reading single listings and full release metadata, and
    editing or deleting a listing once it sells.

    Every call goes through ``_make_request`` which applies a bounded timeout
    and the retry policy:
        - network errors, timeouts and 5xx: exponential backoff up to ``max_attempts``
        - 429: wait for ``Retry-After`` when Discogs sends one, then retry
        - 404: ListingNotFoundError, other 4xx: DiscogsPermanentError (never retried)
        - retries exhausted: MarketplaceUnavailableError

    Documentation: https://www.discogs.com/developers
    """

    BASE_URL = "https://api.discogs.com"

    def __init__(
        self,
        api_token: str,
        username: str,
        user_agent: str = "PlastikRecordStore/1.0",
        timeout: float = 30.0,
        max_attempts: int = 4,
        backoff_seconds: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            api_token: Discogs personal access token of the selling account
            username: Discogs username whose inventory is listed
            user_agent: Discogs rejects requests without a descriptive User-Agent
            timeout: per-request timeout in seconds
            max_attempts: total attempts per call, including the first
            backoff_seconds: base delay; attempt n waits base * 2**(n-1)
            transport: optional httpx transport (tests pass an httpx.MockTransport)
            sleep: coroutine used to wait between attempts
        """
        self.api_token = api_token
        self.username = username
        self.user_agent = user_agent
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self._transport = transport
        self._sleep = sleep
        logger.info(f"Initializing DiscogsClient for seller {username}")

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "DiscogsClient":
        return cls(
            api_token=settings.DISCOGS_API_TOKEN,
            username=settings.DISCOGS_USERNAME,
            user_agent=settings.DISCOGS_USER_AGENT,
            timeout=settings.DISCOGS_TIMEOUT_SECONDS,
            max_attempts=settings.DISCOGS_MAX_ATTEMPTS,
            backoff_seconds=settings.DISCOGS_BACKOFF_SECONDS,
            **kwargs,
        )

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for API requests"""
        return {
            "Authorization": f"Discogs token={self.api_token}",
            "User-Agent": self.user_agent,
            "Accept": "application/vnd.discogs.v2.discogs+json",
            "Content-Type": "application/json",
        }

    def _backoff_delay(self, attempt: int) -> float:
        return self.backoff_seconds * (2 ** (attempt - 1))

    @staticmethod
    def _retry_after(response: httpx.Response) -> Optional[float]:
        value = response.headers.get("Retry-After")
        if value is None:
            return None
        try:
            return max(0.0, float(value))
        except ValueError:
            return None

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict] = None,
        params: Optional[Dict] = None,
    ) -> Dict:
        """
        Make a request to the Discogs API

        Args:
            method: HTTP method (GET, POST, DELETE)
            endpoint: API endpoint (without base URL)
            data: Request payload for POST requests
            params: Query parameters

        Returns:
            Dict: Response data ({} for 204 No Content)

        Raises:
            ListingNotFoundError: 404
            DiscogsPermanentError: any other 4xx except 429
            MarketplaceUnavailableError: transient failures outlasted every attempt
        """
        url = f"{self.BASE_URL}/{endpoint.lstrip('/')}"
        headers = self._get_headers()

        logger.debug(f"Making {method} request to {url}")
        if params:
            logger.debug(f"Params: {params}")
        if data:
            logger.debug(f"Data: {json.dumps(data)[:500]}...")

        last_error = "no attempt made"
        for attempt in range(1, self.max_attempts + 1):
            delay = self._backoff_delay(attempt)
            try:
                async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                    response = await client.request(
                        method=method,
                        url=url,
                        headers=headers,
                        json=data,
                        params=params,
                    )
            except httpx.TimeoutException as e:
                last_error = f"Request timed out: {str(e)}"
                logger.warning(f"Discogs {method} {endpoint} attempt {attempt}/{self.max_attempts}: {last_error}")
            except httpx.RequestError as e:
                last_error = f"Network error: {str(e)}"
                logger.warning(f"Discogs {method} {endpoint} attempt {attempt}/{self.max_attempts}: {last_error}")
            else:
                if response.status_code in (200, 201, 204):
                    if response.status_code == 204 or not response.content:
                        return {}
                    return response.json()

                if response.status_code == 404:
                    raise ListingNotFoundError(f"Not found: {endpoint}")

                if response.status_code not in RETRYABLE_STATUS_CODES:
                    logger.error(f"Discogs API error {response.status_code}: {response.text}")
                    raise DiscogsPermanentError(
                        f"Request failed ({response.status_code}): {response.text}",
                        status_code=response.status_code,
                    )

                last_error = f"HTTP {response.status_code}: {response.text[:200]}"
                if response.status_code == 429:
                    retry_after = self._retry_after(response)
                    if retry_after is not None:
                        delay = retry_after
                    logger.warning(f"Discogs rate limit hit on {endpoint}, waiting {delay}s")
                else:
                    logger.warning(f"Discogs {method} {endpoint} attempt {attempt}/{self.max_attempts}: {last_error}")

            if attempt < self.max_attempts:
                await self._sleep(delay)

        logger.error(f"Discogs {method} {endpoint} failed after {self.max_attempts} attempts: {last_error}")
        raise MarketplaceUnavailableError(
            f"Discogs unavailable after {self.max_attempts} attempts: {last_error}"
        )

    # Inventory operations

    async def get_inventory(
        self,
        page: int = 1,
        per_page: int = 50,
        sort: str = "listed",
        sort_order: str = "desc",
        status: str = "For Sale",
        username: Optional[str] = None,
    ) -> Dict:
        """
        Get one page of the seller's inventory

        Returns:
            Dict: {"pagination": {...}, "listings": [...]}
        """
        params = {
            "page": page,
            "per_page": per_page,
            "sort": sort,
            "sort_order": sort_order,
        }
        if status:
            params["status"] = status
        return await self._make_request("GET", f"/users/{username or self.username}/inventory", params=params)

    async def get_listing(self, listing_id) -> Dict:
        """Get a single marketplace listing"""
        return await self._make_request("GET", f"/marketplace/listings/{listing_id}")

    async def get_release(self, release_id) -> Dict:
        """Get full release metadata (tracklist, videos, genres, styles, images)"""
        return await self._make_request("GET", f"/releases/{release_id}")

    async def update_listing(self, listing_id, listing_data: Dict) -> Dict:
        """
        Edit an existing listing. Discogs requires release_id, condition and price on every edit.
        """
        return await self._make_request("POST", f"/marketplace/listings/{listing_id}", data=listing_data)

    async def delete_listing(self, listing_id) -> Dict:
        """Remove a listing from the marketplace (used once its last copy sells)"""
        return await self._make_request("DELETE", f"/marketplace/listings/{listing_id}")

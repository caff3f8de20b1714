"""
Inventory service: the storefront's read/write path onto the Discogs inventory.

- Cache-aside reads of inventory pages, single listings and release metadata
- Normalisation into Listing (plastik.services.discogs.normalizer)
- Search / genre filtering, sorting and pagination the way the shop shows it
- Optional release enrichment, coalesced through a BatchProcessor so a page of
  24 records does not turn into 24 simultaneous Discogs calls
- Quantity decrements after a sale, with cache invalidation

Sold-out listings (quantity_available == 0) are dropped after normalisation,
so a stale cached page can never put one back in front of a shopper.
"""
import asyncio
import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from plastik.core.config import Settings
from plastik.core.enums import InventorySort, SearchCategory
from plastik.core.exceptions import ListingUnavailableError
from plastik.schemas.listing import InventoryOptions, InventoryPage, Listing
from plastik.services.batch_processor import BatchProcessor
from plastik.services.cache import (
    INVENTORY_PATTERN,
    CacheBackend,
    inventory_key,
    listing_key,
    release_key,
)
from plastik.services.discogs.client import DiscogsClient
from plastik.services.discogs.normalizer import merge_release_data, normalize_listing, normalize_listings

logger = logging.getLogger(__name__)

MAX_PER_PAGE = 100          # Discogs caps per_page at 100
SCAN_PAGE_SIZE = 100
RELATED_RECORDS = 3


def parse_sort(sort: Optional[str]) -> InventorySort:
    """Accept both ``price_asc`` and the URL form ``price-asc``; default newest first."""
    if not sort:
        return InventorySort.DATE_DESC
    try:
        return InventorySort(sort.replace("-", "_").lower())
    except ValueError:
        logger.warning(f"Unknown sort '{sort}', falling back to date_desc")
        return InventorySort.DATE_DESC


def matches_search(record: Listing, query: str, category: SearchCategory = SearchCategory.EVERYTHING) -> bool:
    """Case-insensitive search by category. "various" means the Various Artists compilations."""
    needle = query.strip().lower()
    if not needle:
        return True
    artist, title, label = record.artist.lower(), record.title.lower(), record.label.lower()

    if needle == "various" and category in (SearchCategory.EVERYTHING, SearchCategory.ARTISTS):
        return artist == "various"

    if category == SearchCategory.ARTISTS:
        return needle in artist
    if category == SearchCategory.RELEASES:
        return needle in title
    if category == SearchCategory.LABELS:
        return needle in label
    return needle in title or needle in artist or needle in label


def matches_genre(record: Listing, genre: Optional[str]) -> bool:
    if not genre:
        return True
    wanted = genre.lower()
    return any(g.lower() == wanted for g in record.genres + record.styles)


def _posted(record: Listing) -> datetime:
    try:
        return datetime.fromisoformat(record.date_added)
    except (TypeError, ValueError):
        return datetime.min


def sort_records(records: List[Listing], sort: InventorySort) -> List[Listing]:
    if sort in (InventorySort.DATE_DESC, InventorySort.DATE_ASC):
        # Mixed naive/aware timestamps cannot be compared; compare on UTC timestamps when aware.
        def key(r):
            posted = _posted(r)
            return posted.timestamp() if posted.tzinfo else (posted - datetime(1970, 1, 1)).total_seconds()
        return sorted(records, key=key, reverse=sort == InventorySort.DATE_DESC)
    if sort in (InventorySort.PRICE_ASC, InventorySort.PRICE_DESC):
        return sorted(records, key=lambda r: r.price, reverse=sort == InventorySort.PRICE_DESC)
    return sorted(records, key=lambda r: r.title.lower(), reverse=sort == InventorySort.TITLE_DESC)


def make_release_fetcher(client: DiscogsClient, cache: CacheBackend, ttl_seconds: int):
    """
    Build the batch function behind the release BatchProcessor.

    Given release ids, returns one release payload (or None when Discogs could
    not supply it) per id, in order. Cached releases are served without a call.
    """

    async def fetch_releases(release_ids: List[int]) -> List[Optional[Dict[str, Any]]]:
        results: List[Optional[Dict[str, Any]]] = [None] * len(release_ids)
        missing: Dict[int, List[int]] = {}

        for index, release_id in enumerate(release_ids):
            cached = await cache.get(release_key(release_id))
            if cached is not None:
                results[index] = cached
            else:
                missing.setdefault(release_id, []).append(index)

        if missing:
            ids = list(missing)
            fetched = await asyncio.gather(*[client.get_release(rid) for rid in ids], return_exceptions=True)
            for release_id, payload in zip(ids, fetched):
                if isinstance(payload, Exception):
                    logger.warning(f"Could not fetch release {release_id}: {payload}")
                    continue
                await cache.set(release_key(release_id), payload, ttl_seconds)
                for index in missing[release_id]:
                    results[index] = payload

        logger.debug(f"Release batch: {len(release_ids)} requested, {len(missing)} fetched upstream")
        return results

    return fetch_releases


def build_release_batcher(client: DiscogsClient, cache: CacheBackend, settings: Settings) -> BatchProcessor:
    return BatchProcessor(
        make_release_fetcher(client, cache, settings.RELEASE_CACHE_TTL),
        max_batch_size=settings.BATCH_MAX_SIZE,
        max_wait_time=settings.BATCH_MAX_WAIT_SECONDS,
        name="discogs-releases",
    )


class InventoryService:
    """
    Read and update the seller's Discogs inventory through the cache.

    Args:
        client: DiscogsClient for the selling account
        cache: any CacheBackend
        release_batcher: BatchProcessor used for release enrichment
        settings: TTLs and scan limits
    """

    def __init__(
        self,
        client: DiscogsClient,
        cache: CacheBackend,
        release_batcher: BatchProcessor,
        settings: Settings,
    ):
        self.client = client
        self.cache = cache
        self.release_batcher = release_batcher
        self.inventory_ttl = settings.INVENTORY_CACHE_TTL
        self.listing_ttl = settings.LISTING_CACHE_TTL
        self.max_scan_pages = max(1, settings.DISCOGS_MAX_SCAN_PAGES)

    async def _fetch_inventory_page(
        self,
        page: int,
        per_page: int,
        sort: str,
        sort_order: str,
        use_cache: bool = True,
    ) -> Dict[str, Any]:
        key = inventory_key(self.client.username, sort, sort_order, page, per_page)
        if use_cache:
            cached = await self.cache.get(key)
            if cached is not None:
                logger.debug(f"Cache hit {key}")
                return cached

        data = await self.client.get_inventory(page=page, per_page=per_page, sort=sort, sort_order=sort_order)
        await self.cache.set(key, data, self.inventory_ttl)
        return data

    async def _scan_inventory(self, sort: str, sort_order: str, use_cache: bool) -> List[Listing]:
        """Walk upstream pages (bounded) and return every available listing."""
        records: List[Listing] = []
        page = 1
        while page <= self.max_scan_pages:
            data = await self._fetch_inventory_page(page, SCAN_PAGE_SIZE, sort, sort_order, use_cache)
            records.extend(r for r in normalize_listings(data.get("listings", [])) if r.is_available)
            pages = (data.get("pagination") or {}).get("pages", 1)
            if page >= pages:
                break
            page += 1
        else:
            logger.warning(f"Inventory scan stopped at {self.max_scan_pages} pages; results may be partial")
        return records

    async def get_inventory(
        self,
        query: Optional[str] = None,
        sort: Optional[str] = None,
        page: int = 1,
        per_page: int = 20,
        options: Optional[InventoryOptions] = None,
    ) -> InventoryPage:
        """
        Get one page of available listings.

        Args:
            query: free-text search (matched according to options.category)
            sort: one of InventorySort (``date-desc`` style accepted)
            page: 1-based page number
            per_page: page size (capped at 100)
            options: category/genre filters, enrichment and cache bypass

        Raises:
            MarketplaceUnavailableError: Discogs is down and nothing was cached
        """
        options = options or InventoryOptions()
        page = max(1, page)
        per_page = max(1, min(per_page, MAX_PER_PAGE))
        sort_enum = parse_sort(sort)
        upstream_sort, upstream_order = sort_enum.upstream
        if options.sort_order:
            upstream_order = options.sort_order
        use_cache = options.cache_buster is None

        if query or options.genre:
            available = await self._scan_inventory(upstream_sort, upstream_order, use_cache)
            filtered = [
                r for r in available
                if (not query or matches_search(r, query, options.category)) and matches_genre(r, options.genre)
            ]
            filtered = sort_records(filtered, sort_enum)
            total_records = len(filtered)
            total_pages = math.ceil(total_records / per_page) if total_records else 0
            start = (page - 1) * per_page
            records = filtered[start:start + per_page]
        else:
            data = await self._fetch_inventory_page(page, per_page, upstream_sort, upstream_order, use_cache)
            records = [r for r in normalize_listings(data.get("listings", [])) if r.is_available]
            records = sort_records(records, sort_enum)
            pagination = data.get("pagination") or {}
            total_records = pagination.get("items", len(records))
            total_pages = pagination.get("pages", math.ceil(total_records / per_page) if total_records else 0)

        if options.fetch_full_release_data and records:
            records = await self.enrich(records)

        logger.info(f"Inventory page {page} ({per_page}/page): {len(records)} records, sort={sort_enum.value}")
        return InventoryPage(
            records=records,
            page=page,
            per_page=per_page,
            total_records=total_records,
            total_pages=total_pages,
        )

    async def enrich(self, records: Sequence[Listing]) -> List[Listing]:
        """Attach tracklists, videos and full genre/style data to each record."""
        targets = [r for r in records if r.release_id]
        results = await asyncio.gather(
            *[self.release_batcher.add(r.release_id) for r in targets],
            return_exceptions=True,
        )
        releases = {}
        for record, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning(f"Release enrichment failed for listing {record.id}: {result}")
                continue
            releases[record.id] = result
        return [merge_release_data(r, releases.get(r.id)) for r in records]

    async def get_listing(self, listing_id, fresh: bool = False) -> Listing:
        """
        Read one listing (cache-aside unless ``fresh``).

        Raises:
            ListingNotFoundError: Discogs has no such listing
            ListingUnavailableError: the listing exists but has nothing left to sell
        """
        key = listing_key(listing_id)
        raw = None if fresh else await self.cache.get(key)
        if raw is None:
            raw = await self.client.get_listing(listing_id)
            await self.cache.set(key, raw, self.listing_ttl)

        record = normalize_listing(raw)
        if not record.is_available:
            raise ListingUnavailableError(f"Listing {listing_id} is no longer available")
        return record

    async def get_record(self, listing_id, full: bool = True) -> Tuple[Listing, List[Listing]]:
        """Listing detail plus a few related records (same artist first, then newest arrivals)."""
        record = await self.get_listing(listing_id)
        if full:
            record = (await self.enrich([record]))[0]

        related: List[Listing] = []
        try:
            newest = await self.get_inventory(page=1, per_page=SCAN_PAGE_SIZE)
            candidates = [r for r in newest.records if r.id != record.id]
            same_artist = [r for r in candidates if r.artist == record.artist]
            others = [r for r in candidates if r.artist != record.artist]
            related = (same_artist + others)[:RELATED_RECORDS]
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Could not load related records for {listing_id}: {e}")
        return record, related

    async def update_inventory(self, listing_id, quantity_delta: int) -> int:
        """
        Apply a quantity change to a live Discogs listing.

        The listing is read fresh from Discogs. When the new quantity reaches
        zero the listing is removed from the marketplace; otherwise it is
        edited with the new quantity. Cached entries for the listing and every
        cached inventory page are invalidated on success.

        Returns:
            int: the listing's new quantity
        """
        raw = await self.client.get_listing(listing_id)
        current = normalize_listing(raw)
        new_quantity = max(0, current.quantity_available + quantity_delta)

        if new_quantity == 0:
            await self.client.delete_listing(listing_id)
            logger.info(f"Removed listing {listing_id} from Discogs inventory (sold out)")
        else:
            payload = {
                "release_id": current.release_id,
                "condition": raw.get("condition"),
                "price": current.price,
                "status": raw.get("status", "For Sale"),
                "quantity": new_quantity,
            }
            if raw.get("sleeve_condition"):
                payload["sleeve_condition"] = raw["sleeve_condition"]
            await self.client.update_listing(listing_id, payload)
            logger.info(f"Listing {listing_id} quantity {current.quantity_available} -> {new_quantity}")

        await self.cache.invalidate(listing_key(listing_id))
        await self.cache.invalidate(INVENTORY_PATTERN)
        return new_quantity

    async def refresh_inventory(self) -> Dict[str, int]:
        """Drop cached inventory pages and warm the new-arrivals and main views."""
        cleared = await self.cache.invalidate(INVENTORY_PATTERN)
        buster = datetime.now().isoformat()
        arrivals = await self.get_inventory(page=1, per_page=20, options=InventoryOptions(cache_buster=buster))
        main = await self.get_inventory(page=1, per_page=50, options=InventoryOptions(cache_buster=buster))
        logger.info("Inventory refresh complete - fresh data fetched")
        return {
            "cleared": cleared,
            "new_arrivals": len(arrivals.records),
            "all_records": len(main.records),
        }

"""
Translation of raw Discogs payloads into the storefront's Listing shape.

This is the only place that knows what a Discogs listing or release looks
like; everything downstream works with plastik.schemas.listing.Listing.
"""
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from plastik.schemas.listing import ImageInfo, Listing, Track, Video

logger = logging.getLogger(__name__)

# Discogs disambiguates artists that share a name: "Nirvana (2)"
_DISAMBIGUATION = re.compile(r"\s+\(\d+\)$")

DEFAULT_RECORD_WEIGHT = 180  # grams, a standard 12" LP


def _unique(values: Iterable[Optional[str]]) -> List[str]:
    seen = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


def _clean_artist(name: str) -> str:
    return _DISAMBIGUATION.sub("", name.strip())


def _artist_name(release: Dict[str, Any]) -> str:
    artist = release.get("artist")
    if isinstance(artist, list):
        return ", ".join(_clean_artist(a) for a in artist if a) or "Unknown Artist"
    if artist:
        return _clean_artist(str(artist))
    artists = release.get("artists") or []
    names = [_clean_artist(a.get("name", "")) for a in artists if isinstance(a, dict) and a.get("name")]
    return ", ".join(names) or "Unknown Artist"


def _label_name(release: Dict[str, Any]) -> str:
    label = release.get("label")
    if isinstance(label, list):
        return label[0] if label else "Unknown Label"
    if label:
        return str(label)
    labels = release.get("labels") or []
    if labels and isinstance(labels[0], dict):
        return labels[0].get("name") or "Unknown Label"
    return "Unknown Label"


def _formats(release: Dict[str, Any]) -> List[str]:
    fmt = release.get("format")
    if isinstance(fmt, list):
        return [str(f).strip() for f in fmt if f]
    if isinstance(fmt, str):
        return [part.strip() for part in fmt.split(",") if part.strip()]
    formats = release.get("formats") or []
    return _unique(f.get("name") for f in formats if isinstance(f, dict))


def _images(payload: Dict[str, Any]) -> List[ImageInfo]:
    images = []
    for image in payload.get("images") or []:
        if isinstance(image, dict) and image.get("uri"):
            images.append(ImageInfo(
                type=image.get("type", "secondary"),
                uri=image.get("uri", ""),
                uri150=image.get("uri150", ""),
                resource_url=image.get("resource_url", ""),
                width=image.get("width") or 0,
                height=image.get("height") or 0,
            ))
    return images


def _price(listing: Dict[str, Any]):
    price = listing.get("price")
    if isinstance(price, dict):
        value, currency = price.get("value"), price.get("currency") or "EUR"
    else:
        value, currency = price, "EUR"
    try:
        return float(value), currency
    except (TypeError, ValueError):
        return 0.0, currency


def _quantity(listing: Dict[str, Any]) -> int:
    """Copies left. Only For Sale listings have any; without an explicit quantity that is one copy."""
    if listing.get("status", "For Sale") != "For Sale":
        return 0
    raw = listing.get("quantity")
    if raw is None:
        return 1
    try:
        return max(0, int(raw))
    except (TypeError, ValueError):
        return 0


def normalize_listing(listing: Dict[str, Any]) -> Listing:
    """
    Map a raw Discogs marketplace listing (inventory row or single-listing read)
    to a Listing. Raises KeyError/ValueError when the payload has no usable id.
    """
    release = listing.get("release") or {}
    price, currency = _price(listing)
    images = _images(release)
    cover = (images[0].uri if images else None) or release.get("thumbnail") or release.get("thumb") or "/placeholder.svg"

    weight = listing.get("weight")
    try:
        weight = float(weight) if weight is not None else None
    except (TypeError, ValueError):
        weight = None

    return Listing(
        id=int(listing["id"]),
        title=release.get("title") or "Untitled",
        artist=_artist_name(release),
        price=price,
        currency=currency,
        condition=listing.get("condition") or "Unknown",
        sleeve_condition=listing.get("sleeve_condition"),
        status=listing.get("status") or "Unknown",
        quantity_available=_quantity(listing),
        weight=weight,
        format=_formats(release),
        label=_label_name(release),
        catalog_number=release.get("catalog_number") or "",
        release_id=release.get("id"),
        genres=_unique(
            list(release.get("genre") or [])
            + list(release.get("genres") or [])
            + list(listing.get("genre") or [])
        ),
        styles=_unique(list(release.get("styles") or []) + list(listing.get("styles") or [])),
        cover_image=cover,
        images=images,
        date_added=listing.get("posted"),
    )


def normalize_listings(listings: Iterable[Dict[str, Any]]) -> List[Listing]:
    """Normalize a page of listings, skipping (and logging) rows that cannot be mapped."""
    records = []
    for raw in listings or []:
        try:
            records.append(normalize_listing(raw))
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Error mapping listing {raw.get('id') if isinstance(raw, dict) else raw!r}: {e}")
    return records


def merge_release_data(listing: Listing, release: Optional[Dict[str, Any]]) -> Listing:
    """Return a copy of ``listing`` enriched with full release metadata."""
    if not release:
        return listing

    tracks = [
        Track(
            position=t.get("position", ""),
            title=t.get("title", ""),
            duration=t.get("duration", ""),
            type_=t.get("type_", "track"),
        )
        for t in release.get("tracklist") or []
        if isinstance(t, dict)
    ]
    videos = [
        Video(
            uri=v["uri"],
            title=v.get("title", ""),
            description=v.get("description", ""),
            duration=v.get("duration") or 0,
            embed=v.get("embed", True),
        )
        for v in release.get("videos") or []
        if isinstance(v, dict) and v.get("uri")
    ]
    images = _images(release) or listing.images
    update = {
        "tracks": tracks,
        "videos": videos,
        "genres": _unique(listing.genres + list(release.get("genres") or [])),
        "styles": _unique(listing.styles + list(release.get("styles") or [])),
        "images": images,
        "cover_image": images[0].uri if images else listing.cover_image,
        "country": release.get("country") or listing.country,
        "released": release.get("released_formatted") or release.get("released") or listing.released,
    }
    if listing.label == "Unknown Label":
        update["label"] = _label_name(release)
    if not listing.format:
        update["format"] = _formats(release)
    return listing.model_copy(update=update)

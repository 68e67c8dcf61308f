import re
import requests
from requests.exceptions import RequestException
import logging
from decimal import Decimal
from typing import List, Dict, Any, Optional
from urllib.parse import urljoin, urlparse

from app.core.config import settings
from app.gateway.ledger import InvalidAmountError, to_decimal
from app.gateway.registry import Registry, RegistryEntry, RegistrationError, normalize_slug

logger = logging.getLogger(__name__)


def fetch_active_listings() -> List[Dict[str, Any]]:
    """
    Fetches all API listings from the configured listings service.

    Returns:
        A list of listing dictionaries (only those with status "active").
        Returns an empty list if LISTINGS_API_URL is not configured.

    Raises:
        RequestException: If the HTTP request to the listings service fails.
        ValueError: If the response body is not a recognised listings payload.
    """
    if not settings.LISTINGS_API_URL:
        return []

    api_url = urljoin(str(settings.LISTINGS_API_URL).rstrip("/") + "/", "listings")
    try:
        response = requests.get(api_url, timeout=10)
        response.raise_for_status()

        data = response.json()
        if isinstance(data, dict) and "data" in data:
            # {success, data: [...]} envelope used by the listings API
            listings = data.get("data")
        elif isinstance(data, list):
            listings = data
        else:
            raise ValueError(f"Unexpected data structure from listings API: {type(data)}")

        if not isinstance(listings, list):
            raise ValueError(f"Listings API 'data' field is not a list: {type(listings)}")

        active = [
            listing for listing in listings
            if isinstance(listing, dict) and listing.get("status", "active") == "active"
        ]
        logger.info(f"Fetched {len(active)} active listing(s) of {len(listings)} from {api_url}")
        return active

    except RequestException as e:
        logger.error(f"Error fetching listings from listings API ({api_url}): {e}")
        raise


def slugify(name: str) -> str:
    """Lowercase, alphanumerics and dashes only ("My Weather API" -> "my-weather-api")."""
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def derive_slug(listing: Dict[str, Any]) -> Optional[str]:
    """
    Pick the routing slug for a listing.

    Priority:
    1. An explicit "slug" field
    2. The last path segment of a "gateway_url" field
    3. The slugified listing name
    """
    slug = listing.get("slug")
    if slug:
        return normalize_slug(str(slug))

    gateway_url = listing.get("gateway_url") or listing.get("gatewayUrl")
    if gateway_url:
        segments = [s for s in urlparse(str(gateway_url)).path.split("/") if s]
        if segments:
            return segments[-1]

    name = listing.get("name")
    if name:
        return slugify(str(name)) or None

    return None


def listing_to_entry(listing: Dict[str, Any]) -> RegistryEntry:
    """
    Convert a listing record into a registry entry.

    Raises:
        ValueError: If the listing lacks a usable slug, base URL, price or owner
    """
    listing_id = str(listing.get("id") or "")
    base_url = str(listing.get("base_url") or listing.get("baseUrl") or "").strip()
    if not base_url:
        raise ValueError("empty base_url")

    parsed = urlparse(base_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"invalid URL: {base_url}")

    slug = derive_slug(listing)
    if not slug:
        raise ValueError("no slug, gateway_url or name to route by")

    raw_price = listing.get("price_per_call", listing.get("pricePerCall"))
    try:
        price = to_decimal(raw_price)
    except InvalidAmountError as e:
        raise ValueError(f"invalid price_per_call: {raw_price!r}") from e

    owner = str(listing.get("owner") or "").strip()
    if not owner:
        raise ValueError("missing owner")

    return RegistryEntry(
        slug=slug,
        origin_base_url=base_url,
        price_per_call=price,
        owner=owner,
        listing_id=listing_id or slug,
    )


def seed_registry(registry: Registry, listings: List[Dict[str, Any]]) -> int:
    """
    Register every usable listing with the gateway.

    Listings that cannot be converted are skipped with a warning.

    Returns:
        Number of listings registered
    """
    registered = 0
    for listing in listings:
        listing_id = listing.get("id", "<no id>")
        try:
            entry = listing_to_entry(listing)
            registry.register(entry)
            registered += 1
        except (ValueError, RegistrationError) as e:
            logger.warning(f"Skipping listing {listing_id} - {e}")

    logger.info(f"Seeded gateway registry with {registered} listing(s)")
    return registered

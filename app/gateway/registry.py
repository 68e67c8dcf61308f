# app/gateway/registry.py
"""
Registry of APIs reachable through the gateway.

Each entry maps a slug (the first path segment(s) of a gateway URL) to
the origin API it fronts, together with the price per call and the
wallet that receives settlement credits.

Registration is rare compared to lookups, so a single lock guards the
whole table. Lookups work on a snapshot taken under the lock.
"""
import logging
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

from app.gateway.ledger import as_number

logger = logging.getLogger(__name__)

# Slugs that would shadow the management routes
RESERVED_SLUGS = {"gateway", "docs", "redoc", "openapi.json"}


class RegistrationError(ValueError):
    """Raised when an entry cannot be registered."""


@dataclass(frozen=True)
class RegistryEntry:
    """A registered origin API."""
    slug: str
    origin_base_url: str
    price_per_call: Decimal
    owner: str
    listing_id: str

    def to_dict(self) -> dict:
        """Wire representation used by the management endpoints."""
        return {
            "slug": self.slug,
            "originalBaseUrl": self.origin_base_url,
            "pricePerCall": as_number(self.price_per_call),
            "owner": self.owner,
            "apiId": self.listing_id,
        }


def normalize_slug(slug: str) -> str:
    """Strip surrounding whitespace and slashes from a slug."""
    return slug.strip().strip("/")


def validate_entry(entry: RegistryEntry) -> None:
    """
    Check an entry before it is stored.

    Raises:
        RegistrationError: If the slug, origin URL, price or owner is unusable
    """
    if not entry.slug:
        raise RegistrationError("Slug must not be empty")
    if entry.slug.split("/")[0] in RESERVED_SLUGS:
        raise RegistrationError(f"Slug '{entry.slug}' is reserved")
    if any(not segment for segment in entry.slug.split("/")):
        raise RegistrationError(f"Slug '{entry.slug}' contains an empty path segment")

    parsed = urlparse(entry.origin_base_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise RegistrationError(f"Invalid origin URL: {entry.origin_base_url}")

    if entry.price_per_call < 0:
        raise RegistrationError("Price per call must not be negative")
    if not entry.owner:
        raise RegistrationError("Owner must not be empty")


class Registry:
    """Thread-safe slug -> RegistryEntry table."""

    def __init__(self):
        self._entries: Dict[str, RegistryEntry] = {}
        self._lock = threading.Lock()

    def register(self, entry: RegistryEntry) -> RegistryEntry:
        """
        Insert or replace the entry keyed by its slug.

        The origin is not contacted at registration time.

        Returns:
            The stored entry

        Raises:
            RegistrationError: If the entry fails validation
        """
        validate_entry(entry)

        with self._lock:
            replaced = entry.slug in self._entries
            self._entries[entry.slug] = entry

        action = "Re-registered" if replaced else "Registered"
        logger.info(f"Gateway: {action} {entry.slug} -> {entry.origin_base_url} (price {entry.price_per_call})")
        return entry

    def get(self, slug: str) -> Optional[RegistryEntry]:
        with self._lock:
            return self._entries.get(slug)

    def list(self) -> List[RegistryEntry]:
        """Snapshot of all entries, ordered by slug."""
        with self._lock:
            entries = list(self._entries.values())
        return sorted(entries, key=lambda e: e.slug)

    def resolve(self, path: str) -> Optional[Tuple[RegistryEntry, str]]:
        """
        Find the entry serving an inbound path.

        The path must start with "/{slug}/". When several slugs qualify
        the longest one wins. The remainder keeps its leading "/".

        Args:
            path: Inbound request path, without query string

        Returns:
            (entry, remainder) or None if no slug matches
        """
        with self._lock:
            entries = list(self._entries.values())

        best: Optional[RegistryEntry] = None
        for entry in entries:
            prefix = f"/{entry.slug}/"
            if not path.startswith(prefix):
                continue
            if best is None or len(entry.slug) > len(best.slug):
                best = entry

        if best is None:
            return None

        remainder = path[len(best.slug) + 1:]
        return best, remainder

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

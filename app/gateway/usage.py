# app/gateway/usage.py
"""
Usage log for proxied calls.

One JSON line is appended per forwarded request, billed or not:
- listing_id / slug: which API was called
- caller_identity: the consumer wallet
- success: origin answered with a status below 400 and the call settled
- cost: amount actually moved (0 when nothing was charged)
- status_code: origin status, or None when the origin was unreachable
- error: short reason for unsuccessful calls

Requests rejected at admission (no route, no identity, no funds) are
never recorded.

Writes never raise: a broken usage log must not fail a paid call.
"""
import json
import logging
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from app.gateway.ledger import InvalidAmountError, as_number, to_decimal

logger = logging.getLogger(__name__)


def generate_request_id() -> str:
    """Generate a short request ID for correlating log lines."""
    return str(uuid.uuid4())[:8]


@dataclass
class UsageEvent:
    """A single proxied call as seen by the usage log."""
    listing_id: str
    caller_identity: str
    success: bool
    cost: Decimal
    slug: Optional[str] = None
    status_code: Optional[int] = None
    error: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    request_id: str = field(default_factory=generate_request_id)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["cost"] = as_number(self.cost)
        return data


class UsageRecorder:
    """Append-only JSON lines sink."""

    def __init__(self, log_path: Union[str, Path]):
        self.log_path = Path(log_path)
        self._lock = threading.Lock()

    def _ensure_directory(self) -> bool:
        try:
            log_dir = self.log_path.parent
            if not log_dir.exists():
                log_dir.mkdir(parents=True, exist_ok=True)
                logger.info(f"Created usage log directory: {log_dir}")
            return True
        except OSError as e:
            logger.error(f"Failed to create usage log directory: {e}")
            return False

    def record(self, event: UsageEvent) -> Optional[str]:
        """
        Append a usage event.

        Returns:
            The event's request_id, or None if it could not be written
        """
        try:
            line = json.dumps(event.to_dict())
            if not self._ensure_directory():
                return None
            with self._lock:
                with open(self.log_path, "a") as f:
                    f.write(line + "\n")

            logger.debug(f"Usage event recorded: {event.slug} success={event.success} [{event.request_id}]")
            return event.request_id

        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to write usage event: {e}")
            return None

    def _iter_events(self):
        if not self.log_path.exists():
            return
        with open(self.log_path, "r") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    continue

    def read_usage_log(
        self,
        max_entries: int = 100,
        listing_id: Optional[str] = None,
        caller_identity: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Read usage events, most recent first.

        Args:
            max_entries: Maximum number of events to return
            listing_id: Only events for this listing (optional)
            caller_identity: Only events for this wallet (optional)
        """
        try:
            events = []
            for event in self._iter_events():
                if listing_id and event.get("listing_id") != listing_id:
                    continue
                if caller_identity and event.get("caller_identity") != caller_identity:
                    continue
                events.append(event)
            return list(reversed(events))[:max_entries]

        except OSError as e:
            logger.error(f"Failed to read usage log: {e}")
            return []

    def get_usage_stats(self, listing_id: str) -> Dict[str, Any]:
        """
        Aggregate calls and revenue for one listing.

        Returns:
            Dict with total_calls, successful_calls and revenue
        """
        total_calls = 0
        successful_calls = 0
        revenue = Decimal(0)

        try:
            for event in self._iter_events():
                if event.get("listing_id") != listing_id:
                    continue
                total_calls += 1
                if event.get("success"):
                    successful_calls += 1
                try:
                    revenue += to_decimal(event.get("cost", 0))
                except InvalidAmountError:
                    logger.warning(f"Skipping malformed cost in usage log: {event.get('cost')!r}")
        except OSError as e:
            logger.error(f"Failed to read usage log: {e}")

        return {
            "listing_id": listing_id,
            "total_calls": total_calls,
            "successful_calls": successful_calls,
            "revenue": revenue,
        }

# app/gateway/state.py
"""
Process-wide gateway state.

The registry, ledger and usage recorder are shared by every request.
They are created lazily from settings and can be swapped out wholesale
(useful for testing).
"""
import logging
import threading
from dataclasses import dataclass
from typing import Optional

from app.core.config import settings
from app.gateway.ledger import Ledger, parse_initial_balances
from app.gateway.registry import Registry
from app.gateway.usage import UsageRecorder

logger = logging.getLogger(__name__)


@dataclass
class GatewayState:
    registry: Registry
    ledger: Ledger
    usage_recorder: UsageRecorder


def create_gateway_state() -> GatewayState:
    """Build fresh state from settings."""
    initial_balances = parse_initial_balances(settings.GATEWAY_INITIAL_BALANCES)
    if initial_balances:
        logger.info(f"Pre-funding {len(initial_balances)} wallet(s) from GATEWAY_INITIAL_BALANCES")

    return GatewayState(
        registry=Registry(),
        ledger=Ledger(initial_balances),
        usage_recorder=UsageRecorder(settings.USAGE_LOG_PATH),
    )


_gateway_state: Optional[GatewayState] = None
_gateway_state_lock = threading.Lock()


def get_gateway_state() -> GatewayState:
    """
    Get the global gateway state.

    Returns:
        The singleton GatewayState instance
    """
    global _gateway_state

    if _gateway_state is None:
        with _gateway_state_lock:
            if _gateway_state is None:
                _gateway_state = create_gateway_state()

    return _gateway_state


def reset_gateway_state(state: Optional[GatewayState] = None) -> None:
    """Replace the global state; None means rebuild lazily from settings."""
    global _gateway_state
    with _gateway_state_lock:
        _gateway_state = state

# app/gateway/admission.py
"""
Admission control for proxied calls.

Each request walks a short predicate chain before anything is
forwarded:

1. Resolve  - the path must match a registered slug        (else 404)
2. Authenticate - the caller identity header must be set   (else 401)
3. CheckFunds - balance must cover the price per call      (else 402)

Nothing here mutates state. Funds are only moved by settlement, after
the origin has answered.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Mapping, Optional

from app.gateway.ledger import Ledger
from app.gateway.registry import RegistryEntry
from app.gateway.router import Matched, Router

logger = logging.getLogger(__name__)


def get_header(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup that also works on plain dicts."""
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


class AdmissionState(Enum):
    """Terminal states of the admission chain."""
    NO_ROUTE = "no_route"
    NO_IDENTITY = "no_identity"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    ADMITTED = "admitted"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES = {
    AdmissionState.NO_ROUTE: 404,
    AdmissionState.NO_IDENTITY: 401,
    AdmissionState.INSUFFICIENT_FUNDS: 402,
    AdmissionState.ADMITTED: 200,
}


@dataclass(frozen=True)
class AdmissionDecision:
    """
    Outcome of the admission chain.

    entry/remainder are set once the route resolved; caller_identity once
    the caller authenticated; required/available on a funds denial.
    """
    state: AdmissionState
    entry: Optional[RegistryEntry] = None
    remainder: Optional[str] = None
    caller_identity: Optional[str] = None
    required: Optional[Decimal] = None
    available: Optional[Decimal] = None

    @property
    def admitted(self) -> bool:
        return self.state is AdmissionState.ADMITTED


class AdmissionController:
    """Gate requests on route, identity and balance."""

    def __init__(self, router: Router, ledger: Ledger, identity_header: str):
        self._router = router
        self._ledger = ledger
        self._identity_header = identity_header

    def admit(self, path: str, headers: Mapping[str, str]) -> AdmissionDecision:
        """
        Run the admission chain for one request.

        Args:
            path: Inbound request path
            headers: Inbound request headers (case-insensitive mapping)

        Returns:
            AdmissionDecision in one of the terminal states
        """
        resolution = self._router.match(path)
        if not isinstance(resolution, Matched):
            return AdmissionDecision(state=AdmissionState.NO_ROUTE)

        entry = resolution.entry
        remainder = resolution.remainder

        caller = (get_header(headers, self._identity_header) or "").strip()
        if not caller:
            logger.info(f"Admission: no {self._identity_header} header for {entry.slug}")
            return AdmissionDecision(
                state=AdmissionState.NO_IDENTITY,
                entry=entry,
                remainder=remainder,
            )

        balance = self._ledger.get_balance(caller)
        if balance < entry.price_per_call:
            logger.warning(
                f"Admission: insufficient balance for {caller} on {entry.slug} "
                f"(required {entry.price_per_call}, available {balance})"
            )
            return AdmissionDecision(
                state=AdmissionState.INSUFFICIENT_FUNDS,
                entry=entry,
                remainder=remainder,
                caller_identity=caller,
                required=entry.price_per_call,
                available=balance,
            )

        return AdmissionDecision(
            state=AdmissionState.ADMITTED,
            entry=entry,
            remainder=remainder,
            caller_identity=caller,
        )

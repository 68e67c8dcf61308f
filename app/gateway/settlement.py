# app/gateway/settlement.py
"""
Post-call settlement.

Runs once the forwarder has an outcome for an admitted request:

- UpstreamUnreachable: 503, nothing charged.
- UpstreamResponse: charge the caller and credit the listing owner, then
  relay the origin's status, headers and body with the gateway headers
  added. Origin 4xx/5xx responses are charged too.
- If the caller's balance was drained between admission and settlement,
  the origin call has already happened but nothing is charged and the
  caller gets a 402.

Exactly one usage event is recorded per settled request.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from starlette.responses import JSONResponse, Response

from app.gateway.forwarder import ForwardOutcome, UpstreamResponse, UpstreamUnreachable
from app.gateway.ledger import InsufficientFundsError, Ledger, format_amount
from app.gateway.payment import create_402_response
from app.gateway.registry import RegistryEntry
from app.gateway.usage import UsageEvent, UsageRecorder

logger = logging.getLogger(__name__)

# Gateway metadata headers added to settled responses
X_GATEWAY_COST_HEADER = "X-Gateway-Cost"
X_GATEWAY_BALANCE_HEADER = "X-Gateway-Balance"
X_GATEWAY_API_HEADER = "X-Gateway-Api"

SETTLEMENT_RACE_ERROR = "settlement_race"


@dataclass(frozen=True)
class AdmittedCall:
    """What settlement needs to know about an admitted request."""
    entry: RegistryEntry
    caller_identity: str
    resource: str = ""


class Settlement:
    """Moves money for billable outcomes and builds the caller's response."""

    def __init__(self, ledger: Ledger, usage_recorder: UsageRecorder):
        self._ledger = ledger
        self._usage_recorder = usage_recorder

    def settle(self, call: AdmittedCall, outcome: ForwardOutcome) -> Response:
        """
        Settle one forwarded call.

        Args:
            call: The admitted request
            outcome: The forwarder's classification of the origin call

        Returns:
            The response to send to the caller
        """
        if isinstance(outcome, UpstreamUnreachable):
            return self._settle_unreachable(call, outcome)
        if isinstance(outcome, UpstreamResponse):
            return self._settle_response(call, outcome)
        raise TypeError(f"Unknown forward outcome: {outcome!r}")

    def _settle_unreachable(self, call: AdmittedCall, outcome: UpstreamUnreachable) -> Response:
        entry = call.entry
        logger.error(f"API error for {entry.slug}: {outcome.reason} (not charged)")
        self._record(call, success=False, cost=Decimal(0), error=outcome.reason)
        return JSONResponse(
            status_code=503,
            content={"error": "API unavailable", "details": outcome.reason},
        )

    def _settle_response(self, call: AdmittedCall, outcome: UpstreamResponse) -> Response:
        entry = call.entry
        cost = entry.price_per_call

        try:
            payer_balance, payee_balance = self._ledger.try_debit_and_credit(
                call.caller_identity, entry.owner, cost
            )
        except InsufficientFundsError as e:
            logger.warning(
                f"Settlement race on {entry.slug}: {call.caller_identity} could not cover {e.required} "
                f"after the origin answered {outcome.status_code} (available {e.available}); call not charged"
            )
            self._record(
                call,
                success=False,
                cost=Decimal(0),
                status_code=outcome.status_code,
                error=SETTLEMENT_RACE_ERROR,
            )
            return create_402_response(
                required=e.required,
                available=e.available,
                entry=entry,
                resource=call.resource,
                error_message="Insufficient balance at settlement",
            )

        logger.info(
            f"Payment: {cost} | {entry.slug} | user {call.caller_identity[:8]}... "
            f"balance {payer_balance} | owner +{cost} (balance {payee_balance})"
        )
        self._record(
            call,
            success=outcome.status_code < 400,
            cost=cost,
            status_code=outcome.status_code,
            error=None if outcome.status_code < 400 else f"Origin returned {outcome.status_code}",
        )

        response = Response(content=outcome.body, status_code=outcome.status_code)
        for name, value in outcome.headers:
            response.headers.append(name, value)
        response.headers[X_GATEWAY_COST_HEADER] = format_amount(cost)
        response.headers[X_GATEWAY_BALANCE_HEADER] = format_amount(payer_balance)
        response.headers[X_GATEWAY_API_HEADER] = entry.slug
        return response

    def _record(
        self,
        call: AdmittedCall,
        success: bool,
        cost: Decimal,
        status_code: Optional[int] = None,
        error: Optional[str] = None
    ) -> None:
        self._usage_recorder.record(
            UsageEvent(
                listing_id=call.entry.listing_id,
                caller_identity=call.caller_identity,
                success=success,
                cost=cost,
                slug=call.entry.slug,
                status_code=status_code,
                error=error,
            )
        )

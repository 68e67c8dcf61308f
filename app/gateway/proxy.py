# app/gateway/proxy.py
"""
The metered proxy pipeline.

request -> Router -> Admission -> Forwarder -> Settlement -> response

Every path through handle() produces exactly one response. Admission
failures short-circuit before the origin is contacted. Once a request is
admitted, forwarding and settlement run as a single task shielded from
the caller: if the client disconnects mid-call the task still finishes,
so the ledger and usage log reflect what really happened upstream.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

from fastapi import Request
from starlette.concurrency import run_in_threadpool
from starlette.responses import JSONResponse, Response

from app.core.config import settings
from app.gateway.admission import AdmissionController, AdmissionState
from app.gateway.forwarder import Forwarder
from app.gateway.payment import create_402_response
from app.gateway.registry import RegistryEntry
from app.gateway.router import Router, slug_from_path
from app.gateway.settlement import AdmittedCall, Settlement
from app.gateway.state import GatewayState

logger = logging.getLogger(__name__)

# Keeps shielded forward/settle tasks referenced until they finish
_in_flight: Set[asyncio.Task] = set()


@dataclass
class ProxyRequestContext:
    """Everything needed to forward and settle one admitted request."""
    caller_identity: str
    resolved_entry: RegistryEntry
    remainder_path: str
    query_string: str
    method: str
    headers: List[Tuple[str, str]] = field(default_factory=list)
    body: bytes = b""
    resource: str = ""


def _on_task_done(task: asyncio.Task) -> None:
    _in_flight.discard(task)
    if not task.cancelled() and task.exception() is not None:
        logger.debug(f"Forward/settle task ended with {task.exception()!r}")


def raw_request_path(request: Request) -> str:
    """
    Request path exactly as the caller sent it, percent-encoding intact.

    request.url.path is decoded, so an encoded "?", "#" or "/" inside a
    segment would change meaning on the way to the origin.
    """
    raw_path = request.scope.get("raw_path")
    if not raw_path:
        return request.url.path
    return raw_path.decode("latin-1").split("?", 1)[0]


class GatewayProxy:
    """Runs the admission, forwarding and settlement stages for one request."""

    def __init__(
        self,
        state: GatewayState,
        identity_header: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        forwarder: Optional[Forwarder] = None
    ):
        identity_header = identity_header or settings.WALLET_HEADER
        if timeout_seconds is None:
            timeout_seconds = settings.FORWARD_TIMEOUT_SECONDS

        self.identity_header = identity_header
        self.admission = AdmissionController(Router(state.registry), state.ledger, identity_header)
        self.forwarder = forwarder or Forwarder(identity_header, timeout_seconds)
        self.settlement = Settlement(state.ledger, state.usage_recorder)

    async def handle(self, request: Request) -> Response:
        path = raw_request_path(request)
        try:
            decision = self.admission.admit(path, request.headers)

            if decision.state is AdmissionState.NO_ROUTE:
                return JSONResponse(
                    status_code=decision.state.status_code,
                    content={
                        "error": "API not found",
                        "slug": slug_from_path(path),
                        "hint": "Use /gateway/apis to see available APIs",
                    },
                )

            if decision.state is AdmissionState.NO_IDENTITY:
                return JSONResponse(
                    status_code=decision.state.status_code,
                    content={
                        "error": "Authentication required",
                        "hint": f"Include {self.identity_header} header with your wallet address",
                    },
                )

            if decision.state is AdmissionState.INSUFFICIENT_FUNDS:
                return create_402_response(
                    required=decision.required,
                    available=decision.available,
                    entry=decision.entry,
                    resource=str(request.url),
                )

            query = request.scope.get("query_string", b"").decode("latin-1")
            context = ProxyRequestContext(
                caller_identity=decision.caller_identity,
                resolved_entry=decision.entry,
                remainder_path=decision.remainder,
                query_string=f"?{query}" if query else "",
                method=request.method,
                headers=list(request.headers.items()),
                body=await request.body(),
                resource=str(request.url),
            )

            entry = context.resolved_entry
            logger.info(
                f"[{entry.slug}] {context.method} {context.remainder_path} "
                f"(cost: {entry.price_per_call}, user: {context.caller_identity[:8]}...)"
            )

            task = asyncio.ensure_future(self.forward_and_settle(context))
            _in_flight.add(task)
            task.add_done_callback(_on_task_done)
            return await asyncio.shield(task)

        except Exception as e:
            logger.exception(f"Gateway proxy error on {request.method} {path}: {e}")
            return JSONResponse(
                status_code=500,
                content={"error": "Gateway error", "message": str(e)},
            )

    async def forward_and_settle(self, context: ProxyRequestContext) -> Response:
        """Forward an admitted request and settle its outcome."""
        entry = context.resolved_entry
        outcome = await run_in_threadpool(
            self.forwarder.forward,
            entry,
            context.method,
            context.remainder_path,
            context.query_string,
            context.body,
            context.headers,
        )
        call = AdmittedCall(
            entry=entry,
            caller_identity=context.caller_identity,
            resource=context.resource,
        )
        return self.settlement.settle(call, outcome)

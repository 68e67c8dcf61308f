# app/api/endpoints/gateway.py
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException, Path
import logging

from app.core.config import settings
from app.api.models.gateway import (
    RegisterRequest,
    RegisterResponse,
    ApisResponse,
    HealthResponse,
    BalanceResponse,
    TopUpRequest,
    TopUpResponse,
    UsageStatsResponse,
)
from app.gateway.ledger import InvalidAmountError, as_number, to_decimal
from app.gateway.registry import RegistryEntry, RegistrationError, normalize_slug
from app.gateway.state import GatewayState, get_gateway_state

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/register", response_model=RegisterResponse)
async def register_api(
    request: RegisterRequest,
    state: GatewayState = Depends(get_gateway_state)
) -> RegisterResponse:
    """
    Register an API with the gateway.

    Called when a new listing becomes active. Calls to
    `{GATEWAY_PUBLIC_URL}/{slug}/...` are then proxied to `originalBaseUrl`.

    Raises:
        HTTPException: 400 if the price or any field is invalid
    """
    try:
        price = to_decimal(request.pricePerCall)
    except InvalidAmountError as e:
        raise HTTPException(status_code=400, detail=f"Invalid pricePerCall: {e}")

    entry = RegistryEntry(
        slug=normalize_slug(request.slug),
        origin_base_url=request.originalBaseUrl,
        price_per_call=price,
        owner=request.owner,
        listing_id=request.apiId,
    )

    try:
        state.registry.register(entry)
    except RegistrationError as e:
        logger.warning(f"Gateway registration rejected for {request.slug}: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    return RegisterResponse(
        gatewayUrl=f"{settings.GATEWAY_PUBLIC_URL.rstrip('/')}/{entry.slug}",
        message="API registered with gateway",
    )


@router.get("/health", response_model=HealthResponse)
async def gateway_health(state: GatewayState = Depends(get_gateway_state)) -> HealthResponse:
    """Gateway health check with the number of registered APIs."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        registeredApis=len(state.registry),
    )


@router.get("/apis", response_model=ApisResponse)
async def list_apis(state: GatewayState = Depends(get_gateway_state)) -> ApisResponse:
    """Snapshot of every registered API."""
    apis = [entry.to_dict() for entry in state.registry.list()]
    return ApisResponse(apis=apis, count=len(apis))


@router.get("/balance/{wallet}", response_model=BalanceResponse)
async def get_balance(
    wallet: str = Path(..., description="Wallet address to look up"),
    state: GatewayState = Depends(get_gateway_state)
) -> BalanceResponse:
    """Balance of a wallet; 0 for wallets the gateway has never seen."""
    balance = state.ledger.get_balance(wallet)
    return BalanceResponse(wallet=wallet, balance=as_number(balance))


@router.post("/topup", response_model=TopUpResponse)
async def top_up(
    request: TopUpRequest,
    state: GatewayState = Depends(get_gateway_state)
) -> TopUpResponse:
    """
    Add funds to a wallet.

    Raises:
        HTTPException: 400 if the amount is not a positive number
    """
    try:
        new_balance = state.ledger.top_up(request.wallet, request.amount)
    except InvalidAmountError as e:
        logger.warning(f"Top-up rejected for {request.wallet}: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    return TopUpResponse(wallet=request.wallet, newBalance=as_number(new_balance))


@router.get("/usage/{api_id}", response_model=UsageStatsResponse)
async def get_usage(
    api_id: str = Path(..., description="Listing ID to aggregate usage for"),
    state: GatewayState = Depends(get_gateway_state)
) -> UsageStatsResponse:
    """Total calls, successful calls and revenue for one listing."""
    stats = state.usage_recorder.get_usage_stats(api_id)
    return UsageStatsResponse(
        apiId=api_id,
        totalCalls=stats["total_calls"],
        successfulCalls=stats["successful_calls"],
        revenue=as_number(stats["revenue"]),
    )

# app/gateway/payment.py
"""
402 Payment Required responses.

Every 402 carries the required and available amounts so the caller can
top up. When X402_ENABLED=true the body also advertises, in x402 form,
how to pay the listing owner the call price in USDC.
"""
import logging
from decimal import Decimal
from typing import Optional

from starlette.responses import JSONResponse
from x402.types import PaymentRequirements

from app.core.config import settings
from app.gateway.ledger import as_number
from app.gateway.registry import RegistryEntry

logger = logging.getLogger(__name__)

# x402 protocol constants
X402_VERSION = 1

# USDC contract addresses by network
USDC_ADDRESSES = {
    "base": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
    "base-sepolia": "0x036CbD53842c5426634e7929541eC2318f3dCF7e",
}

# USDC has 6 decimals, so $1.00 = 1,000,000 smallest units
USDC_UNITS = Decimal(1_000_000)


def create_payment_requirements(entry: RegistryEntry, resource: str) -> PaymentRequirements:
    """
    Create x402 PaymentRequirements for one call to a registered API.

    The listing owner is the payee unless X402_PAY_TO_ADDRESS overrides it.

    Args:
        entry: The registered API being called
        resource: Full URL of the requested resource
    """
    network = settings.X402_NETWORK
    pay_to = settings.X402_PAY_TO_ADDRESS or entry.owner

    amount_usdc = int(entry.price_per_call * USDC_UNITS)

    # Get USDC address for the configured network
    asset = USDC_ADDRESSES.get(network, USDC_ADDRESSES["base-sepolia"])

    return PaymentRequirements(
        scheme="exact",
        network=network,
        max_amount_required=str(amount_usdc),
        resource=resource,
        description=f"Gateway call to {entry.slug}",
        mime_type="application/json",
        pay_to=pay_to,
        max_timeout_seconds=300,  # 5 minutes
        asset=asset,
        extra=None
    )


def create_402_response(
    required: Decimal,
    available: Decimal,
    entry: Optional[RegistryEntry] = None,
    resource: Optional[str] = None,
    error_message: str = "Insufficient balance"
) -> JSONResponse:
    """
    Create an HTTP 402 response.

    Args:
        required: Price of the call
        available: Caller's balance
        entry: Registered API, used for x402 payment hints
        resource: Requested URL, used for x402 payment hints
        error_message: Error message for the response
    """
    response_body = {
        "error": error_message,
        "required": as_number(required),
        "available": as_number(available),
        "message": f"You need {required} but only have {available}",
    }

    if settings.X402_ENABLED and entry is not None:
        try:
            requirements = create_payment_requirements(entry, resource or "")
            response_body["x402Version"] = X402_VERSION
            response_body["accepts"] = [requirements.model_dump(by_alias=True)]
        except ValueError as e:
            # pydantic ValidationError, e.g. an owner that is not a valid payee
            logger.warning(f"x402: Could not build payment requirements for {entry.slug}: {e}")

    return JSONResponse(status_code=402, content=response_body)

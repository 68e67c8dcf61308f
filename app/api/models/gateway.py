# app/api/models/gateway.py
from pydantic import BaseModel, Field, StrictFloat, StrictInt, field_validator
from typing import List, Union

Number = Union[int, float]

# Strict numbers so JSON true/false is rejected instead of read as 1/0
AmountInput = Union[StrictInt, StrictFloat, str]


class RegisterRequest(BaseModel):
    """
    Request model for registering an API with the gateway.

    Sent when a listing becomes active. Registering an existing slug
    replaces the previous entry.
    """
    slug: str = Field(..., description="Routing slug, the first path segment(s) of the gateway URL.", example="weather")
    originalBaseUrl: str = Field(..., description="Origin API base URL.", example="https://api.example.test")
    pricePerCall: AmountInput = Field(..., description="Price charged per proxied call.", example=50)
    owner: str = Field(..., description="Provider wallet credited on each call.")
    apiId: str = Field(..., description="Listing ID the calls are attributed to.")

    @field_validator("slug", "originalBaseUrl", "owner", "apiId")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class RegisterResponse(BaseModel):
    success: bool = True
    gatewayUrl: str
    message: str


class RegisteredApi(BaseModel):
    slug: str
    originalBaseUrl: str
    pricePerCall: Number
    owner: str
    apiId: str


class ApisResponse(BaseModel):
    apis: List[RegisteredApi]
    count: int


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    registeredApis: int


class BalanceResponse(BaseModel):
    """Response model for the wallet balance endpoint."""
    wallet: str
    balance: Number


class TopUpRequest(BaseModel):
    wallet: str = Field(..., description="Wallet to credit.")
    amount: AmountInput = Field(..., description="Positive amount to add.", example=100)

    @field_validator("wallet")
    @classmethod
    def wallet_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class TopUpResponse(BaseModel):
    success: bool = True
    wallet: str
    newBalance: Number


class UsageStatsResponse(BaseModel):
    """Aggregated usage for one listing."""
    apiId: str
    totalCalls: int
    successfulCalls: int
    revenue: Number

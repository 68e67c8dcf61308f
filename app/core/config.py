# app/core/config.py
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import AnyHttpUrl # AnyHttpUrl stays in pydantic core
from functools import lru_cache
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

class Settings(BaseSettings):
    PROJECT_NAME: str = "API Marketplace Gateway"

    # Base of the gateway URLs handed back to providers on registration
    GATEWAY_PUBLIC_URL: str = "http://localhost:4021"

    # Caller identity header; stripped before forwarding
    WALLET_HEADER: str = "X-Wallet-Address"

    # Outbound call timeout, matches the external-fetch convention (10s)
    FORWARD_TIMEOUT_SECONDS: float = 10.0

    # JSON lines usage log
    USAGE_LOG_PATH: str = "logs/usage.jsonl"

    # Listings read API used to seed the registry at startup (optional)
    LISTINGS_API_URL: Optional[AnyHttpUrl] = None

    # Pre-funded wallets for testing, e.g. "wallet1:100,wallet2:25.5"
    GATEWAY_INITIAL_BALANCES: Optional[str] = None

    # x402 payment hints in 402 responses
    X402_ENABLED: bool = False
    X402_NETWORK: str = "base-sepolia"
    X402_PAY_TO_ADDRESS: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields from .env

@lru_cache() # Cache the settings object for performance
def get_settings() -> Settings:
    return Settings()

settings = get_settings()

# tests/conftest.py
import pytest

from app.gateway.ledger import Ledger
from app.gateway.registry import Registry
from app.gateway.state import GatewayState, reset_gateway_state
from app.gateway.usage import UsageRecorder


@pytest.fixture(autouse=True)
def gateway_state(tmp_path):
    """Fresh registry, ledger and usage log (under tmp_path) for every test."""
    state = GatewayState(
        registry=Registry(),
        ledger=Ledger(),
        usage_recorder=UsageRecorder(tmp_path / "usage.jsonl"),
    )
    reset_gateway_state(state)
    yield state
    reset_gateway_state(None)

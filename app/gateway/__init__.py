# app/gateway/__init__.py
"""
Metered proxy gateway.

This package maps inbound paths to registered origin APIs, gates each
call on the caller's prepaid balance, forwards the request and settles
payment between consumer and provider once the origin has answered.

Key components:
- registry: slug -> origin mapping with longest-prefix resolution
- ledger: per-wallet balances with atomic debit/credit
- router: tagged route resolution for inbound paths
- admission: identity and funds checks before forwarding
- forwarder: outbound HTTP call and outcome classification
- settlement: debit/credit and gateway response headers
- usage: JSON lines usage log and per-listing statistics
- payment: x402 payment hints for 402 responses
- proxy: the request pipeline tying the stages together
- state: process-wide registry/ledger/usage singletons
"""

__version__ = "0.1.0"

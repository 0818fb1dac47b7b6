"""
Pneuma - On-chain interaction layer for the crash interactor.

Provides typed contract proxies, the transaction builder, the async
JSON-RPC gateway client and the dispatcher that submits transactions and
awaits their finality.

Uses httpx + eth-abi + eth-account.
"""

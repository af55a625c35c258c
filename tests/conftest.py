# PATH: tests/conftest.py
"""
Pytest configuration and shared fakes for the price relay tests.

Nothing here touches a network: web3 objects are only used to build contract
calldata, RPC-facing collaborators are replaced with in-memory fakes.
"""

from typing import Any, Callable, Dict, List, Optional

import pytest
from eth_abi import encode
from web3 import AsyncWeb3
from web3.providers.rpc import AsyncHTTPProvider

from config import DEFAULT_PRICE_REQUESTED_TOPIC
from core.domain.schemas.onchain_types import PriceRequest, QuoteResult

USDC = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174"
WETH = "0x7ceB23fD6bC0adD59E62ac25578270cFf1b9f619"
WBTC = "0x1BFD67037B42Cf73acF2047067bd4F2C47D9BfD6"
DAI = "0x8f3Cf7ad23Cd3CaDbD9735AFf958023239c6A063"
ORACLE = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
EXCHANGE = "0xeE0674C1E7d0f64057B6eCFe845DC2519443567F"


def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


def make_price_log(
    from_token: str,
    to_token: str,
    *,
    oracle: str = ORACLE,
    topic0: str = DEFAULT_PRICE_REQUESTED_TOPIC,
) -> Dict[str, Any]:
    """A PriceRequested(address fromToken, address toToken) log as the trigger delivers it."""
    return {
        "address": oracle,
        "topics": [topic0],
        "data": "0x" + encode(["address", "address"], [from_token, to_token]).hex(),
    }


def unrelated_log() -> Dict[str, Any]:
    transfer_topic = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
    return {
        "address": USDC,
        "topics": [transfer_topic, "0x" + "00" * 32, "0x" + "00" * 32],
        "data": "0x" + (5).to_bytes(32, "big").hex(),
    }


class FakeSimulator:
    """
    Stands in for QuoteSimulator: returns a fixed QuoteResult per pair, or raises.
    """

    def __init__(self, quotes: Optional[Dict[str, Any]] = None, default: Optional[QuoteResult] = None):
        self.quotes = {k.lower(): v for k, v in (quotes or {}).items()}
        self.default = default or QuoteResult(tokens_received=1_000_000, decimals=6)
        self.calls: List[PriceRequest] = []

    async def simulate(self, request: PriceRequest) -> QuoteResult:
        self.calls.append(request)
        q = self.quotes.get(request.pair_key, self.default)
        if isinstance(q, Exception):
            raise q
        return q


class FakeTxService:
    """
    Stands in for TxService on the destination chain.

    `onchain_nonce` grows with every successful send, like a node's pending count.
    `fail_on` maps send-call index (0-based) -> exception to raise instead of sending.
    """

    def __init__(
        self,
        base_nonce: int = 7,
        gas_price: int = 150,
        fail_on: Optional[Dict[int, Exception]] = None,
        confirm_error: Optional[Callable[[str, int], Exception]] = None,
    ):
        self.onchain_nonce = base_nonce
        self.gas_price = gas_price
        self.fail_on = fail_on or {}
        self.confirm_error = confirm_error
        self.count_reads = 0
        self.send_attempts = 0
        self.sent: List[Dict[str, Any]] = []
        self.confirmed: List[str] = []

    def sender_address(self) -> str:
        return "0x90F79bf6EB2c4f870365E785982E1f101E93b906"

    async def transaction_count(self) -> int:
        self.count_reads += 1
        return self.onchain_nonce

    async def bumped_gas_price(self) -> int:
        return self.gas_price

    async def send(self, fn, *, nonce: int, gas_price_wei: Optional[int] = None, wait: bool = False) -> dict:
        idx = self.send_attempts
        self.send_attempts += 1
        if idx in self.fail_on:
            raise self.fail_on[idx]
        tx_hash = "0x" + f"{nonce:064x}"
        self.sent.append({"fn": fn, "nonce": nonce, "gas_price_wei": gas_price_wei, "tx_hash": tx_hash})
        self.onchain_nonce += 1
        return {"tx_hash": tx_hash, "nonce": nonce, "broadcasted": True}

    async def confirm(self, tx_hash: str, *, nonce: int, gas_price_wei: int) -> dict:
        self.confirmed.append(tx_hash)
        if self.confirm_error is not None:
            raise self.confirm_error(tx_hash, nonce)
        return {"tx_hash": tx_hash, "status": 1}


@pytest.fixture
def offline_w3() -> AsyncWeb3:
    # only used to build contract objects / calldata; never awaited against
    return AsyncWeb3(AsyncHTTPProvider("http://127.0.0.1:8545"))

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Protocol

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_account import Account
from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes
from web3 import AsyncWeb3

from adapters.chain.erc20 import Erc20Adapter
from adapters.chain.exchange import ExchangeAdapter
from adapters.external.simulation.simulation_rpc_client import SimulationRpcClient
from config import get_settings
from core.domain.schemas.onchain_types import PriceRequest, QuoteResult, SimulationBundle, SimulationCall
from core.services.exceptions import MalformedSimulationResultError, SimulationUnavailableError
from core.services.storage_overrides import DEFAULT_SLOT_RANGE, compute_overrides
from core.services.utils import UINT256_MAX
from core.services.web3_cache import get_async_web3

logger = logging.getLogger(__name__)


class BundleSimulator(Protocol):
    async def simulate_bundle(self, calls: list, block_tag: str, overrides: dict) -> Any:
        ...


def extract_tokens_received(result: Any) -> Optional[int]:
    """
    Reads the exchange call's output from a bundle result.

    Returns None when the exchange call (index 1) did not succeed.
    Raises MalformedSimulationResultError for any other unexpected shape.
    """
    if not isinstance(result, list) or len(result) < 2:
        raise MalformedSimulationResultError("Expected one trace per bundle call (2)", result=result)

    exchange_call = result[1]
    if not isinstance(exchange_call, Mapping) or "status" not in exchange_call:
        raise MalformedSimulationResultError("Exchange call result has no 'status'", result=result)

    if not exchange_call["status"]:
        return None

    trace = exchange_call.get("trace")
    if not isinstance(trace, list) or not trace or not isinstance(trace[0], Mapping):
        raise MalformedSimulationResultError("Exchange call result has no trace", result=result)

    output = trace[0].get("output")
    if not isinstance(output, str):
        raise MalformedSimulationResultError("Exchange call trace has no output", result=result)

    try:
        (amount_out,) = decode(["uint256"], bytes(HexBytes(output)))
    except (DecodingError, ValueError) as exc:
        raise MalformedSimulationResultError(f"Undecodable exchange output {output!r}", result=result) from exc

    return int(amount_out)


@dataclass
class QuoteSimulator:
    """
    Prices one request by simulating approve + exchange from a throwaway account
    whose input-token balance is faked with storage overrides.
    """

    w3: AsyncWeb3
    simulation_client: BundleSimulator
    exchange_address: str
    decimals_overrides: Dict[str, int] = field(default_factory=dict)
    skip_slots: Dict[str, int] = field(default_factory=dict)
    slot_range: int = DEFAULT_SLOT_RANGE
    block_tag: str = "latest"
    account_factory: Callable[[], LocalAccount] = Account.create
    _decimals_cache: Dict[str, int] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        self.decimals_overrides = {str(k).lower(): int(v) for k, v in (self.decimals_overrides or {}).items()}

    @classmethod
    def from_settings(cls) -> "QuoteSimulator":
        st = get_settings()
        return cls(
            w3=get_async_web3(st.SOURCE_RPC_URL),
            simulation_client=SimulationRpcClient.from_settings(),
            exchange_address=st.EXCHANGE_ADDRESS,
            decimals_overrides=dict(st.DECIMALS_OVERRIDES),
            skip_slots=dict(st.SKIP_SLOTS),
            slot_range=st.SLOT_RANGE,
            block_tag=st.SIMULATION_BLOCK_TAG,
        )

    async def resolve_decimals(self, token: str) -> int:
        """
        Override table first (keys lowercased at construction), else token.decimals() on the source chain.
        """
        key = token.lower()
        override = self.decimals_overrides.get(key)
        if override is not None:
            return int(override)

        if key in self._decimals_cache:
            return self._decimals_cache[key]

        try:
            dec = await Erc20Adapter(self.w3, token).decimals()
        except Exception as exc:
            raise SimulationUnavailableError(f"decimals() failed for {token}: {exc}", method="decimals") from exc

        self._decimals_cache[key] = dec
        return dec

    def build_bundle(self, request: PriceRequest, sender: str, amount_in: int) -> SimulationBundle:
        token_in = Erc20Adapter(self.w3, request.from_token)
        exchange = ExchangeAdapter(self.w3, self.exchange_address)

        approve = SimulationCall(
            from_=sender,
            to=token_in.address,
            data=token_in.encode_approve(exchange.address, UINT256_MAX),
        )
        swap = SimulationCall(
            from_=sender,
            to=exchange.address,
            data=exchange.encode_exchange(request.from_token, request.to_token, amount_in, 0),
        )
        return SimulationBundle(sender=sender, calls=[approve, swap])

    async def simulate(self, request: PriceRequest) -> QuoteResult:
        from_decimals = await self.resolve_decimals(request.from_token)
        to_decimals = await self.resolve_decimals(request.to_token)

        # fresh per request, never funded: its balance exists only in the overrides
        whale = self.account_factory()

        amount_in = request.amount if request.amount else 10 ** from_decimals
        overrides = compute_overrides(
            request.from_token,
            whale.address,
            amount_in,
            slot_range=self.slot_range,
            skip_slots=self.skip_slots,
        )
        bundle = self.build_bundle(request, whale.address, amount_in)

        result = await self.simulation_client.simulate_bundle(bundle.to_rpc(), self.block_tag, overrides.to_rpc())

        tokens_received = extract_tokens_received(result)
        if tokens_received is None:
            logger.info(
                "No quote for %s -> %s (exchange call failed in simulation)",
                request.from_token,
                request.to_token,
            )
            return QuoteResult.no_quote()

        return QuoteResult(tokens_received=tokens_received, decimals=to_decimals)

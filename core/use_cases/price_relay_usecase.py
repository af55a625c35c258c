from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Protocol, Set, Union

import httpx
from web3 import AsyncWeb3
from web3.exceptions import Web3Exception

from adapters.chain.oracle import EVENT_PRICE_REQUESTED, OracleAdapter
from config import get_settings
from core.domain.enums.tx_enums import SubmissionStatus
from core.domain.schemas.onchain_types import PriceRequest, QuoteResult, RawLog
from core.domain.schemas.relay_outcome import SubmissionOutcome, SubmissionRecord
from core.services.exceptions import RelayError, TransactionRevertedError
from core.services.quote_simulator import QuoteSimulator
from core.services.request_decoder import decode_requests
from core.services.tx_service import TxService

logger = logging.getLogger(__name__)

# recorded as a `failed` outcome; any other exception propagates
RELAY_ERRORS = (
    RelayError,
    TransactionRevertedError,
    Web3Exception,
    httpx.HTTPError,
    OSError,
    asyncio.TimeoutError,
)


class QuoteSource(Protocol):
    async def simulate(self, request: PriceRequest) -> QuoteResult:
        ...


@dataclass
class BatchContext:
    """
    Everything one relay batch mutates: the next nonce and the requests already handled.
    Created per batch and dropped afterwards.

    Requests are tracked by `PriceRequest.dedup_key`: the token pair, plus the
    request key when the event carries one.
    """

    next_nonce: int
    seen: Set[str] = field(default_factory=set)
    records: List[SubmissionRecord] = field(default_factory=list)

    def claim(self, dedup_key: str) -> bool:
        """
        True the first time a key is seen in this batch, False afterwards.
        """
        if dedup_key in self.seen:
            return False
        self.seen.add(dedup_key)
        return True

    def commit(self, dedup_key: str) -> int:
        """
        Records a broadcast with the current nonce and advances the counter.
        """
        nonce = self.next_nonce
        self.records.append(SubmissionRecord(dedup_key=dedup_key, nonce=nonce))
        self.next_nonce += 1
        return nonce


@dataclass
class PriceRelayUseCase:
    """
    Relays PriceRequested events: decode -> dedup -> simulate -> submitPrice.

    Requests are handled strictly one after another. The signer's transaction
    count is read once per batch and nonces are handed out locally, so txs sent
    back-to-back before any is mined never collide.

    A failing request is recorded as `failed` and the batch moves on, unless
    `stop_on_error` is set, in which case the error propagates and the rest of
    the batch is left for the next trigger.
    """

    simulator: QuoteSource
    tx_service: TxService
    dest_w3: AsyncWeb3
    topic0: str
    event_abi: dict = field(default_factory=lambda: dict(EVENT_PRICE_REQUESTED))
    stop_on_error: bool = False
    wait_for_receipt: bool = False
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @classmethod
    def from_settings(cls) -> "PriceRelayUseCase":
        st = get_settings()
        txs = TxService.from_settings()
        return cls(
            simulator=QuoteSimulator.from_settings(),
            tx_service=txs,
            dest_w3=txs.w3,
            topic0=st.PRICE_REQUESTED_TOPIC,
            stop_on_error=st.RELAY_STOP_ON_ERROR,
            wait_for_receipt=st.RELAY_WAIT_FOR_RECEIPT,
        )

    def decode(self, logs: Iterable[Union[RawLog, Mapping[str, Any]]]) -> List[PriceRequest]:
        return decode_requests(logs, topic0=self.topic0, event_abi=self.event_abi)

    async def relay_logs(self, logs: Iterable[Union[RawLog, Mapping[str, Any]]]) -> List[SubmissionOutcome]:
        """
        Trigger entry point: decode every PriceRequested log of the batch, then relay.
        """
        requests = self.decode(logs)
        if not requests:
            logger.debug("No PriceRequested logs in batch")
            return []
        return await self.relay(requests)

    async def relay(self, batch: Iterable[PriceRequest]) -> List[SubmissionOutcome]:
        # one batch per signer at a time: nonces are only valid under strict ordering
        async with self._lock:
            ctx = BatchContext(next_nonce=await self.tx_service.transaction_count())
            logger.info("Relay batch start: signer=%s nonce=%s", self.tx_service.sender_address(), ctx.next_nonce)

            outcomes: List[SubmissionOutcome] = []
            for request in batch:
                outcomes.append(await self._relay_one(ctx, request))
            return outcomes

    async def _relay_one(self, ctx: BatchContext, request: PriceRequest) -> SubmissionOutcome:
        if not ctx.claim(request.dedup_key):
            logger.debug("Skipping duplicate request %s", request.dedup_key)
            return self._outcome(request, SubmissionStatus.DUPLICATE)

        quote: Optional[QuoteResult] = None
        tx_hash: Optional[str] = None
        nonce: Optional[int] = None
        try:
            quote = await self.simulator.simulate(request)

            # no-quote is still answered on-chain (amount 0) so the request does not hang
            decimals = quote.decimals if quote.decimals is not None else 0
            oracle = OracleAdapter(self.dest_w3, request.oracle_address)
            fn = oracle.fn_submit_price(
                request.from_token,
                request.to_token,
                quote.tokens_received,
                decimals,
                request_key=request.request_key,
            )

            gas_price = await self.tx_service.bumped_gas_price()
            sent = await self.tx_service.send(fn, nonce=ctx.next_nonce, gas_price_wei=gas_price)
            tx_hash = sent["tx_hash"]
            nonce = ctx.commit(request.dedup_key)
            logger.info("%s nonce %s pair=%s amount=%s", tx_hash, nonce, request.pair_key, quote.tokens_received)

            if self.wait_for_receipt:
                await self.tx_service.confirm(tx_hash, nonce=nonce, gas_price_wei=gas_price)

        except RELAY_ERRORS as exc:
            if self.stop_on_error:
                raise
            logger.warning("Relay failed for pair %s: %s", request.pair_key, exc)
            if isinstance(exc, TransactionRevertedError):
                tx_hash = exc.tx_hash
            return self._outcome(request, SubmissionStatus.FAILED, quote=quote, nonce=nonce, tx_hash=tx_hash, error=str(exc))

        status = SubmissionStatus.SUBMITTED if quote.has_quote else SubmissionStatus.NO_QUOTE
        return self._outcome(request, status, quote=quote, nonce=nonce, tx_hash=tx_hash)

    @staticmethod
    def _outcome(
        request: PriceRequest,
        status: SubmissionStatus,
        *,
        quote: Optional[QuoteResult] = None,
        nonce: Optional[int] = None,
        tx_hash: Optional[str] = None,
        error: Optional[str] = None,
    ) -> SubmissionOutcome:
        return SubmissionOutcome(
            pair_key=request.pair_key,
            from_token=request.from_token,
            to_token=request.to_token,
            oracle_address=request.oracle_address,
            request_key=request.request_key,
            status=status,
            nonce=nonce,
            tx_hash=tx_hash,
            tokens_received=quote.tokens_received if quote else None,
            decimals=quote.decimals if quote else None,
            error=error,
        )

# scripts/relay_transaction_logs.py

"""
Replays the logs of one destination-chain transaction through the price relay.

This is what the on-chain trigger does for every transaction that emitted a
PriceRequested event; running it by hand re-processes a transaction whose batch
was aborted or partially failed (only in-memory dedup exists, so re-running is
safe with respect to the relay's own state).

Usage (from project root):

    python -m scripts.relay_transaction_logs 0x<tx_hash>
    python -m scripts.relay_transaction_logs 0x<tx_hash> --dry-run

Configuration comes from `get_settings()` (DEST_RPC_URL, SIMULATION_RPC_URL,
PRIVATE_KEY, ...).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Any, Dict, List

from adapters.chain.oracle import EVENT_PRICE_REQUESTED
from config import get_settings
from core.services.quote_simulator import QuoteSimulator
from core.services.request_decoder import decode_requests
from core.services.utils import to_json_safe
from core.services.web3_cache import get_async_web3
from core.use_cases.price_relay_usecase import PriceRelayUseCase

logger = logging.getLogger("relay_transaction_logs")


async def fetch_receipt_logs(tx_hash: str) -> List[Dict[str, Any]]:
    w3 = get_async_web3(get_settings().DEST_RPC_URL)
    rcpt = await w3.eth.get_transaction_receipt(tx_hash)
    return [to_json_safe(dict(lg)) for lg in rcpt.get("logs") or []]


async def run(tx_hash: str, dry_run: bool) -> List[Dict[str, Any]]:
    logs = await fetch_receipt_logs(tx_hash)
    logger.info("Fetched %d logs from %s", len(logs), tx_hash)

    if dry_run:
        st = get_settings()
        requests = decode_requests(logs, topic0=st.PRICE_REQUESTED_TOPIC, event_abi=EVENT_PRICE_REQUESTED)
        simulator = QuoteSimulator.from_settings()
        out = []
        for req in requests:
            q = await simulator.simulate(req)
            out.append({"pair": req.pair_key, **q.model_dump()})
        return out

    use_case = PriceRelayUseCase.from_settings()
    outcomes = await use_case.relay_logs(logs)
    return [o.model_dump() for o in outcomes]


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Relay PriceRequested events emitted by one transaction."
    )
    parser.add_argument("tx_hash", help="Destination-chain transaction hash (0x...).")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only decode and simulate; do not submit anything.",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, get_settings().LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )

    result = asyncio.run(run(args.tx_hash, args.dry_run))
    print(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    main()

from __future__ import annotations

import logging
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Optional

from eth_account import Account
from web3 import AsyncWeb3, Web3
from web3.contract.async_contract import AsyncContractFunction

from config import get_settings
from core.services.exceptions import TransactionRevertedError
from core.services.utils import to_json_safe
from core.services.web3_cache import get_async_web3

logger = logging.getLogger(__name__)


class TxService:
    """
    Transaction sender for the destination chain.

    Responsibilities:
    - Build, sign and broadcast contract calls with a caller-supplied nonce.
    - Legacy gasPrice = suggested gas price * multiplier, fixed gas limit.
    - Wait for receipt (optional).

    Nonces are NOT read here per send: the relay reads the count once per batch
    and hands out consecutive values, so back-to-back sends never collide.
    """

    def __init__(
        self,
        w3: AsyncWeb3,
        private_key: str,
        *,
        gas_price_multiplier: Decimal = Decimal("1.5"),
        gas_limit: int = 1_500_000,
    ):
        if not private_key:
            raise RuntimeError("TxService: PRIVATE_KEY not configured")
        self.w3 = w3
        self.pk = private_key
        self.account = Account.from_key(private_key)
        self.gas_price_multiplier = Decimal(gas_price_multiplier)
        self.gas_limit = int(gas_limit)

    @classmethod
    def from_settings(cls) -> "TxService":
        s = get_settings()
        return cls(
            get_async_web3(s.DEST_RPC_URL),
            s.PRIVATE_KEY,
            gas_price_multiplier=s.GAS_PRICE_MULTIPLIER,
            gas_limit=s.SUBMIT_GAS_LIMIT,
        )

    def sender_address(self) -> str:
        return self.account.address

    # ---------- chain reads ----------

    async def transaction_count(self) -> int:
        return int(await self.w3.eth.get_transaction_count(self.account.address, "pending"))

    async def bumped_gas_price(self) -> int:
        """
        Current suggested gas price scaled by the multiplier (1.5x by default), floored to wei.
        """
        base = int(await self.w3.eth.gas_price)
        return int(Decimal(base) * self.gas_price_multiplier)

    # ---------- internal helpers ----------

    async def _build_tx_dict(self, fn: AsyncContractFunction, *, nonce: int, gas_price_wei: int) -> dict:
        base_tx = {
            "from": self.account.address,
            "nonce": int(nonce),
            "gas": self.gas_limit,
            "gasPrice": int(gas_price_wei),
            "value": 0,
        }
        return await fn.build_transaction(base_tx)

    async def _sign_and_send(self, tx: dict) -> str:
        signed = self.w3.eth.account.sign_transaction(tx, self.pk)
        txh = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(txh)

    def _base_response(
        self,
        *,
        tx_hash: str,
        nonce: int,
        gas_price_wei: int,
        status: Optional[int],
        receipt: Optional[dict],
    ) -> dict:
        return to_json_safe(
            {
                "tx_hash": tx_hash,
                "broadcasted": True,
                "nonce": int(nonce),
                "status": status,
                "receipt": receipt,
                "gas": {
                    "limit": self.gas_limit,
                    "price_wei": int(gas_price_wei),
                    "used": int((receipt or {}).get("gasUsed") or 0),
                },
                "ts": datetime.now(UTC).isoformat(),
            }
        )

    # ---------- public API ----------

    async def send(
        self,
        fn: AsyncContractFunction,
        *,
        nonce: int,
        gas_price_wei: Optional[int] = None,
        wait: bool = False,
    ) -> dict[str, Any]:
        """
        Broadcasts a state-changing call with an explicit nonce.

        Args:
            fn: Already-parameterized AsyncContractFunction.
            nonce: Nonce assigned by the caller.
            gas_price_wei: Legacy gas price; defaults to bumped_gas_price().
            wait: If True, wait until mined and attach receipt + status.

        Raises:
            TransactionRevertedError: mined with status == 0 (only when wait=True).
        """
        if gas_price_wei is None:
            gas_price_wei = await self.bumped_gas_price()

        tx = await self._build_tx_dict(fn, nonce=nonce, gas_price_wei=gas_price_wei)
        tx_hash = await self._sign_and_send(tx)
        logger.info("broadcast %s nonce=%s gasPrice=%s", tx_hash, nonce, gas_price_wei)

        if not wait:
            return self._base_response(
                tx_hash=tx_hash, nonce=nonce, gas_price_wei=gas_price_wei, status=None, receipt=None
            )

        return await self.confirm(tx_hash, nonce=nonce, gas_price_wei=gas_price_wei)

    async def confirm(self, tx_hash: str, *, nonce: int, gas_price_wei: int) -> dict[str, Any]:
        """
        Waits for an already broadcast tx to be mined.

        Raises:
            TransactionRevertedError: mined with status == 0. The nonce is spent either way.
        """
        rcpt = dict(await self.w3.eth.wait_for_transaction_receipt(tx_hash))
        status = int(rcpt.get("status", 0))

        if status == 0:
            raise TransactionRevertedError(
                tx_hash=tx_hash,
                receipt=to_json_safe(rcpt),
                msg="Transaction reverted (status=0). Possibly out-of-gas or require() failed",
                nonce=nonce,
            )

        return self._base_response(
            tx_hash=tx_hash, nonce=nonce, gas_price_wei=gas_price_wei, status=status, receipt=rcpt
        )

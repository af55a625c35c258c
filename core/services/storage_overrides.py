"""
Synthetic ERC-20 balance overrides for bundle simulation.

A token's balance mapping lives at some unknown slot index. Instead of analysing
bytecode we write the target balance at every candidate key for both compiler
layouts:

    Solidity: keccak256(pad32(holder) ++ pad32(i))
    Vyper:    keccak256(pad32(i) ++ pad32(holder))

for i in [0, slot_range). The real slot is then covered whichever compiler
produced the token.
"""

from __future__ import annotations

from typing import Mapping, Optional

from eth_utils import keccak, to_bytes

from core.domain.schemas.state_override import StateOverrideMap
from core.services.utils import left_pad32, require_address, require_uint256, uint_to_word

DEFAULT_SLOT_RANGE = 202


def solidity_balance_slot(holder: str, index: int) -> bytes:
    holder_word = left_pad32(to_bytes(hexstr=require_address(holder, "holder")))
    return keccak(holder_word + uint_to_word(index))


def vyper_balance_slot(holder: str, index: int) -> bytes:
    holder_word = left_pad32(to_bytes(hexstr=require_address(holder, "holder")))
    return keccak(uint_to_word(index) + holder_word)


def skip_slot_for(token: str, skip_slots: Optional[Mapping[str, int]]) -> Optional[int]:
    """
    Returns the slot index configured to be skipped for `token`, if any.
    Keys are compared as addresses (case-insensitive).
    """
    if not skip_slots:
        return None
    wanted = token.lower()
    for key, index in skip_slots.items():
        if key.lower() == wanted:
            return int(index)
    return None


def compute_overrides(
    token: str,
    holder: str,
    amount: int,
    *,
    slot_range: int = DEFAULT_SLOT_RANGE,
    skip_slots: Optional[Mapping[str, int]] = None,
) -> StateOverrideMap:
    """
    Builds a StateOverrideMap forcing `holder`'s balance of `token` to `amount`.

    Args:
        token: ERC-20 contract whose storage gets overridden.
        holder: Account that should appear to hold `amount`.
        amount: Raw token amount (uint256).
        slot_range: Number of mapping slot indexes to cover, starting at 0.
        skip_slots: token address -> one slot index to leave untouched for that
            token (both layouts of that index are omitted).

    Raises:
        InvalidAddressError: token/holder is not an address.
        InvalidAmountError: amount is not a uint256.
    """
    token_addr = require_address(token, "token")
    holder_addr = require_address(holder, "holder")
    value = uint_to_word(require_uint256(amount))

    skip = skip_slot_for(token_addr, skip_slots)

    overrides = StateOverrideMap()
    for i in range(int(slot_range)):
        if skip is not None and i == skip:
            continue
        overrides.set_slot(token_addr, solidity_balance_slot(holder_addr, i), value)
        overrides.set_slot(token_addr, vyper_balance_slot(holder_addr, i), value)

    return overrides

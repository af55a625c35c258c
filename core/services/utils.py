# core/services/utils.py
from typing import Any
from collections.abc import Mapping, Iterable
from hexbytes import HexBytes
from web3 import Web3

from core.services.exceptions import InvalidAddressError, InvalidAmountError

UINT256_MAX = 2**256 - 1


def require_address(value: Any, field_name: str = "address") -> str:
    """
    Validates an EVM address and returns its checksum form.
    Raises InvalidAddressError for anything that is not a 20-byte hex address.
    """
    if isinstance(value, (bytes, bytearray)) and len(value) == 20:
        return Web3.to_checksum_address(value)
    if not isinstance(value, str):
        raise InvalidAddressError(value, field_name)
    v = value.strip()
    if not (v.startswith("0x") and len(v) == 42 and Web3.is_address(v)):
        raise InvalidAddressError(value, field_name)
    try:
        return Web3.to_checksum_address(v)
    except ValueError as exc:
        raise InvalidAddressError(value, field_name) from exc


def require_uint256(value: Any) -> int:
    # bool is an int subclass; True is not an amount
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmountError(value)
    if value < 0 or value > UINT256_MAX:
        raise InvalidAmountError(value)
    return value


def left_pad32(value: bytes) -> bytes:
    """
    Left-pads raw bytes to a 32-byte word (ABI / storage word layout).
    """
    if len(value) > 32:
        raise InvalidAmountError(value, f"Value does not fit in 32 bytes ({len(value)} bytes)")
    return value.rjust(32, b"\x00")


def uint_to_word(value: int) -> bytes:
    return require_uint256(value).to_bytes(32, "big")


def to_hex32(value: Any) -> str:
    """
    Normalizes a 32-byte word given as int / bytes / hex string to "0x" + 64 lowercase hex chars.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        raw = uint_to_word(value)
    elif isinstance(value, (bytes, bytearray)):
        raw = left_pad32(bytes(value))
    elif isinstance(value, str):
        try:
            raw = left_pad32(bytes(HexBytes(value)))
        except ValueError as exc:
            raise InvalidAmountError(value, f"Not a hex word: {value!r}") from exc
    else:
        raise InvalidAmountError(value)
    return "0x" + raw.hex()


def to_json_safe(obj: Any) -> Any:
    """
    Recursively convert web3 / HexBytes-heavy structures into plain JSON-serializable primitives.

    - HexBytes -> "0x..." str
    - bytes    -> "0x..." str
    - Mapping  -> {k: to_json_safe(v)}   (covers AttributeDict, dict-like)
    - list/tuple/set -> [to_json_safe(v), ...]
    - everything else -> unchanged if primitive, else str(obj)
    """
    if isinstance(obj, HexBytes):
        return Web3.to_hex(obj)

    if isinstance(obj, (bytes, bytearray)):
        return "0x" + obj.hex()

    if isinstance(obj, (str, int, float, bool)) or obj is None:
        return obj

    # dict-like (IMPORTANT: covers web3.datastructures.AttributeDict)
    if isinstance(obj, Mapping):
        return {str(k): to_json_safe(v) for (k, v) in obj.items()}

    if isinstance(obj, (list, tuple, set)):
        return [to_json_safe(v) for v in obj]

    if isinstance(obj, Iterable):
        return [to_json_safe(v) for v in obj]

    return str(obj)

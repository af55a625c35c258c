from __future__ import annotations

from typing import Any, Dict, Iterator, Tuple

from pydantic import BaseModel, Field, model_validator

from core.services.utils import require_address, to_hex32


class StateOverrideMap(BaseModel):
    """
    Simulation-only storage overrides: contract address -> slot key -> 32-byte value.

    Addresses are kept checksummed, slot keys and values as "0x" + 64 hex chars.
    Anything else is rejected at construction (InvalidAddressError / InvalidAmountError).
    """

    state_diff: Dict[str, Dict[str, str]] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        raw = data.get("state_diff") or {}
        data = dict(data)
        data["state_diff"] = {
            require_address(contract, "contract"): {
                to_hex32(slot): to_hex32(value) for slot, value in (slots or {}).items()
            }
            for contract, slots in raw.items()
        }
        return data

    def set_slot(self, contract: str, slot: Any, value: Any) -> None:
        addr = require_address(contract, "contract")
        self.state_diff.setdefault(addr, {})[to_hex32(slot)] = to_hex32(value)

    def slots_for(self, contract: str) -> Dict[str, str]:
        return dict(self.state_diff.get(require_address(contract, "contract"), {}))

    def items(self) -> Iterator[Tuple[str, str, str]]:
        for contract, slots in self.state_diff.items():
            for slot, value in slots.items():
                yield contract, slot, value

    def __len__(self) -> int:
        return sum(len(slots) for slots in self.state_diff.values())

    def to_rpc(self) -> Dict[str, Dict[str, Dict[str, str]]]:
        """
        Shape expected by bundle simulation RPCs: {address: {"stateDiff": {slot: value}}}.
        """
        return {contract: {"stateDiff": dict(slots)} for contract, slots in self.state_diff.items()}

from __future__ import annotations

from typing import Any, List, Optional

from hexbytes import HexBytes
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from web3 import Web3

from core.services.utils import require_address, to_hex32


def _hexify(v: Any) -> Any:
    if isinstance(v, (bytes, bytearray)):
        return Web3.to_hex(HexBytes(v))
    return v


class RawLog(BaseModel):
    """
    One chain log record as delivered by the trigger (address, topics, data).
    Extra receipt fields (logIndex, blockNumber, ...) are kept but ignored.
    """

    address: str = ""
    topics: List[str] = Field(default_factory=list)
    data: str = "0x"

    model_config = ConfigDict(extra="allow")

    @field_validator("address", "data", mode="before")
    @classmethod
    def _bytes_to_hex(cls, v: Any) -> Any:
        return _hexify(v)

    @field_validator("topics", mode="before")
    @classmethod
    def _topics_to_hex(cls, v: Any) -> Any:
        if v is None:
            return []
        return [_hexify(t) for t in v]

    def topic0(self) -> Optional[str]:
        if not self.topics:
            return None
        return self.topics[0].lower()


class PriceRequest(BaseModel):
    """
    A decoded PriceRequested event. Consumed once per relay cycle.
    """

    from_token: str
    to_token: str
    oracle_address: str
    request_key: Optional[str] = None
    amount: Optional[int] = Field(default=None, ge=0)

    model_config = ConfigDict(frozen=True)

    @field_validator("from_token", "to_token", "oracle_address", mode="before")
    @classmethod
    def _checksum(cls, v: Any, info: ValidationInfo) -> str:
        return require_address(v, info.field_name)

    @field_validator("request_key", mode="before")
    @classmethod
    def _bytes32(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        return to_hex32(v)

    @property
    def pair_key(self) -> str:
        return f"{self.from_token.lower()}:{self.to_token.lower()}"

    @property
    def dedup_key(self) -> str:
        """
        Pair requests are answered once per pair; keyed requests are answered per key.
        """
        if self.request_key is None:
            return self.pair_key
        return f"{self.pair_key}:{self.request_key}"


class QuoteResult(BaseModel):
    """
    Outcome of one bundle simulation.

    tokens_received == 0 means "no quote available" (exchange call failed in the
    simulation); decimals is None in that case.
    """

    tokens_received: int = Field(..., ge=0)
    decimals: Optional[int] = None

    @classmethod
    def no_quote(cls) -> "QuoteResult":
        return cls(tokens_received=0, decimals=None)

    @property
    def has_quote(self) -> bool:
        return self.tokens_received > 0


class SimulationCall(BaseModel):
    """
    One synthetic call inside a simulated bundle. Serialized with the RPC's "from" key.
    """

    from_: str = Field(..., alias="from")
    to: str
    data: str

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_rpc(self) -> dict:
        return self.model_dump(by_alias=True)


class SimulationBundle(BaseModel):
    """
    Ordered approve + exchange calls sharing one throwaway sender.
    """

    sender: str
    calls: List[SimulationCall]

    def to_rpc(self) -> list:
        return [c.to_rpc() for c in self.calls]

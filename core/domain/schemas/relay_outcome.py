from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

from core.domain.enums.tx_enums import SubmissionStatus


class SubmissionRecord(BaseModel):
    """
    A request already priced in the current batch (by dedup key) and the nonce its tx used.
    Lives only as long as the batch.
    """

    dedup_key: str
    nonce: int


class SubmissionOutcome(BaseModel):
    pair_key: str
    from_token: str
    to_token: str
    oracle_address: str
    status: SubmissionStatus

    request_key: Optional[str] = None
    nonce: Optional[int] = None
    tx_hash: Optional[str] = None
    tokens_received: Optional[int] = None
    decimals: Optional[int] = None
    error: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True)

from typing import List, Optional

from pydantic import BaseModel, Field

from core.domain.enums.tx_enums import SubmissionStatus
from core.domain.schemas.onchain_types import RawLog
from core.domain.schemas.relay_outcome import SubmissionOutcome


class RelayLogsRequest(BaseModel):
    """
    A batch of raw logs delivered by the trigger (typically every log of one transaction).
    """

    logs: List[RawLog] = Field(default_factory=list)


class RelayLogsResponse(BaseModel):
    requests: int
    submitted: int
    outcomes: List[SubmissionOutcome]

    @classmethod
    def from_outcomes(cls, outcomes: List[SubmissionOutcome]) -> "RelayLogsResponse":
        sent = [o for o in outcomes if o.status in (SubmissionStatus.SUBMITTED, SubmissionStatus.NO_QUOTE)]
        return cls(requests=len(outcomes), submitted=len(sent), outcomes=outcomes)


class QuoteRequest(BaseModel):
    from_token: str
    to_token: str
    amount: Optional[int] = Field(None, ge=0, description="Raw input amount. Default: one whole unit of from_token.")


class QuoteResponse(BaseModel):
    from_token: str
    to_token: str
    tokens_received: int
    decimals: Optional[int] = None
    has_quote: bool

from __future__ import annotations

from enum import StrEnum


class SubmissionStatus(StrEnum):
    """
    Per-request outcome of one relay batch.
    """

    SUBMITTED = "submitted"
    NO_QUOTE = "no_quote"
    DUPLICATE = "duplicate"
    FAILED = "failed"

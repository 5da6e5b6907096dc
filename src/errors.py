"""Error taxonomy shared by ingestion, retrieval and job orchestration."""

from __future__ import annotations

# Substrings that mark an error as permanent for the call that raised it.
_NON_RETRYABLE_MESSAGES = (
    "video unavailable",
    "private video",
    "video removed",
    "unauthorized",
    "invalid api key",
    "invalid input",
    "transcripts are disabled",
    "no transcript",
)

_RETRYABLE_STATUS = {408, 409, 429}


class RagPipelineError(Exception):
    """Base class for errors raised by this package."""


class TransientProviderError(RagPipelineError):
    """A provider call failed in a way that may succeed on retry."""


class NonRetryableProviderError(RagPipelineError):
    """A provider call failed permanently (auth, quota, unavailable content)."""


class OperationTimeoutError(TransientProviderError):
    """A single external call exceeded its time budget."""


class DimensionMismatchError(RagPipelineError):
    """A vector does not match the dimensionality fixed for its index."""


class EligibilityError(RagPipelineError):
    """The channel has nothing usable to ingest."""


class EntitlementError(RagPipelineError):
    """The owning team is not (or no longer) entitled to ingestion."""


class JobTimeoutError(RagPipelineError):
    """An ingestion job exceeded its wall-clock limit."""


class DuplicateJobError(RagPipelineError):
    """Another job already holds the processing lock for this channel."""

    def __init__(self, channel_id: str, team_id: str, existing_job_id: str | None) -> None:
        self.channel_id = channel_id
        self.team_id = team_id
        self.existing_job_id = existing_job_id
        super().__init__(
            "This channel is already being processed. "
            "Please wait for the current job to complete."
        )


def _status_of(exc: BaseException) -> int | None:
    for attr in ("status_code", "code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    resp = getattr(exc, "resp", None)  # googleapiclient HttpError
    status = getattr(resp, "status", None)
    if status is not None:
        try:
            return int(status)
        except (TypeError, ValueError):
            return None
    return None


def is_retryable(exc: BaseException) -> bool:
    """Classify an exception raised by an external call.

    Explicit taxonomy types win, then HTTP status codes, then known
    permanent-failure messages. Anything else (network errors, timeouts)
    is treated as transient.
    """
    if isinstance(exc, TransientProviderError):
        return True
    if isinstance(exc, (NonRetryableProviderError, DimensionMismatchError, ValueError)):
        return False

    status = _status_of(exc)
    if status is not None and 400 <= status < 600:
        return status >= 500 or status in _RETRYABLE_STATUS

    message = str(exc).lower()
    return not any(marker in message for marker in _NON_RETRYABLE_MESSAGES)

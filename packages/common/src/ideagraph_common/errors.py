"""Error types for the ideagraph system.

All errors follow the "fail fast" principle with explicit messages.

Extraction outcomes map onto four terminal kinds:
- QuotaExhaustedError: precondition, no side effects
- NoSourceTextError: precondition, no side effects
- StageFailedError: mid-pipeline, completed-stage debits are kept
- ExtractionCancelledError: user-initiated, not a fault
"""

from typing import Optional


class IdeaGraphError(Exception):
    """Base exception for all ideagraph errors."""

    pass


# ---------------------------------------------------------------------------
# Extraction pipeline
# ---------------------------------------------------------------------------


class ExtractionError(IdeaGraphError):
    """Error raised by the paper extraction pipeline."""

    pass


class QuotaExhaustedError(ExtractionError):
    """Not enough credits to run the pipeline."""

    def __init__(self, required: float, remaining: float):
        self.required = required
        self.remaining = remaining
        super().__init__(
            f"Insufficient credits: {required} required, {remaining} remaining"
        )


class NoSourceTextError(ExtractionError):
    """No extractable text is available for the paper."""

    def __init__(self, paper_id: str, reason: str = "no stored document"):
        self.paper_id = paper_id
        self.reason = reason
        super().__init__(f"No source text for paper '{paper_id}': {reason}")


class StageFailedError(ExtractionError):
    """A pipeline stage failed (LLM error, bad response or timeout)."""

    def __init__(self, stage: int, cause: BaseException | str):
        self.stage = stage
        self.cause = cause
        super().__init__(f"Stage {stage} failed: {cause}")


class ExtractionCancelledError(ExtractionError):
    """The extraction session was cancelled by the user."""

    pass


class SessionActiveError(ExtractionError):
    """An extraction session is already active for this paper."""

    def __init__(self, paper_id: str):
        self.paper_id = paper_id
        super().__init__(f"Extraction already in progress for paper '{paper_id}'")


class InvalidTransitionError(ExtractionError):
    """Illegal state machine transition."""

    pass


class TextExtractionError(IdeaGraphError):
    """Stored document exists but its text could not be extracted."""

    pass


class LLMError(IdeaGraphError):
    """LLM backend call failed or returned an unusable response."""

    pass


class UsageSyncError(IdeaGraphError):
    """Remote usage ledger call failed."""

    pass


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class StorageError(IdeaGraphError):
    """Error during store operations."""

    pass


class NotFoundError(StorageError):
    """Referenced graph or finding does not exist."""

    def __init__(self, paper_id: str, finding_id: Optional[str] = None):
        self.paper_id = paper_id
        self.finding_id = finding_id
        if finding_id is None:
            message = f"No findings graph for paper '{paper_id}'"
        else:
            message = f"Finding '{finding_id}' not found in graph for paper '{paper_id}'"
        super().__init__(message)


class GraphIntegrityError(StorageError):
    """Graph violates referential integrity (dangling or duplicate ids)."""

    pass

"""IdeaGraph Common - Shared utilities.

Version: 1.0.0

This package provides:
- Settings (pydantic-settings)
- Structured logging (structlog)
- Retry/backoff patterns (tenacity)
- OpenTelemetry tracing helpers
- Error taxonomy
- Stale async result guard
- Atomic local file writes
"""

from ideagraph_common.config import Settings, StageCosts, get_settings
from ideagraph_common.errors import (
    ExtractionCancelledError,
    ExtractionError,
    GraphIntegrityError,
    IdeaGraphError,
    InvalidTransitionError,
    LLMError,
    NoSourceTextError,
    NotFoundError,
    QuotaExhaustedError,
    SessionActiveError,
    StageFailedError,
    StorageError,
    TextExtractionError,
    UsageSyncError,
)
from ideagraph_common.files import (
    atomic_write_bytes,
    atomic_write_text,
    expand_path,
    safe_filename,
)
from ideagraph_common.instrumentation import (
    get_tracer,
    init_telemetry,
    instrument_function,
)
from ideagraph_common.logging_config import (
    configure_logging,
    configure_logging_from_settings,
    get_logger,
)
from ideagraph_common.retry import retry_on_exception
from ideagraph_common.staleness import StaleGuard, SubjectToken

__version__ = "1.0.0"

__all__ = [
    # Config
    "Settings",
    "StageCosts",
    "get_settings",
    # Logging
    "configure_logging",
    "configure_logging_from_settings",
    "get_logger",
    # Retry
    "retry_on_exception",
    # Instrumentation
    "init_telemetry",
    "get_tracer",
    "instrument_function",
    # Files
    "atomic_write_bytes",
    "atomic_write_text",
    "expand_path",
    "safe_filename",
    # Staleness
    "StaleGuard",
    "SubjectToken",
    # Errors
    "IdeaGraphError",
    "ExtractionError",
    "QuotaExhaustedError",
    "NoSourceTextError",
    "StageFailedError",
    "ExtractionCancelledError",
    "SessionActiveError",
    "InvalidTransitionError",
    "TextExtractionError",
    "LLMError",
    "UsageSyncError",
    "StorageError",
    "NotFoundError",
    "GraphIntegrityError",
]

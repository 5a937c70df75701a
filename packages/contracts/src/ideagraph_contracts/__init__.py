"""IdeaGraph Contracts - Pydantic schemas.

Version: 1.0.0

This package contains the data model shared by every other package.
Dependencies: pydantic, plus the error taxonomy of ideagraph_common.
"""

from ideagraph_contracts.models import (
    CONFIDENCE_HIGH,
    CONFIDENCE_LOW,
    CONFIDENCE_MEDIUM,
    # Findings graph
    Connection,
    ConnectionType,
    ExtractedFinding,
    FindingRelevance,
    FindingType,
    PaperClassification,
    PaperKnowledgeGraph,
    PaperType,
    QuoteReference,
    ReviewStatus,
    StageTokens,
    SuggestedRole,
    ThesisRelevance,
    TokenUsage,
    # Inputs
    PaperMetadata,
    ThesisContext,
    # Extraction session
    ExtractionErrorKind,
    ExtractionProgress,
    ExtractionResult,
    ExtractionState,
    # Credits
    UsageRecord,
    # Helpers
    clamp_confidence,
    clamp_relevance_score,
    confidence_level,
    utc_now,
)

__version__ = "1.0.0"

__all__ = [
    # Findings graph
    "Connection",
    "ConnectionType",
    "ExtractedFinding",
    "FindingRelevance",
    "FindingType",
    "PaperClassification",
    "PaperKnowledgeGraph",
    "PaperType",
    "QuoteReference",
    "ReviewStatus",
    "StageTokens",
    "SuggestedRole",
    "ThesisRelevance",
    "TokenUsage",
    # Inputs
    "PaperMetadata",
    "ThesisContext",
    # Extraction session
    "ExtractionErrorKind",
    "ExtractionProgress",
    "ExtractionResult",
    "ExtractionState",
    # Credits
    "UsageRecord",
    # Helpers
    "CONFIDENCE_LOW",
    "CONFIDENCE_MEDIUM",
    "CONFIDENCE_HIGH",
    "clamp_confidence",
    "clamp_relevance_score",
    "confidence_level",
    "utc_now",
]

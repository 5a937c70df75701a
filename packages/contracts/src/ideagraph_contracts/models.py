"""Pydantic models for the ideagraph system.

These schemas define the contract between all packages. A
`PaperKnowledgeGraph` is what the extraction pipeline produces, what the
graph store persists and what the API / CLI render.
"""

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from ideagraph_common.errors import GraphIntegrityError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def clamp_confidence(value: Any) -> float:
    """Clamp a model-reported confidence into [0, 1].

    Non-numeric and non-finite input counts as 0.5 (no information).
    """
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.5
    if not math.isfinite(number):
        return 0.5
    return max(0.0, min(1.0, number))


def clamp_relevance_score(value: Any) -> int:
    """Round and clamp a relevance score into 1..5 (3 when unparsable or non-finite)."""
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return 3
    if not math.isfinite(number):
        return 3
    return max(1, min(5, int(round(number))))


class PaperType(str, Enum):
    """Paper genre assigned by stage 1."""

    RESEARCH_ARTICLE = "research-article"
    REVIEW = "review"
    METHODS = "methods"
    SHORT_COMMUNICATION = "short-communication"
    META_ANALYSIS = "meta-analysis"
    CASE_STUDY = "case-study"
    THEORETICAL = "theoretical"


class FindingType(str, Enum):
    """Role of a finding within its paper."""

    CENTRAL_FINDING = "central-finding"
    SUPPORTING_FINDING = "supporting-finding"
    METHODOLOGICAL = "methodological"
    LIMITATION = "limitation"
    IMPLICATION = "implication"
    OPEN_QUESTION = "open-question"
    BACKGROUND = "background"


class ConnectionType(str, Enum):
    """Directed relationship between two findings of the same paper.

    Read as "from-finding <type> to-finding".
    """

    SUPPORTS = "supports"
    CONTRADICTS = "contradicts"
    EXTENDS = "extends"
    REQUIRES = "requires"
    EXPLAINS = "explains"
    QUALIFIES = "qualifies"


class ReviewStatus(str, Enum):
    """How much of a graph the user has verified."""

    UNREVIEWED = "unreviewed"
    PARTIAL = "partial"
    REVIEWED = "reviewed"


class SuggestedRole(str, Enum):
    """Role a paper plays for the thesis."""

    SUPPORTS = "supports"
    CONTRADICTS = "contradicts"
    METHOD = "method"
    BACKGROUND = "background"
    OTHER = "other"


class ExtractionState(str, Enum):
    """Extraction session state machine states."""

    IDLE = "idle"
    CHECKING_QUOTA = "checking-quota"
    LOADING_TEXT = "loading-text"
    STAGE_1_CLASSIFY = "stage-1-classify"
    STAGE_2_EXTRACT = "stage-2-extract"
    STAGE_3_INTEGRATE = "stage-3-integrate"
    COMMITTING = "committing"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ExtractionState.DONE,
            ExtractionState.CANCELLED,
            ExtractionState.FAILED,
        )


class ExtractionErrorKind(str, Enum):
    """Why a session did not end in `done`."""

    QUOTA_EXHAUSTED = "quota-exhausted"
    NO_SOURCE_TEXT = "no-source-text"
    STAGE_FAILED = "stage-failed"
    CANCELLED = "cancelled"


# ---------------------------------------------------------------------------
# Paper inputs
# ---------------------------------------------------------------------------


class PaperMetadata(BaseModel):
    """Bibliographic identity of the paper being extracted."""

    id: str = Field(..., min_length=1)
    title: str
    authors: list[str] = Field(default_factory=list)
    year: Optional[int] = None
    journal: Optional[str] = None
    abstract: Optional[str] = None


class ThesisContext(BaseModel):
    """Research thesis that findings are scored against."""

    id: Optional[str] = None
    title: str
    description: str = ""


# ---------------------------------------------------------------------------
# Findings graph
# ---------------------------------------------------------------------------


class QuoteReference(BaseModel):
    """Verbatim excerpt backing a finding."""

    id: str
    text: str
    page_number: Optional[int] = None
    page_label: Optional[str] = Field(None, description='"p. 5" or "pp. 5-6"')


class FindingRelevance(BaseModel):
    """Relevance of a single finding to the thesis."""

    score: int = Field(..., ge=1, le=5)
    reasoning: str = ""
    dimension: Optional[str] = Field(None, description="Aspect of the thesis addressed")

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, v: Any) -> int:
        return clamp_relevance_score(v)


class ExtractedFinding(BaseModel):
    """One claim extracted from a paper.

    Confidence is clamped into [0, 1] on ingress rather than rejected, since
    model output routinely drifts outside the range.
    """

    id: str = Field(..., min_length=1)
    finding_type: FindingType
    title: str
    description: str = ""
    direct_quotes: list[QuoteReference] = Field(default_factory=list)
    confidence: float = Field(..., ge=0.0, le=1.0)
    user_verified: bool = False
    page_numbers: list[int] = Field(default_factory=list)
    section_name: Optional[str] = None
    thesis_relevance: Optional[FindingRelevance] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_to_unit_interval(cls, v: Any) -> float:
        return clamp_confidence(v)


class Connection(BaseModel):
    """Directed edge between two findings of the same graph."""

    id: str
    from_finding_id: str
    to_finding_id: str
    connection_type: ConnectionType
    explanation: str = ""
    is_explicit: bool = Field(False, description="Stated by the authors, not inferred")


class PaperClassification(BaseModel):
    """Stage 1 output: what kind of paper this is."""

    paper_type: PaperType
    summary: str = ""
    confidence: float = Field(0.5, ge=0.0, le=1.0)
    priority_sections: list[str] = Field(default_factory=list)
    expected_finding_count: int = Field(5, ge=1, le=20)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_to_unit_interval(cls, v: Any) -> float:
        return clamp_confidence(v)


class ThesisRelevance(BaseModel):
    """Stage 3 output: relevance of the whole paper to the thesis."""

    overall_score: int = Field(..., ge=1, le=5)
    thesis_framed_takeaway: str = ""
    reasoning: str = ""
    suggested_role: SuggestedRole = SuggestedRole.OTHER

    @field_validator("overall_score", mode="before")
    @classmethod
    def clamp_score(cls, v: Any) -> int:
        return clamp_relevance_score(v)


class StageTokens(BaseModel):
    """Token counts of one LLM call."""

    input: int = Field(0, ge=0)
    output: int = Field(0, ge=0)


class TokenUsage(BaseModel):
    """Token counts per pipeline stage."""

    stage1: StageTokens = Field(default_factory=StageTokens)
    stage2: StageTokens = Field(default_factory=StageTokens)
    stage3: StageTokens = Field(default_factory=StageTokens)

    @property
    def total(self) -> int:
        return sum(s.input + s.output for s in (self.stage1, self.stage2, self.stage3))


class PaperKnowledgeGraph(BaseModel):
    """Structured knowledge extracted from one paper.

    One graph per paper, owned by the graph store. Construction enforces
    referential integrity: finding ids are unique and every connection
    endpoint names a finding of this graph. Violations raise
    GraphIntegrityError (not a ValidationError).

    `review_status` is derived from the findings' verification flags on
    every read and is never stored on its own.
    """

    paper_id: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    classification: PaperClassification
    experimental_system: Optional[str] = None
    key_contributions: list[str] = Field(default_factory=list)
    thesis_relevance: Optional[ThesisRelevance] = None

    findings: list[ExtractedFinding] = Field(default_factory=list)
    intra_paper_connections: list[Connection] = Field(default_factory=list)

    extraction_method: Optional[str] = Field(
        None, description="backend:model that produced the graph"
    )
    tokens_used: TokenUsage = Field(default_factory=TokenUsage)

    @model_validator(mode="after")
    def check_referential_integrity(self) -> "PaperKnowledgeGraph":
        seen: set[str] = set()
        for finding in self.findings:
            if finding.id in seen:
                raise GraphIntegrityError(
                    f"Duplicate finding id '{finding.id}' in graph for paper '{self.paper_id}'"
                )
            seen.add(finding.id)

        for connection in self.intra_paper_connections:
            for endpoint in (connection.from_finding_id, connection.to_finding_id):
                if endpoint not in seen:
                    raise GraphIntegrityError(
                        f"Connection '{connection.id}' references unknown finding "
                        f"'{endpoint}' in graph for paper '{self.paper_id}'"
                    )
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def review_status(self) -> ReviewStatus:
        verified = self.verified_count
        if verified == 0:
            return ReviewStatus.UNREVIEWED
        if verified == len(self.findings):
            return ReviewStatus.REVIEWED
        return ReviewStatus.PARTIAL

    @property
    def verified_count(self) -> int:
        return sum(1 for f in self.findings if f.user_verified)

    def finding(self, finding_id: str) -> Optional[ExtractedFinding]:
        """Look up a finding by id."""
        for f in self.findings:
            if f.id == finding_id:
                return f
        return None

    def findings_by_type(self) -> dict[FindingType, list[ExtractedFinding]]:
        """Group findings by type, preserving extraction order within groups."""
        grouped: dict[FindingType, list[ExtractedFinding]] = {}
        for f in self.findings:
            grouped.setdefault(f.finding_type, []).append(f)
        return grouped


# ---------------------------------------------------------------------------
# Extraction session
# ---------------------------------------------------------------------------


class ExtractionProgress(BaseModel):
    """Transient progress report of a running extraction."""

    paper_id: str
    current_stage: int = Field(..., ge=1, le=3)
    stage_description: str
    overall_progress: int = Field(..., ge=0, le=100)
    can_cancel: bool = True


class ExtractionResult(BaseModel):
    """Terminal outcome of an extraction session."""

    paper_id: str
    state: ExtractionState
    graph: Optional[PaperKnowledgeGraph] = None
    error_kind: Optional[ExtractionErrorKind] = None
    failed_stage: Optional[int] = Field(None, ge=1, le=3)
    message: Optional[str] = None
    credits_debited: float = Field(0.0, ge=0.0)

    @field_validator("state")
    @classmethod
    def validate_terminal(cls, v: ExtractionState) -> ExtractionState:
        if not v.is_terminal:
            raise ValueError(f"result state must be terminal, got {v.value}")
        return v

    @property
    def succeeded(self) -> bool:
        return self.state == ExtractionState.DONE


# ---------------------------------------------------------------------------
# Credits
# ---------------------------------------------------------------------------


class UsageRecord(BaseModel):
    """Immutable entry in the credit usage history."""

    model_config = ConfigDict(frozen=True)

    id: str
    action: str
    cost: float = Field(..., ge=0.0)
    success: bool = True
    timestamp: datetime = Field(default_factory=utc_now)
    paper_id: Optional[str] = None
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Confidence thresholds
# ---------------------------------------------------------------------------

CONFIDENCE_LOW = 0.4
CONFIDENCE_MEDIUM = 0.7
CONFIDENCE_HIGH = 0.85


def confidence_level(confidence: float) -> str:
    """Bucket a confidence into "low", "medium" or "high"."""
    if confidence >= CONFIDENCE_HIGH:
        return "high"
    if confidence >= CONFIDENCE_MEDIUM:
        return "medium"
    return "low"

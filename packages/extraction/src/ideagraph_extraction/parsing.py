"""Normalisation of raw LLM JSON into contract models.

Model output is untrusted: every field is type-checked, enums fall back to a
safe default, scores are clamped and list lengths are bounded. Findings get
fresh ids here; connections arrive as finding indices and are resolved to
those ids, dropping any that point outside the list or back at their source.
"""

import json
import math
import re
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from ideagraph_common import LLMError, get_logger
from ideagraph_contracts import (
    Connection,
    ConnectionType,
    ExtractedFinding,
    FindingRelevance,
    FindingType,
    PaperClassification,
    PaperType,
    QuoteReference,
    SuggestedRole,
    ThesisRelevance,
    clamp_confidence,
    clamp_relevance_score,
)

logger = get_logger(__name__)

MAX_FINDINGS = 15
MAX_QUOTES_PER_FINDING = 5
MAX_CONNECTIONS = 20
MAX_KEY_CONTRIBUTIONS = 5
MAX_PRIORITY_SECTIONS = 6

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)

_DEFAULT_FINDING_COUNTS = {
    PaperType.SHORT_COMMUNICATION: 2,
    PaperType.REVIEW: 8,
    PaperType.META_ANALYSIS: 6,
    PaperType.METHODS: 4,
    PaperType.CASE_STUDY: 4,
}


class ClassificationOutput(BaseModel):
    """Stage 1 result."""

    classification: PaperClassification
    experimental_system: Optional[str] = None
    key_contributions: list[str] = Field(default_factory=list)


class IntegrationOutput(BaseModel):
    """Stage 3 result."""

    connections: list[Connection] = Field(default_factory=list)
    thesis_relevance: Optional[ThesisRelevance] = None


def parse_json_object(text: str) -> dict[str, Any]:
    """Decode a model reply into a JSON object.

    Accepts bare JSON, JSON inside a Markdown code fence, or JSON surrounded
    by prose.

    Raises:
        LLMError: No JSON object could be decoded
    """
    candidates = [text.strip()]
    fenced = _FENCE_RE.search(text)
    if fenced:
        candidates.append(fenced.group(1))
    start, end = text.find("{"), text.rfind("}")
    if 0 <= start < end:
        candidates.append(text[start : end + 1])

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data

    logger.error("json_parse_error", response=text[:200])
    raise LLMError("Model response is not a JSON object")


def _field(data: dict, key: str) -> Any:
    """Read a snake_case key, falling back to its camelCase spelling."""
    if key in data:
        return data[key]
    head, *rest = key.split("_")
    return data.get(head + "".join(part.title() for part in rest))


def _text(value: Any, limit: int, default: str = "") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text[:limit] if text else default


def _string_list(value: Any, limit: int, item_limit: int = 500) -> list[str]:
    if not isinstance(value, list):
        return []
    items = [_text(v, item_limit) for v in value if v is not None]
    return [item for item in items if item][:limit]


def _finite_number(value: Any) -> bool:
    """True for a real int or float; bools, NaN and infinities are rejected."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return isinstance(value, int) or math.isfinite(value)


def _page_numbers(value: Any) -> list[int]:
    if not isinstance(value, list):
        return []
    pages = []
    for v in value:
        if _finite_number(v) and v > 0:
            pages.append(int(v))
    return sorted(set(pages))[:20]


def _enum(enum_cls, value: Any, default):
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return default


def _records(value: Any) -> list[dict]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _index(value: Any) -> Optional[int]:
    if not _finite_number(value):
        return None
    if isinstance(value, int):
        return value
    return int(value) if value.is_integer() else None


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex[:12]}"


# =============================================================================
# Stage 1
# =============================================================================


def parse_classification_response(data: dict[str, Any]) -> ClassificationOutput:
    """Normalise the stage 1 reply.

    Unknown paper types fall back to research-article; the expected finding
    count defaults by paper type (also when it is NaN or infinite) and is
    clamped to 1..20.
    """
    paper_type = _enum(PaperType, _field(data, "paper_type"), PaperType.RESEARCH_ARTICLE)

    expected = _field(data, "expected_finding_count")
    if _finite_number(expected):
        expected_count = max(1, min(20, round(expected)))
    else:
        expected_count = _DEFAULT_FINDING_COUNTS.get(paper_type, 5)

    experimental_system = _field(data, "experimental_system")
    if not isinstance(experimental_system, str) or not experimental_system.strip():
        experimental_system = None

    return ClassificationOutput(
        classification=PaperClassification(
            paper_type=paper_type,
            summary=_text(_field(data, "summary"), 1000),
            confidence=clamp_confidence(_field(data, "confidence")),
            priority_sections=_string_list(
                _field(data, "priority_sections"), MAX_PRIORITY_SECTIONS, 100
            ),
            expected_finding_count=expected_count,
        ),
        experimental_system=experimental_system.strip()[:200] if experimental_system else None,
        key_contributions=_string_list(
            _field(data, "key_contributions"), MAX_KEY_CONTRIBUTIONS
        ),
    )


# =============================================================================
# Stage 2
# =============================================================================


def _parse_quote(raw: dict) -> Optional[QuoteReference]:
    text = _text(raw.get("text"), 2000)
    if not text:
        return None
    page = _index(_field(raw, "page_number"))
    if page is not None and page <= 0:
        page = None
    return QuoteReference(
        id=_new_id("quote"),
        text=text,
        page_number=page,
        page_label=f"p. {page}" if page is not None else None,
    )


def _parse_relevance(raw: Any) -> Optional[FindingRelevance]:
    if not isinstance(raw, dict):
        return None
    return FindingRelevance(
        score=clamp_relevance_score(raw.get("score")),
        reasoning=_text(raw.get("reasoning"), 500),
        dimension=_text(raw.get("dimension"), 200) or None,
    )


def parse_finding(raw: dict, include_relevance: bool = False) -> ExtractedFinding:
    """Build one finding from a raw dict. Always unverified."""
    quotes = []
    for raw_quote in _records(_field(raw, "direct_quotes"))[:MAX_QUOTES_PER_FINDING]:
        quote = _parse_quote(raw_quote)
        if quote is not None:
            quotes.append(quote)

    section = _field(raw, "section_name")
    return ExtractedFinding(
        id=_new_id("finding"),
        finding_type=_enum(
            FindingType, _field(raw, "finding_type"), FindingType.SUPPORTING_FINDING
        ),
        title=_text(raw.get("title"), 100, default="Untitled finding"),
        description=_text(raw.get("description"), 1000),
        direct_quotes=quotes,
        confidence=clamp_confidence(raw.get("confidence")),
        user_verified=False,
        page_numbers=_page_numbers(_field(raw, "page_numbers")),
        section_name=section.strip()[:100] if isinstance(section, str) and section.strip() else None,
        thesis_relevance=(
            _parse_relevance(_field(raw, "thesis_relevance")) if include_relevance else None
        ),
    )


def parse_extraction_response(
    data: dict[str, Any], include_relevance: bool = False
) -> list[ExtractedFinding]:
    """Normalise the stage 2 reply into at most MAX_FINDINGS findings.

    Per-finding thesis relevance is kept only when a thesis was supplied.
    """
    return [
        parse_finding(raw, include_relevance)
        for raw in _records(data.get("findings"))[:MAX_FINDINGS]
    ]


# =============================================================================
# Stage 3
# =============================================================================


def parse_integration_response(
    data: dict[str, Any],
    findings: list[ExtractedFinding],
    include_thesis: bool = False,
) -> IntegrationOutput:
    """Normalise the stage 3 reply against the extracted findings.

    Connections are resolved from indices to finding ids. Out-of-range,
    self-referencing and duplicate connections are dropped, so the result
    can never dangle.
    """
    connections: list[Connection] = []
    seen: set[tuple[str, str, ConnectionType]] = set()
    dropped = 0

    raw_connections = _field(data, "connections") or _field(data, "intra_paper_connections")
    for raw in _records(raw_connections):
        source = _index(_field(raw, "from_finding_index"))
        target = _index(_field(raw, "to_finding_index"))
        if (
            source is None
            or target is None
            or not 0 <= source < len(findings)
            or not 0 <= target < len(findings)
            or source == target
        ):
            dropped += 1
            continue

        connection_type = _enum(
            ConnectionType, _field(raw, "connection_type"), ConnectionType.SUPPORTS
        )
        key = (findings[source].id, findings[target].id, connection_type)
        if key in seen:
            dropped += 1
            continue
        seen.add(key)

        connections.append(
            Connection(
                id=_new_id("conn"),
                from_finding_id=findings[source].id,
                to_finding_id=findings[target].id,
                connection_type=connection_type,
                explanation=_text(raw.get("explanation"), 500),
                is_explicit=_field(raw, "is_explicit") is True,
            )
        )
        if len(connections) >= MAX_CONNECTIONS:
            break

    if dropped:
        logger.debug("connections_dropped", count=dropped)

    thesis_relevance = None
    raw_relevance = _field(data, "thesis_relevance")
    if include_thesis and isinstance(raw_relevance, dict):
        thesis_relevance = ThesisRelevance(
            overall_score=clamp_relevance_score(_field(raw_relevance, "overall_score")),
            thesis_framed_takeaway=_text(_field(raw_relevance, "thesis_framed_takeaway"), 500),
            reasoning=_text(raw_relevance.get("reasoning"), 1000),
            suggested_role=_enum(
                SuggestedRole, _field(raw_relevance, "suggested_role"), SuggestedRole.OTHER
            ),
        )

    return IntegrationOutput(connections=connections, thesis_relevance=thesis_relevance)

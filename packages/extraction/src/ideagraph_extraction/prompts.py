"""Prompt templates for the three extraction stages.

Stage 1 classifies the paper and pulls its key contributions, stage 2
extracts findings with a system prompt chosen by paper type, and stage 3
connects the findings and relates the paper to the thesis. All prompts ask
for a single JSON object with snake_case keys.
"""

import math
from typing import Optional

from ideagraph_contracts import (
    ExtractedFinding,
    PaperClassification,
    PaperMetadata,
    PaperType,
    ThesisContext,
)

# Characters of paper text sent to each stage
CLASSIFICATION_TEXT_CHARS = 8000
EXTRACTION_TEXT_CHARS = 40000

# =============================================================================
# Stage 1: classification
# =============================================================================

CLASSIFICATION_SYSTEM_PROMPT = """You are an expert academic librarian analyzing scientific papers.
Your task is to quickly classify a paper to determine the best extraction strategy.

Paper types:
- research-article: Empirical research with IMRaD structure
- review: Synthesis of existing literature, systematic reviews
- methods: Focus on protocols, techniques, or tools
- short-communication: Brief reports, letters, short findings
- meta-analysis: Statistical combination of multiple study results
- case-study: Detailed examination of specific instances
- theoretical: Conceptual frameworks, mathematical models

Be concise and accurate. Output must be valid JSON matching the specified schema."""

CLASSIFICATION_PROMPT = """PAPER METADATA:
Title: {title}
Authors: {authors}
Year: {year}
Journal: {journal}

ABSTRACT:
{abstract}

DOCUMENT INFO:
- Approximate pages: {page_count}
- Approximate words: {word_count}

TEXT SAMPLE (first portion):
---
{text}
---

Classify this paper and name its main contributions.

OUTPUT FORMAT (JSON):
{{
  "paper_type": "research-article" | "review" | "methods" | "short-communication" | "meta-analysis" | "case-study" | "theoretical",
  "summary": "One or two sentences on what the paper does",
  "confidence": 0.0-1.0,
  "priority_sections": ["Results", "Discussion"],
  "expected_finding_count": 3-10,
  "experimental_system": "HeLa cells" | "E. coli" | "survey panel" | null,
  "key_contributions": ["1-3 main contributions"]
}}"""

# =============================================================================
# Stage 2: finding extraction
# =============================================================================

_EXTRACTION_SYSTEM_PROMPT_BASE = """You are an expert research analyst extracting structured knowledge from academic papers.

Key principles:
1. GROUND EVERYTHING IN QUOTES - every finding needs at least one direct quote with a page reference
2. BE SPECIFIC - use precise language from the paper, not vague summaries
3. DISTINGUISH FINDING TYPES - central findings are rare (usually 1-2), most are supporting

Finding types (USE ONLY THESE):
- central-finding: The main result or contribution
- supporting-finding: Results that support or elaborate the central finding
- methodological: Key methodological insights or innovations
- limitation: Acknowledged limitations or caveats
- implication: Stated implications or significance
- open-question: Questions raised but not answered
- background: Important context or prior knowledge

Page breaks in the text are marked as [Page N]."""

RESEARCH_ARTICLE_SYSTEM_PROMPT = (
    _EXTRACTION_SYSTEM_PROMPT_BASE
    + """

This is a RESEARCH ARTICLE with empirical findings. Focus on:
- Results: what did they actually find? Quantitative data is key
- Methods: what approach makes their results valid?
- Limitations acknowledged by the authors"""
)

REVIEW_SYSTEM_PROMPT = (
    _EXTRACTION_SYSTEM_PROMPT_BASE
    + """

This is a REVIEW PAPER synthesizing existing literature. Focus on:
- Consensus points: what do the reviewed papers agree on?
- Disagreements: where do they conflict?
- Gaps and future directions named by the authors"""
)

METHODS_SYSTEM_PROMPT = (
    _EXTRACTION_SYSTEM_PROMPT_BASE
    + """

This is a METHODS PAPER describing techniques or protocols. Focus on:
- Critical procedural steps and parameters
- Validation: how did they show the method works?
- Scope: when does the method NOT work?"""
)

SHORT_COMMUNICATION_SYSTEM_PROMPT = (
    _EXTRACTION_SYSTEM_PROMPT_BASE
    + """

This is a SHORT COMMUNICATION with a brief, focused contribution.
Keep extraction concise - expect only 1-3 findings."""
)

_SYSTEM_PROMPTS_BY_TYPE = {
    PaperType.REVIEW: REVIEW_SYSTEM_PROMPT,
    PaperType.METHODS: METHODS_SYSTEM_PROMPT,
    PaperType.SHORT_COMMUNICATION: SHORT_COMMUNICATION_SYSTEM_PROMPT,
}

EXTRACTION_PROMPT = """PAPER TO EXTRACT:
Title: {title}
Authors: {authors}
Year: {year}
Paper Type: {paper_type}
Expected findings: about {expected_finding_count}
{priority_sections}
ABSTRACT:
{abstract}

FULL TEXT:
---
{text}
---
{thesis_section}
Extract the findings of this paper.

OUTPUT FORMAT (JSON):
{{
  "findings": [
    {{
      "title": "Short label (3-10 words)",
      "description": "Full description (1-3 sentences)",
      "finding_type": "central-finding",
      "page_numbers": [5, 6],
      "section_name": "Results",
      "direct_quotes": [
        {{"text": "Exact quote from the paper", "page_number": 5}}
      ],
      "confidence": 0.0-1.0{relevance_field}
    }}
  ]
}}"""

_THESIS_SECTION = """
RESEARCHER'S THESIS:
"{title}"
{description}

Score each finding for relevance to this thesis (1 = not relevant, 5 = essential).
"""

_RELEVANCE_FIELD = """,
      "thesis_relevance": {{"score": 1-5, "dimension": "Aspect of the thesis", "reasoning": "Why"}}"""

# =============================================================================
# Stage 3: integration
# =============================================================================

INTEGRATION_SYSTEM_PROMPT = """You are an expert research advisor connecting the findings of one paper.

Your task is to:
1. Identify how the extracted findings relate to each other within the paper
2. When a thesis is given, assess how relevant the paper is to it and frame a takeaway

Connection types (USE ONLY THESE):
- supports: One finding provides evidence for another
- contradicts: One finding challenges another
- extends: One finding builds upon another
- requires: One finding depends on another holding
- explains: One finding accounts for another
- qualifies: One finding limits the scope of another

Thesis roles: supports, contradicts, method, background, other.
Relevance scores run from 1 (not relevant) to 5 (essential).
Refer to findings only by their index. Output must be valid JSON."""

INTEGRATION_PROMPT = """PAPER: {title}

EXTRACTED FINDINGS:
{findings}
{thesis_section}
OUTPUT FORMAT (JSON):
{{
  "connections": [
    {{
      "from_finding_index": 1,
      "to_finding_index": 0,
      "connection_type": "supports",
      "explanation": "How these findings relate",
      "is_explicit": true
    }}
  ]{thesis_fields}
}}"""

_INTEGRATION_THESIS_SECTION = """
RESEARCHER'S THESIS:
"{title}"
{description}

Assess how this paper fits the thesis.
"""

_INTEGRATION_THESIS_FIELDS = """,
  "thesis_relevance": {{
    "overall_score": 1-5,
    "suggested_role": "supports" | "contradicts" | "method" | "background" | "other",
    "thesis_framed_takeaway": "One sentence capturing the key insight for THIS thesis",
    "reasoning": "Why this score and role"
  }}"""


def estimate_word_count(text: str) -> int:
    """Count whitespace-separated words."""
    return len(text.split())


def estimate_page_count(text: str) -> int:
    """Rough page estimate: ~5 characters per word, ~500 words per page."""
    return math.ceil(len(text) / 5 / 500)


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "\n[... text truncated ...]"


def _metadata_fields(paper: PaperMetadata) -> dict:
    return {
        "title": paper.title,
        "authors": ", ".join(paper.authors) or "Unknown",
        "year": paper.year or "Unknown",
        "journal": paper.journal or "Unknown",
        "abstract": paper.abstract or "No abstract available",
    }


def format_classification_prompt(paper: PaperMetadata, text: str) -> str:
    """Build the stage 1 prompt from metadata and the opening of the text."""
    return CLASSIFICATION_PROMPT.format(
        **_metadata_fields(paper),
        page_count=estimate_page_count(text),
        word_count=estimate_word_count(text),
        text=_truncate(text, CLASSIFICATION_TEXT_CHARS),
    )


def get_extraction_system_prompt(paper_type: PaperType) -> str:
    """System prompt for stage 2.

    Meta-analyses, case studies and theoretical papers share the research
    article prompt.
    """
    return _SYSTEM_PROMPTS_BY_TYPE.get(paper_type, RESEARCH_ARTICLE_SYSTEM_PROMPT)


def format_extraction_prompt(
    paper: PaperMetadata,
    text: str,
    classification: PaperClassification,
    thesis: Optional[ThesisContext] = None,
) -> str:
    """Build the stage 2 prompt.

    Per-finding relevance is requested only when a thesis is given.
    """
    priority = ""
    if classification.priority_sections:
        priority = "Priority sections: " + ", ".join(classification.priority_sections) + "\n"

    thesis_section = ""
    relevance_field = ""
    if thesis is not None:
        thesis_section = _THESIS_SECTION.format(
            title=thesis.title, description=thesis.description
        )
        relevance_field = _RELEVANCE_FIELD.format()

    fields = _metadata_fields(paper)
    return EXTRACTION_PROMPT.format(
        title=fields["title"],
        authors=fields["authors"],
        year=fields["year"],
        abstract=fields["abstract"],
        paper_type=classification.paper_type.value,
        expected_finding_count=classification.expected_finding_count,
        priority_sections=priority,
        text=_truncate(text, EXTRACTION_TEXT_CHARS),
        thesis_section=thesis_section,
        relevance_field=relevance_field,
    )


def format_findings_for_integration(findings: list[ExtractedFinding]) -> str:
    """Render findings as an indexed list the model can refer back to."""
    if not findings:
        return "(no findings extracted)"
    return "\n\n".join(
        f"Finding {i}: [{f.finding_type.value}] {f.title}\n"
        f"  {f.description}\n"
        f"  Confidence: {f.confidence:.2f}"
        for i, f in enumerate(findings)
    )


def format_integration_prompt(
    paper: PaperMetadata,
    findings: list[ExtractedFinding],
    thesis: Optional[ThesisContext] = None,
) -> str:
    """Build the stage 3 prompt over the full finding set."""
    thesis_section = ""
    thesis_fields = ""
    if thesis is not None:
        thesis_section = _INTEGRATION_THESIS_SECTION.format(
            title=thesis.title, description=thesis.description
        )
        thesis_fields = _INTEGRATION_THESIS_FIELDS.format()

    return INTEGRATION_PROMPT.format(
        title=paper.title,
        findings=format_findings_for_integration(findings),
        thesis_section=thesis_section,
        thesis_fields=thesis_fields,
    )

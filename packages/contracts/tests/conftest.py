"""Pytest fixtures for contracts tests."""

import pytest

from ideagraph_contracts import (
    Connection,
    ConnectionType,
    ExtractedFinding,
    FindingType,
    PaperClassification,
    PaperKnowledgeGraph,
    PaperType,
    QuoteReference,
    SuggestedRole,
    ThesisRelevance,
)


@pytest.fixture
def sample_graph() -> PaperKnowledgeGraph:
    """Two findings, one verified, one connection and a thesis assessment."""
    return PaperKnowledgeGraph(
        paper_id="paper-1",
        classification=PaperClassification(
            paper_type=PaperType.RESEARCH_ARTICLE,
            summary="Reports a robust effect.",
        ),
        experimental_system="adult volunteers",
        key_contributions=["Shows the effect replicates"],
        thesis_relevance=ThesisRelevance(
            overall_score=4,
            thesis_framed_takeaway="Direct support for generalisation.",
            suggested_role=SuggestedRole.SUPPORTS,
        ),
        findings=[
            ExtractedFinding(
                id="f-main",
                finding_type=FindingType.CENTRAL_FINDING,
                title="The effect is robust",
                description="Holds in all cohorts.",
                confidence=0.9,
                page_numbers=[3, 4],
                section_name="Results",
                direct_quotes=[
                    QuoteReference(id="q1", text="We observe a robust effect.", page_label="p. 3")
                ],
                user_verified=True,
            ),
            ExtractedFinding(
                id="f-limit",
                finding_type=FindingType.LIMITATION,
                title="Small sample",
                confidence=0.5,
            ),
        ],
        intra_paper_connections=[
            Connection(
                id="c1",
                from_finding_id="f-limit",
                to_finding_id="f-main",
                connection_type=ConnectionType.QUALIFIES,
                explanation="Limits generality",
            )
        ],
        extraction_method="mock:default",
    )

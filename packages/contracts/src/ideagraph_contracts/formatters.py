"""Output formatters for findings graphs.

Shared by the CLI and the API. Provides two output formats:
- markdown: Human-readable outline grouped by finding type
- json: Machine-parseable JSON (the stored graph plus derived fields)
"""

import json

from ideagraph_contracts.models import (
    ExtractedFinding,
    FindingType,
    PaperKnowledgeGraph,
    confidence_level,
)

# Outline order; types not listed here are appended in enum order.
SECTION_ORDER = [
    FindingType.CENTRAL_FINDING,
    FindingType.SUPPORTING_FINDING,
    FindingType.METHODOLOGICAL,
    FindingType.IMPLICATION,
    FindingType.LIMITATION,
    FindingType.OPEN_QUESTION,
    FindingType.BACKGROUND,
]

SECTION_TITLES = {
    FindingType.CENTRAL_FINDING: "Central findings",
    FindingType.SUPPORTING_FINDING: "Supporting findings",
    FindingType.METHODOLOGICAL: "Methodological",
    FindingType.IMPLICATION: "Implications",
    FindingType.LIMITATION: "Limitations",
    FindingType.OPEN_QUESTION: "Open questions",
    FindingType.BACKGROUND: "Background",
}


def format_pages(pages: list[int]) -> str:
    if not pages:
        return ""
    if len(pages) == 1:
        return f"p. {pages[0]}"
    return "pp. " + ", ".join(str(p) for p in pages)


def format_finding_markdown(finding: ExtractedFinding, show_quotes: bool = True) -> str:
    """Format a single finding as a markdown block.

    Args:
        finding: Finding to format
        show_quotes: Whether to include direct quotes

    Returns:
        Markdown-formatted string
    """
    marker = "[x]" if finding.user_verified else "[ ]"
    level = confidence_level(finding.confidence)
    lines = [f"- {marker} **{finding.title}** ({level}, {finding.confidence:.2f})"]

    location = ", ".join(
        part for part in (finding.section_name, format_pages(finding.page_numbers)) if part
    )
    if location:
        lines.append(f"  - Location: {location}")
    if finding.description:
        lines.append(f"  - {finding.description}")
    if finding.thesis_relevance is not None:
        lines.append(f"  - Thesis relevance: {finding.thesis_relevance.score}/5")

    if show_quotes:
        for quote in finding.direct_quotes:
            label = f" ({quote.page_label})" if quote.page_label else ""
            lines.append(f'  > "{quote.text}"{label}')

    lines.append(f"  - id: `{finding.id}`")
    return "\n".join(lines)


def format_graph_markdown(graph: PaperKnowledgeGraph, show_quotes: bool = True) -> str:
    """Format a findings graph as a markdown outline.

    Args:
        graph: Graph to format
        show_quotes: Whether to include direct quotes

    Returns:
        Markdown-formatted string
    """
    classification = graph.classification
    lines = [
        f"# Findings for {graph.paper_id}",
        "",
        f"**Type**: {classification.paper_type.value}",
        f"**Review**: {graph.review_status.value} "
        f"({graph.verified_count}/{len(graph.findings)} verified)",
    ]
    if classification.summary:
        lines.append(f"**Summary**: {classification.summary}")
    if graph.experimental_system:
        lines.append(f"**System**: {graph.experimental_system}")
    if graph.extraction_method:
        lines.append(f"**Extracted by**: {graph.extraction_method}")

    if graph.key_contributions:
        lines.extend(["", "## Key contributions", ""])
        lines.extend(f"- {c}" for c in graph.key_contributions)

    if graph.thesis_relevance is not None:
        relevance = graph.thesis_relevance
        lines.extend(
            [
                "",
                "## Thesis relevance",
                "",
                f"**Score**: {relevance.overall_score}/5 "
                f"(role: {relevance.suggested_role.value})",
            ]
        )
        if relevance.thesis_framed_takeaway:
            lines.append(f"> {relevance.thesis_framed_takeaway}")

    if not graph.findings:
        lines.extend(["", "_No findings extracted._"])
        return "\n".join(lines)

    grouped = graph.findings_by_type()
    order = SECTION_ORDER + [t for t in FindingType if t not in SECTION_ORDER]
    for finding_type in order:
        findings = grouped.get(finding_type)
        if not findings:
            continue
        lines.extend(["", f"## {SECTION_TITLES.get(finding_type, finding_type.value)}", ""])
        lines.extend(format_finding_markdown(f, show_quotes) for f in findings)

    if graph.intra_paper_connections:
        titles = {f.id: f.title for f in graph.findings}
        lines.extend(["", "## Connections", ""])
        for connection in graph.intra_paper_connections:
            line = (
                f"- {titles[connection.from_finding_id]} "
                f"*{connection.connection_type.value}* "
                f"{titles[connection.to_finding_id]}"
            )
            if connection.explanation:
                line += f": {connection.explanation}"
            lines.append(line)

    return "\n".join(lines)


def format_graph_json(graph: PaperKnowledgeGraph) -> str:
    """Format a findings graph as a JSON string with derived fields."""
    output = graph.model_dump(mode="json")
    output["verified_count"] = graph.verified_count
    for finding, dumped in zip(graph.findings, output["findings"]):
        dumped["confidence_level"] = confidence_level(finding.confidence)
    return json.dumps(output, indent=2)

"""Deterministic LLM backend for tests and offline demos.

Recognises the stage from the system prompt and returns a canned reply for
it. Delays and failures can be injected per stage to exercise cancellation,
timeouts and stage failures.
"""

import asyncio
import copy
from typing import Any, Optional

from ideagraph_common import LLMError, get_logger

from ideagraph_extraction.base_client import LLMClient, LLMResponse
from ideagraph_extraction.prompts import (
    CLASSIFICATION_SYSTEM_PROMPT,
    INTEGRATION_SYSTEM_PROMPT,
)

logger = get_logger(__name__)

DEFAULT_RESPONSES: dict[int, dict[str, Any]] = {
    1: {
        "paper_type": "research-article",
        "summary": "An empirical study reporting one main result with supporting evidence.",
        "confidence": 0.9,
        "priority_sections": ["Results", "Discussion"],
        "expected_finding_count": 3,
        "experimental_system": None,
        "key_contributions": [
            "Reports the central result",
            "Validates it with a secondary analysis",
        ],
    },
    2: {
        "findings": [
            {
                "title": "Central result",
                "description": "The main effect reported by the authors.",
                "finding_type": "central-finding",
                "page_numbers": [1],
                "section_name": "Results",
                "direct_quotes": [{"text": "We observe a robust effect.", "page_number": 1}],
                "confidence": 0.9,
                "thesis_relevance": {"score": 5, "dimension": "Core claim", "reasoning": "Direct"},
            },
            {
                "title": "Secondary analysis agrees",
                "description": "A robustness check reproduces the main effect.",
                "finding_type": "supporting-finding",
                "page_numbers": [2],
                "section_name": "Results",
                "direct_quotes": [{"text": "The effect persists.", "page_number": 2}],
                "confidence": 0.75,
                "thesis_relevance": {"score": 3, "dimension": "Evidence", "reasoning": "Backs"},
            },
            {
                "title": "Small sample",
                "description": "The authors note the sample is limited.",
                "finding_type": "limitation",
                "page_numbers": [2],
                "section_name": "Discussion",
                "direct_quotes": [],
                "confidence": 0.6,
            },
        ]
    },
    3: {
        "connections": [
            {
                "from_finding_index": 1,
                "to_finding_index": 0,
                "connection_type": "supports",
                "explanation": "The robustness check backs the main result.",
                "is_explicit": True,
            },
            {
                "from_finding_index": 2,
                "to_finding_index": 0,
                "connection_type": "qualifies",
                "explanation": "The small sample limits generality.",
                "is_explicit": False,
            },
        ],
        "thesis_relevance": {
            "overall_score": 4,
            "suggested_role": "supports",
            "thesis_framed_takeaway": "Provides direct evidence for the thesis.",
            "reasoning": "The central result matches the thesis claim.",
        },
    },
}


def stage_for_system_prompt(system: Optional[str]) -> int:
    """Map a system prompt back to its pipeline stage."""
    if system == CLASSIFICATION_SYSTEM_PROMPT:
        return 1
    if system == INTEGRATION_SYSTEM_PROMPT:
        return 3
    return 2


class MockLLMClient(LLMClient):
    """In-process LLM backend with scripted replies.

    Args:
        responses: Per-stage reply overrides (stage number -> JSON object)
        delays: Per-stage sleep in seconds before replying
        fail_stages: Stages that raise LLMError instead of replying
        tokens: (input, output) token counts reported for every call

    Example:
        >>> client = MockLLMClient(delays={2: 10.0})   # stage 2 hangs
        >>> client.calls                                 # stages called so far
        []
    """

    def __init__(
        self,
        responses: Optional[dict[int, dict[str, Any]]] = None,
        delays: Optional[dict[int, float]] = None,
        fail_stages: Optional[set[int]] = None,
        tokens: tuple[int, int] = (1000, 200),
        name: str = "default",
    ):
        self.responses = {**DEFAULT_RESPONSES, **(responses or {})}
        self.delays = delays or {}
        self.fail_stages = fail_stages or set()
        self.tokens = tokens
        self.name = name
        self.calls: list[int] = []
        self.prompts: list[str] = []
        self.closed = False

    async def complete_json(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.3,
    ) -> LLMResponse:
        stage = stage_for_system_prompt(system)
        self.calls.append(stage)
        self.prompts.append(prompt)

        delay = self.delays.get(stage, 0.0)
        if delay:
            await asyncio.sleep(delay)

        if stage in self.fail_stages:
            logger.warning("mock_llm_failure", stage=stage)
            raise LLMError(f"Mock failure in stage {stage}")

        return LLMResponse(
            data=copy.deepcopy(self.responses[stage]),
            tokens_input=self.tokens[0],
            tokens_output=self.tokens[1],
        )

    async def is_available(self) -> bool:
        return True

    async def close(self) -> None:
        self.closed = True

    @property
    def extraction_method(self) -> str:
        return f"mock:{self.name}"

"""Abstract base class for LLM clients.

Provides a common interface for the LLM backends (Anthropic, Ollama, mock)
used by the three extraction stages. Every stage asks for one JSON object.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel, Field


class LLMResponse(BaseModel):
    """Parsed JSON payload of one completion plus its token accounting."""

    data: dict[str, Any] = Field(default_factory=dict)
    tokens_input: int = Field(0, ge=0)
    tokens_output: int = Field(0, ge=0)


class LLMClient(ABC):
    """Abstract base for LLM clients.

    All LLM backends must implement this interface for use in the
    extraction pipeline. This enables swapping between:
    - AnthropicClient: Claude API (default)
    - OllamaClient: Local inference
    - MockLLMClient: Deterministic responses for tests and demos

    Cancelling the awaiting task must abort the in-flight request; both
    network backends are natively async so that holds for free.
    """

    @abstractmethod
    async def complete_json(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.3,
    ) -> LLMResponse:
        """Run one completion and parse the reply as a JSON object.

        Args:
            prompt: User prompt text
            system: System prompt (optional)
            max_tokens: Maximum tokens in the response
            temperature: Sampling temperature

        Returns:
            LLMResponse with the decoded object and token counts

        Raises:
            LLMError: Backend failure or a reply that is not a JSON object
        """
        pass

    @abstractmethod
    async def is_available(self) -> bool:
        """Check if the backend is available and ready.

        For Ollama: checks server connectivity
        For Anthropic: checks the API key works
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Clean up resources (HTTP clients, SDK sessions)."""
        pass

    @property
    @abstractmethod
    def extraction_method(self) -> str:
        """Return identifier stored on each graph.

        Examples:
            - "anthropic:sonnet"
            - "ollama:llama3.1:8b"
            - "mock:default"
        """
        pass

    async def __aenter__(self) -> "LLMClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

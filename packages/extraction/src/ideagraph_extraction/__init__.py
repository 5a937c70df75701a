"""IdeaGraph Extraction - three-stage paper knowledge extraction.

This package provides:
- LLMClient: Abstract base for LLM backends
- OllamaClient: Local LLM wrapper
- AnthropicClient: Claude API (default backend)
- MockLLMClient: Deterministic backend for tests and demos
- ExtractionSession: Pipeline state machine for one paper
- ExtractionSessionManager: One active session per paper
- get_llm_client: Factory function for backend selection
"""

from typing import Optional

from ideagraph_extraction.base_client import LLMClient, LLMResponse
from ideagraph_extraction.manager import ExtractionSessionManager
from ideagraph_extraction.mock_client import MockLLMClient
from ideagraph_extraction.ollama_client import OllamaClient
from ideagraph_extraction.parsing import (
    ClassificationOutput,
    IntegrationOutput,
    parse_classification_response,
    parse_extraction_response,
    parse_integration_response,
    parse_json_object,
)
from ideagraph_extraction.session import ExtractionSession, transition_allowed

__version__ = "1.0.0"


def get_llm_client(
    backend: str = "anthropic",
    model: Optional[str] = None,
    **kwargs,
) -> LLMClient:
    """Factory function to create LLM client.

    Args:
        backend: Backend type ("anthropic", "ollama" or "mock")
        model: Model name (default depends on backend)
        **kwargs: Additional arguments passed to client constructor

    Returns:
        LLMClient instance for the specified backend

    Raises:
        ValueError: If backend is unknown, or anthropic has no API key

    Example:
        >>> client = get_llm_client("anthropic", model="sonnet")
        >>> client = get_llm_client("ollama", model="llama3.1:8b")
        >>> client = get_llm_client("mock")
    """
    if backend == "anthropic":
        # Import here so the other backends work without the SDK loaded
        from ideagraph_extraction.anthropic_client import AnthropicClient

        return AnthropicClient(model=model or "sonnet", **kwargs)
    elif backend == "ollama":
        return OllamaClient(model=model or "llama3.1:8b", **kwargs)
    elif backend == "mock":
        return MockLLMClient(name=model or "default", **kwargs)
    else:
        raise ValueError(
            f"Unknown backend: {backend}. Supported: 'anthropic', 'ollama', 'mock'"
        )


def get_llm_client_from_settings(settings) -> LLMClient:
    """Build the backend named by `settings.llm_backend`."""
    kwargs = {}
    if settings.llm_backend == "anthropic":
        kwargs["api_key"] = settings.anthropic_api_key
    elif settings.llm_backend == "ollama":
        kwargs["base_url"] = settings.ollama_url
        kwargs["timeout"] = settings.stage_timeout_seconds
    return get_llm_client(settings.llm_backend, settings.llm_model, **kwargs)


__all__ = [
    # Base class
    "LLMClient",
    "LLMResponse",
    # Clients
    "OllamaClient",
    "MockLLMClient",
    # Note: AnthropicClient not exported at module level; use
    # get_llm_client("anthropic") instead.
    # Parsing
    "ClassificationOutput",
    "IntegrationOutput",
    "parse_json_object",
    "parse_classification_response",
    "parse_extraction_response",
    "parse_integration_response",
    # Pipeline
    "ExtractionSession",
    "ExtractionSessionManager",
    "transition_allowed",
    # Factory
    "get_llm_client",
    "get_llm_client_from_settings",
]

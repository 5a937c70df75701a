"""Anthropic Claude client for the extraction stages.

Uses the async SDK so that cancelling the awaiting task aborts the HTTP
request. Supports multiple Claude models with different speed/quality
tradeoffs:
- haiku: Fast, cheap
- sonnet: Balanced (default)
- opus: Highest quality
"""

import os
from typing import Optional

import anthropic
from ideagraph_common import LLMError, get_logger

from ideagraph_extraction.base_client import LLMClient, LLMResponse
from ideagraph_extraction.parsing import parse_json_object

logger = get_logger(__name__)


class AnthropicClient(LLMClient):
    """Anthropic Claude API client.

    Example:
        >>> client = AnthropicClient(model="sonnet")
        >>> response = await client.complete_json("Classify...", system=SYSTEM)
        >>> print(response.data["paper_type"])
    """

    # Model name -> API model ID mapping
    MODELS = {
        "haiku": "claude-3-5-haiku-20241022",
        "sonnet": "claude-sonnet-4-20250514",
        "opus": "claude-opus-4-5-20251101",
    }

    def __init__(
        self,
        model: str = "sonnet",
        api_key: Optional[str] = None,
        timeout: float = 120.0,
        max_retries: int = 2,
    ):
        """Initialize Anthropic client.

        Args:
            model: Model name (haiku, sonnet, opus) or full model ID
            api_key: Anthropic API key (default: from ANTHROPIC_API_KEY env)
            timeout: Per-request timeout in seconds
            max_retries: SDK-level retries for transient API errors
        """
        self.model_name = model
        self.model_id = self.MODELS.get(model, model)

        raw_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self._api_key = raw_key.strip() if raw_key else None
        if not self._api_key:
            raise ValueError(
                "ANTHROPIC_API_KEY environment variable not set and no api_key provided"
            )

        self._client = anthropic.AsyncAnthropic(
            api_key=self._api_key,
            timeout=timeout,
            max_retries=max_retries,
        )
        logger.info(
            "anthropic_client_initialized",
            model=self.model_name,
            model_id=self.model_id,
        )

    async def complete_json(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.3,
    ) -> LLMResponse:
        """Run one Messages API call and decode the JSON reply.

        Raises:
            LLMError: API failure or non-JSON reply
        """
        kwargs = {}
        if system:
            kwargs["system"] = system

        try:
            message = await self._client.messages.create(
                model=self.model_id,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
                **kwargs,
            )
        except anthropic.APIError as e:
            logger.error("anthropic_api_error", error=str(e), model=self.model_id)
            raise LLMError(f"Anthropic API error: {e}") from e

        text = "".join(
            block.text for block in message.content if getattr(block, "type", None) == "text"
        )
        data = parse_json_object(text)

        logger.debug(
            "completion_received",
            model=self.model_name,
            input_tokens=message.usage.input_tokens,
            output_tokens=message.usage.output_tokens,
        )
        return LLMResponse(
            data=data,
            tokens_input=message.usage.input_tokens,
            tokens_output=message.usage.output_tokens,
        )

    async def is_available(self) -> bool:
        """Check the API key works with a cheap token-count call."""
        if not self._api_key:
            return False

        try:
            await self._client.messages.count_tokens(
                model=self.model_id,
                messages=[{"role": "user", "content": "test"}],
            )
            return True
        except anthropic.APIError as e:
            logger.warning("anthropic_availability_check_failed", error=str(e))
            return False

    async def close(self) -> None:
        """Close the SDK's HTTP client."""
        await self._client.close()

    @property
    def extraction_method(self) -> str:
        """Return extraction method identifier stored on graphs."""
        return f"anthropic:{self.model_name}"

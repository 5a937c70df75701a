"""Ollama client for local LLM inference.

Provides structured JSON output using Ollama's native JSON mode. Transient
transport failures are retried; HTTP errors are not.
"""

from typing import Any, Optional

import httpx
from ideagraph_common import LLMError, get_logger, retry_on_exception

from ideagraph_extraction.base_client import LLMClient, LLMResponse
from ideagraph_extraction.parsing import parse_json_object

logger = get_logger(__name__)


class OllamaClient(LLMClient):
    """Client for Ollama LLM with structured JSON output.

    Example:
        >>> client = OllamaClient(model="llama3.1:8b")
        >>> response = await client.complete_json("Classify...", system=SYSTEM)
        >>> print(response.data)
    """

    def __init__(
        self,
        model: str = "llama3.1:8b",
        base_url: str = "http://localhost:11434",
        timeout: float = 120.0,
        num_ctx: int = 16384,
    ):
        """Initialize Ollama client.

        Args:
            model: Ollama model name (default: llama3.1:8b)
            base_url: Ollama server URL
            timeout: Request timeout in seconds
            num_ctx: Context window size in tokens
        """
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.num_ctx = num_ctx
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def is_available(self) -> bool:
        """Check if Ollama server is available."""
        try:
            client = await self._get_client()
            response = await client.get("/api/tags")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    @retry_on_exception(
        (httpx.TimeoutException, httpx.NetworkError),
        max_attempts=3,
        min_wait_seconds=1.0,
        max_wait_seconds=8.0,
    )
    async def _post_generate(self, payload: dict[str, Any]) -> httpx.Response:
        client = await self._get_client()
        return await client.post("/api/generate", json=payload)

    async def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.3,
        json_mode: bool = True,
    ) -> dict[str, Any]:
        """Generate a completion from Ollama.

        Returns:
            Raw Ollama response body (`response`, `prompt_eval_count`, ...)

        Raises:
            LLMError: If generation fails
        """
        payload: dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": temperature,
                "num_ctx": self.num_ctx,
                "num_predict": max_tokens,
            },
        }

        if system:
            payload["system"] = system

        if json_mode:
            payload["format"] = "json"

        try:
            response = await self._post_generate(payload)
            response.raise_for_status()
            return response.json()

        except httpx.HTTPStatusError as e:
            logger.error("ollama_http_error", status=e.response.status_code)
            raise LLMError(f"Ollama HTTP error: {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.error("ollama_request_error", error=str(e))
            raise LLMError(f"Ollama request failed: {e}") from e
        except ValueError as e:
            raise LLMError(f"Ollama returned invalid JSON: {e}") from e

    async def complete_json(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.3,
    ) -> LLMResponse:
        """Generate in JSON mode and decode the reply."""
        body = await self.generate(
            prompt=prompt,
            system=system,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        data = parse_json_object(body.get("response", ""))
        return LLMResponse(
            data=data,
            tokens_input=body.get("prompt_eval_count", 0) or 0,
            tokens_output=body.get("eval_count", 0) or 0,
        )

    @property
    def extraction_method(self) -> str:
        """Return extraction method identifier stored on graphs."""
        return f"ollama:{self.model}"

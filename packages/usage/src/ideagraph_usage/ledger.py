"""Async client for the remote usage ledger.

Endpoints:
    GET  /api/usage/current  -> the user's credit state
    POST /api/usage/track    -> record one debit

Requests carry a bearer token. Transient transport errors are retried;
every other failure surfaces as UsageSyncError.
"""

from typing import Any, Optional

import httpx

from ideagraph_common import UsageSyncError, get_logger, retry_on_exception
from ideagraph_contracts import UsageRecord

from ideagraph_usage.models import UserUsage, normalize_usage_payload

logger = get_logger(__name__)


class UsageLedgerClient:
    """Remote credit ledger.

    Example:
        >>> async with UsageLedgerClient("https://ledger.example", token="t") as ledger:
        ...     usage = await ledger.fetch_current()
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout_seconds = timeout_seconds
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "UsageLedgerClient":
        self._get_client()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"User-Agent": "ideagraph-usage/1.0.0"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=httpx.Timeout(self.timeout_seconds),
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch_current(self, user_id: Optional[str] = None) -> Optional[UserUsage]:
        """Fetch the user's credit state.

        Returns:
            Normalized usage, or None when the ledger has no record (404)

        Raises:
            UsageSyncError: On any other failure
        """
        data = await self._request("GET", "/api/usage/current")
        if data is None:
            return None
        return normalize_usage_payload(data, user_id=user_id)

    async def track(self, record: UsageRecord) -> Optional[float]:
        """Push one debit to the ledger.

        Returns:
            Credits remaining according to the ledger, when it reports them
        """
        body = {
            "id": record.id,
            "action": record.action,
            "creditsUsed": record.cost,
            "paperId": record.paper_id,
            "success": record.success,
            "error": record.error,
            "timestamp": record.timestamp.isoformat(),
        }
        data = await self._request("POST", "/api/usage/track", json=body)
        if not isinstance(data, dict):
            return None
        remaining = data.get("creditsRemaining", data.get("credits_remaining"))
        return float(remaining) if isinstance(remaining, (int, float)) else None

    @retry_on_exception(
        (httpx.TimeoutException, httpx.NetworkError),
        max_attempts=3,
        min_wait_seconds=0.5,
        max_wait_seconds=5.0,
    )
    async def _send(self, method: str, endpoint: str, json: dict[str, Any] | None) -> httpx.Response:
        return await self._get_client().request(method, endpoint, json=json)

    async def _request(
        self,
        method: str,
        endpoint: str,
        json: dict[str, Any] | None = None,
    ) -> Any:
        logger.debug("usage_ledger_request", method=method, endpoint=endpoint)
        try:
            response = await self._send(method, endpoint, json)
        except httpx.HTTPError as e:
            raise UsageSyncError(f"Usage ledger unreachable at {endpoint}: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise UsageSyncError(
                f"Usage ledger error {response.status_code} at {endpoint}: {response.text[:200]}"
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise UsageSyncError(f"Usage ledger returned invalid JSON at {endpoint}") from e

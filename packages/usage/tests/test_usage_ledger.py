"""Tests for the remote usage ledger client and payload normalization.

Uses respx to mock httpx requests for deterministic testing.
"""

import pytest
import respx
from httpx import ConnectError, Response

from ideagraph_common import UsageSyncError
from ideagraph_contracts import UsageRecord
from ideagraph_usage import UsageLedgerClient, normalize_usage_payload

BASE_URL = "https://ledger.test"


class TestNormalizeUsagePayload:
    """Every known payload shape maps to the canonical UserUsage."""

    def test_camel_case(self):
        usage = normalize_usage_payload({"userId": 7, "totalCredits": 100, "usedCredits": 12})

        assert usage.user_id == "7"
        assert usage.total_credits == 100
        assert usage.used_credits == 12

    def test_snake_case(self):
        usage = normalize_usage_payload({"total_credits": 40, "used_credits": 4})

        assert usage.credits_remaining == 36

    def test_nested_credits_object(self):
        usage = normalize_usage_payload({"credits": {"total": 60, "used": 15}})

        assert usage.total_credits == 60
        assert usage.used_credits == 15

    def test_remaining_only(self):
        usage = normalize_usage_payload({"creditsRemaining": 70})

        assert usage.total_credits == 100
        assert usage.used_credits == 30

    def test_used_and_remaining_without_total(self):
        usage = normalize_usage_payload({"usedCredits": 5, "creditsRemaining": 15})

        assert usage.total_credits == 20

    def test_usage_wrapper(self):
        usage = normalize_usage_payload({"usage": {"totalCredits": 10, "usedCredits": 1}})

        assert usage.total_credits == 10

    def test_history_entries_normalized(self):
        usage = normalize_usage_payload(
            {
                "totalCredits": 100,
                "history": [
                    {"id": "h1", "action": "summarize", "creditsUsed": 1, "paperId": "p1"},
                    "garbage",
                ],
            }
        )

        assert len(usage.history) == 1
        assert usage.history[0].cost == 1
        assert usage.history[0].paper_id == "p1"

    def test_non_object_rejected(self):
        with pytest.raises(UsageSyncError):
            normalize_usage_payload(["not", "an", "object"])


class TestUsageLedgerClient:
    """HTTP behaviour of the ledger client."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_current(self):
        route = respx.get(f"{BASE_URL}/api/usage/current").mock(
            return_value=Response(200, json={"credits": {"total": 100, "used": 25}})
        )

        async with UsageLedgerClient(BASE_URL, token="secret") as ledger:
            usage = await ledger.fetch_current(user_id="user-1")

        assert usage.used_credits == 25
        assert usage.user_id == "user-1"
        assert route.calls.last.request.headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_current_404_is_none(self):
        respx.get(f"{BASE_URL}/api/usage/current").mock(return_value=Response(404))

        async with UsageLedgerClient(BASE_URL) as ledger:
            assert await ledger.fetch_current() is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_track_posts_record(self):
        route = respx.post(f"{BASE_URL}/api/usage/track").mock(
            return_value=Response(200, json={"creditsRemaining": 42})
        )
        record = UsageRecord(id="u1", action="extraction-stage-1", cost=1, paper_id="p1")

        async with UsageLedgerClient(BASE_URL) as ledger:
            remaining = await ledger.track(record)

        assert remaining == 42
        body = route.calls.last.request.read()
        assert b'"creditsUsed":1.0' in body.replace(b" ", b"")
        assert b'"paperId":"p1"' in body.replace(b" ", b"")

    @pytest.mark.asyncio
    @respx.mock
    async def test_server_error_raises(self):
        respx.post(f"{BASE_URL}/api/usage/track").mock(return_value=Response(500, text="boom"))
        record = UsageRecord(id="u1", action="a", cost=1)

        async with UsageLedgerClient(BASE_URL) as ledger:
            with pytest.raises(UsageSyncError, match="500"):
                await ledger.track(record)

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_error_retried_then_raised(self):
        route = respx.get(f"{BASE_URL}/api/usage/current").mock(
            side_effect=ConnectError("refused")
        )

        async with UsageLedgerClient(BASE_URL) as ledger:
            with pytest.raises(UsageSyncError, match="unreachable"):
                await ledger.fetch_current()

        assert route.call_count == 3

"""Credit ledger models and remote payload normalization."""

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from ideagraph_common import UsageSyncError, get_logger
from ideagraph_contracts import UsageRecord, utc_now

logger = get_logger(__name__)

DEFAULT_TOTAL_CREDITS = 100.0


class UserUsage(BaseModel):
    """Credit state of one authenticated user (the locally cached truth)."""

    user_id: Optional[str] = None
    total_credits: float = Field(DEFAULT_TOTAL_CREDITS, ge=0.0)
    used_credits: float = Field(0.0, ge=0.0)
    reset_date: Optional[datetime] = None
    last_updated: datetime = Field(default_factory=utc_now)
    history: list[UsageRecord] = Field(default_factory=list)

    @property
    def credits_remaining(self) -> float:
        return max(0.0, self.total_credits - self.used_credits)


class UsageSnapshot(BaseModel):
    """Display-oriented view of the active credit pool."""

    is_guest: bool
    total_credits: float
    used_credits: float
    credits_remaining: float
    percentage_used: int
    percentage_remaining: int
    is_low: bool = Field(..., description="< 20% remaining")
    is_critical: bool = Field(..., description="< 5% remaining")
    is_exhausted: bool

    @classmethod
    def compute(cls, total: float, used: float, is_guest: bool) -> "UsageSnapshot":
        total = total or DEFAULT_TOTAL_CREDITS
        percentage_used = min(100.0, used / total * 100)
        percentage_remaining = max(0.0, 100.0 - percentage_used)
        return cls(
            is_guest=is_guest,
            total_credits=total,
            used_credits=used,
            credits_remaining=max(0.0, total - used),
            percentage_used=round(percentage_used),
            percentage_remaining=round(percentage_remaining),
            is_low=percentage_remaining < 20,
            is_critical=percentage_remaining < 5,
            is_exhausted=percentage_remaining <= 0,
        )


def _first_number(*candidates: Any) -> Optional[float]:
    for value in candidates:
        if value is None or isinstance(value, bool):
            continue
        try:
            return float(value)
        except (TypeError, ValueError):
            continue
    return None


def _normalize_history_entry(entry: Any) -> Optional[UsageRecord]:
    if not isinstance(entry, Mapping):
        return None
    cost = _first_number(entry.get("creditsUsed"), entry.get("credits_used"), entry.get("cost"))
    try:
        return UsageRecord(
            id=str(entry.get("id") or ""),
            action=str(entry.get("action") or "unknown"),
            cost=cost if cost is not None else 0.0,
            success=bool(entry.get("success", True)),
            timestamp=entry.get("timestamp") or utc_now(),
            paper_id=entry.get("paperId") or entry.get("paper_id"),
            error=entry.get("error"),
        )
    except ValidationError as e:
        logger.debug("usage_history_entry_skipped", error=str(e))
        return None


def normalize_usage_payload(
    payload: Any,
    user_id: Optional[str] = None,
    default_total_credits: float = DEFAULT_TOTAL_CREDITS,
) -> UserUsage:
    """Map a remote usage payload of any known shape onto `UserUsage`.

    Accepted credit field spellings:
        totalCredits | total_credits | credits.total
        usedCredits | used_credits | credits.used
        creditsRemaining | credits_remaining | credits.remaining

    The payload may be wrapped in a top-level "usage" object. When `used`
    is missing it is derived from `remaining`; when `total` is missing it is
    derived from used + remaining, falling back to the default allowance.

    Raises:
        UsageSyncError: If the payload is not a JSON object
    """
    if not isinstance(payload, Mapping):
        raise UsageSyncError(f"Usage payload must be an object, got {type(payload).__name__}")

    if isinstance(payload.get("usage"), Mapping):
        payload = payload["usage"]

    credits = payload.get("credits")
    if not isinstance(credits, Mapping):
        credits = {}

    total = _first_number(payload.get("totalCredits"), payload.get("total_credits"), credits.get("total"))
    used = _first_number(payload.get("usedCredits"), payload.get("used_credits"), credits.get("used"))
    remaining = _first_number(
        payload.get("creditsRemaining"),
        payload.get("credits_remaining"),
        credits.get("remaining"),
    )

    if total is None:
        if used is not None and remaining is not None:
            total = used + remaining
        else:
            total = default_total_credits
    if used is None:
        used = max(0.0, total - remaining) if remaining is not None else 0.0

    raw_user = payload.get("userId", payload.get("user_id"))
    history = [
        record
        for record in map(_normalize_history_entry, payload.get("history") or [])
        if record is not None
    ]

    return UserUsage(
        user_id=str(raw_user) if raw_user is not None else user_id,
        total_credits=max(0.0, total),
        used_credits=max(0.0, used),
        reset_date=payload.get("resetDate") or payload.get("reset_date"),
        last_updated=payload.get("lastUpdated") or payload.get("last_updated") or utc_now(),
        history=history,
    )

"""Credit Gate: quota checks and debits for LLM-backed actions.

Two pools that never mix:

- Authenticated pool: `UserUsage` cached in a local JSON file. Debits are
  applied and persisted synchronously, then pushed to the remote ledger in
  a background task. A failed push is logged and the local debit stands.
- Guest pool: a fixed per-process allowance held only in memory; never
  persisted and never sent to the ledger.

Runs reserve their full cost up front. Debits draw the reservation down and
`release` frees the rest; reserved credits count as spent for `can_perform`.

Example:
    >>> gate = CreditGate(state_path="~/.ideagraph/usage.json")
    >>> await gate.identify("user-7")
    >>> if gate.can_perform(5):
    ...     gate.debit(1, "extraction-stage-1", paper_id="paper-42")
"""

import asyncio
import json
from pathlib import Path
from typing import Optional
from uuid import uuid4

from pydantic import ValidationError

from ideagraph_common import (
    Settings,
    UsageSyncError,
    atomic_write_text,
    expand_path,
    get_logger,
)
from ideagraph_contracts import UsageRecord, utc_now

from ideagraph_usage.ledger import UsageLedgerClient
from ideagraph_usage.models import UsageSnapshot, UserUsage

logger = get_logger(__name__)


class CreditGate:
    """Local credit ledger with background remote reconciliation."""

    def __init__(
        self,
        state_path: str | Path | None = None,
        ledger: Optional[UsageLedgerClient] = None,
        user_id: Optional[str] = None,
        default_total_credits: float = 100.0,
        guest_allowance: float = 10.0,
        history_limit: int = 100,
    ) -> None:
        """Initialize the gate.

        Args:
            state_path: Local JSON file for the authenticated pool (None keeps it in memory)
            ledger: Remote ledger client (None disables reconciliation)
            user_id: Authenticated user; None starts in guest mode
            default_total_credits: Allowance of a user with no recorded usage
            guest_allowance: Credits available to a guest for this process
            history_limit: Usage records kept, newest first
        """
        self.state_path = expand_path(state_path) if state_path else None
        self.ledger = ledger
        self.default_total_credits = default_total_credits
        self.guest_allowance = guest_allowance
        self.history_limit = history_limit

        self._user_id = user_id
        self._usage = self._load_state()
        if user_id is not None:
            if self._usage.user_id not in (None, user_id):
                # cached file belongs to someone else
                self._usage = self._fresh_usage(user_id)
            self._usage.user_id = user_id
        self._guest_used = 0.0
        self._guest_history: list[UsageRecord] = []
        self._pending: set[asyncio.Task] = set()
        self._reservations: dict[str, float] = {}

    @classmethod
    def from_settings(
        cls, settings: Settings, ledger: Optional[UsageLedgerClient] = None
    ) -> "CreditGate":
        if ledger is None and settings.usage_api_url:
            ledger = UsageLedgerClient(settings.usage_api_url, token=settings.usage_api_token)
        return cls(
            state_path=settings.usage_state_path,
            ledger=ledger,
            user_id=settings.user_id,
            default_total_credits=settings.default_total_credits,
            guest_allowance=settings.guest_session_allowance,
            history_limit=settings.usage_history_limit,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def is_guest(self) -> bool:
        return self._user_id is None

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def usage(self) -> UserUsage:
        """Copy of the authenticated pool's state."""
        return self._usage.model_copy(deep=True)

    @property
    def history(self) -> list[UsageRecord]:
        """Usage records of the active pool, newest first."""
        if self.is_guest:
            return list(self._guest_history)
        return list(self._usage.history)

    @property
    def credits_remaining(self) -> float:
        if self.is_guest:
            return max(0.0, self.guest_allowance - self._guest_used)
        return self._usage.credits_remaining

    @property
    def credits_reserved(self) -> float:
        """Credits held by open reservations."""
        return sum(self._reservations.values())

    @property
    def credits_available(self) -> float:
        """Remaining credits not held by a reservation."""
        return max(0.0, self.credits_remaining - self.credits_reserved)

    def can_perform(self, cost: float) -> bool:
        """Whether `cost` credits are available. Local check, no I/O.

        Credits held by other reservations count as spent.
        """
        if self.is_guest:
            used, total = self._guest_used, self.guest_allowance
        else:
            used, total = self._usage.used_credits, self._usage.total_credits
        return used + self.credits_reserved + cost <= total

    def snapshot(self) -> UsageSnapshot:
        if self.is_guest:
            return UsageSnapshot.compute(self.guest_allowance, self._guest_used, is_guest=True)
        return UsageSnapshot.compute(
            self._usage.total_credits, self._usage.used_credits, is_guest=False
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def reserve(self, cost: float, holder: str) -> bool:
        """Hold `cost` credits for `holder` if they are available.

        Returns False, holding nothing, when the pool cannot cover it.

        Raises:
            ValueError: `holder` already has a reservation
        """
        if holder in self._reservations:
            raise ValueError(f"holder '{holder}' already has a reservation")
        if not self.can_perform(cost):
            return False
        self._reservations[holder] = cost
        logger.debug("credits_reserved", holder=holder, cost=cost)
        return True

    def release(self, holder: str) -> float:
        """Drop `holder`'s reservation and return the unspent amount."""
        unspent = self._reservations.pop(holder, 0.0)
        if unspent:
            logger.debug("reservation_released", holder=holder, unspent=unspent)
        return unspent

    def debit(
        self,
        cost: float,
        action: str,
        paper_id: Optional[str] = None,
        success: bool = True,
        error: Optional[str] = None,
        reservation: Optional[str] = None,
    ) -> UsageRecord:
        """Charge `cost` credits to the active pool.

        The local decrement is immediate and final. For authenticated users
        the record is then pushed to the remote ledger in the background.
        When `reservation` names an open reservation the debit is drawn from
        it.
        """
        if cost < 0:
            raise ValueError(f"cost must be non-negative, got {cost}")
        if reservation is not None and reservation in self._reservations:
            self._reservations[reservation] = max(0.0, self._reservations[reservation] - cost)

        record = UsageRecord(
            id=f"usage-{uuid4().hex[:12]}",
            action=action,
            cost=cost,
            success=success,
            timestamp=utc_now(),
            paper_id=paper_id,
            error=error,
        )

        if self.is_guest:
            self._guest_used += cost
            self._guest_history.insert(0, record)
            del self._guest_history[self.history_limit :]
            logger.info(
                "credits_debited",
                pool="guest",
                action=action,
                cost=cost,
                remaining=self.credits_remaining,
            )
            return record

        self._usage.used_credits += cost
        self._usage.last_updated = record.timestamp
        self._usage.history.insert(0, record)
        del self._usage.history[self.history_limit :]
        self._save_state()

        logger.info(
            "credits_debited",
            pool="user",
            user_id=self._user_id,
            action=action,
            cost=cost,
            remaining=self.credits_remaining,
        )

        self._schedule_reconcile(record)
        return record

    async def identify(self, user_id: Optional[str]) -> None:
        """Switch the active pool.

        `None` returns to guest mode. For a user id the remote snapshot,
        when the ledger has one, replaces the local cache.
        """
        self._user_id = user_id
        if user_id is None:
            logger.info("credit_pool_switched", pool="guest")
            return

        if self._usage.user_id not in (None, user_id):
            self._usage = self._fresh_usage(user_id)
        self._usage.user_id = user_id

        if self.ledger is not None:
            try:
                remote = await self.ledger.fetch_current(user_id=user_id)
            except UsageSyncError as e:
                logger.warning("usage_fetch_failed", user_id=user_id, error=str(e))
                remote = None
            if remote is not None:
                remote.user_id = user_id
                if not remote.history:
                    remote.history = self._usage.history
                remote.history = remote.history[: self.history_limit]
                self._usage = remote
                logger.info(
                    "usage_adopted_from_ledger",
                    user_id=user_id,
                    total=remote.total_credits,
                    used=remote.used_credits,
                )

        self._save_state()
        logger.info("credit_pool_switched", pool="user", user_id=user_id)

    async def drain(self) -> None:
        """Wait for outstanding ledger pushes."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    async def close(self) -> None:
        await self.drain()
        if self.ledger is not None:
            await self.ledger.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fresh_usage(self, user_id: Optional[str]) -> UserUsage:
        return UserUsage(user_id=user_id, total_credits=self.default_total_credits)

    def _schedule_reconcile(self, record: UsageRecord) -> None:
        if self.ledger is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("usage_reconcile_skipped", record_id=record.id, reason="no event loop")
            return
        task = loop.create_task(self._reconcile(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _reconcile(self, record: UsageRecord) -> None:
        try:
            await self.ledger.track(record)
        except UsageSyncError as e:
            logger.warning("usage_reconcile_failed", record_id=record.id, error=str(e))
        else:
            logger.debug("usage_reconciled", record_id=record.id)

    def _load_state(self) -> UserUsage:
        if self.state_path is None or not self.state_path.exists():
            return self._fresh_usage(self._user_id)
        try:
            data = json.loads(self.state_path.read_text(encoding="utf-8"))
            return UserUsage.model_validate(data)
        except (OSError, ValueError, ValidationError) as e:
            logger.warning("usage_state_unreadable", path=str(self.state_path), error=str(e))
            return self._fresh_usage(self._user_id)

    def _save_state(self) -> None:
        if self.state_path is None:
            return
        atomic_write_text(self.state_path, self._usage.model_dump_json(indent=2))

"""Extraction session manager - at most one active session per paper.

Sessions for different papers run concurrently as independent asyncio
tasks; there is no global lock. A second request for a paper whose session
is still active is rejected, so the caller has to cancel first.
"""

import asyncio
from typing import Callable, Optional

from ideagraph_common import SessionActiveError, Settings, StageCosts, get_logger
from ideagraph_contracts import (
    ExtractionProgress,
    ExtractionResult,
    ExtractionState,
    PaperMetadata,
    ThesisContext,
)
from ideagraph_pdf import SourceTextProvider
from ideagraph_storage import FindingsGraphStore
from ideagraph_usage import CreditGate

from ideagraph_extraction.base_client import LLMClient
from ideagraph_extraction.session import ExtractionSession, ProgressCallback

logger = get_logger(__name__)

CompletionCallback = Callable[[ExtractionResult], None]


class ExtractionSessionManager:
    """Starts, tracks and cancels extraction sessions.

    Example:
        >>> manager = ExtractionSessionManager(llm, gate, store, text_provider=provider)
        >>> task = manager.start(paper, on_progress=print)
        >>> manager.cancel(paper.id)
        True
        >>> (await task).state
        <ExtractionState.CANCELLED: 'cancelled'>
    """

    def __init__(
        self,
        llm: LLMClient,
        gate: CreditGate,
        store: FindingsGraphStore,
        text_provider: Optional[SourceTextProvider] = None,
        stage_costs: Optional[StageCosts] = None,
        stage_timeout_seconds: float = 120.0,
    ):
        self.llm = llm
        self.gate = gate
        self.store = store
        self.text_provider = text_provider
        self.stage_costs = stage_costs or StageCosts()
        self.stage_timeout_seconds = stage_timeout_seconds

        self._sessions: dict[str, ExtractionSession] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._last_results: dict[str, ExtractionResult] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        llm: LLMClient,
        gate: CreditGate,
        store: FindingsGraphStore,
        text_provider: Optional[SourceTextProvider] = None,
    ) -> "ExtractionSessionManager":
        return cls(
            llm=llm,
            gate=gate,
            store=store,
            text_provider=text_provider,
            stage_costs=settings.stage_costs,
            stage_timeout_seconds=settings.stage_timeout_seconds,
        )

    def start(
        self,
        paper: PaperMetadata,
        text: Optional[str] = None,
        thesis: Optional[ThesisContext] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_complete: Optional[CompletionCallback] = None,
    ) -> "asyncio.Task[ExtractionResult]":
        """Register a session for `paper` and schedule it.

        Registration happens before this returns, so a second `start` for
        the same paper fails immediately. Must be called from a running
        event loop.

        Raises:
            SessionActiveError: A session for this paper is still active
        """
        if paper.id in self._sessions:
            logger.info("extraction_rejected", paper_id=paper.id, reason="session_active")
            raise SessionActiveError(paper.id)

        session = ExtractionSession(
            paper,
            self.llm,
            self.gate,
            self.store,
            text=text,
            thesis=thesis,
            text_provider=self.text_provider,
            stage_costs=self.stage_costs,
            stage_timeout_seconds=self.stage_timeout_seconds,
            on_progress=on_progress,
        )
        self._sessions[paper.id] = session
        task = asyncio.create_task(
            self._drive(session, on_complete), name=f"extraction:{paper.id}"
        )
        self._tasks[paper.id] = task
        return task

    async def extract(
        self,
        paper: PaperMetadata,
        text: Optional[str] = None,
        thesis: Optional[ThesisContext] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_complete: Optional[CompletionCallback] = None,
    ) -> ExtractionResult:
        """Start a session and wait for its terminal result."""
        return await self.start(paper, text, thesis, on_progress, on_complete)

    def cancel(self, paper_id: str) -> bool:
        """Request cancellation of the paper's active session.

        Returns False (a no-op) when no cancellable session is active.
        """
        session = self._sessions.get(paper_id)
        if session is None:
            return False
        return session.cancel()

    def is_active(self, paper_id: str) -> bool:
        return paper_id in self._sessions

    def active_paper_ids(self) -> list[str]:
        return sorted(self._sessions)

    def get_progress(self, paper_id: str) -> Optional[ExtractionProgress]:
        """Latest progress of the active session, None when idle."""
        session = self._sessions.get(paper_id)
        return session.progress if session is not None else None

    def get_state(self, paper_id: str) -> Optional[ExtractionState]:
        """State of the active session, else of the last finished one."""
        session = self._sessions.get(paper_id)
        if session is not None:
            return session.state
        result = self._last_results.get(paper_id)
        return result.state if result is not None else None

    def last_result(self, paper_id: str) -> Optional[ExtractionResult]:
        return self._last_results.get(paper_id)

    async def shutdown(self) -> None:
        """Cancel every active session and wait for them to finish."""
        tasks = list(self._tasks.values())
        for paper_id in list(self._sessions):
            self.cancel(paper_id)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("extraction_manager_shutdown", sessions=len(tasks))

    async def _drive(
        self,
        session: ExtractionSession,
        on_complete: Optional[CompletionCallback],
    ) -> ExtractionResult:
        try:
            result = await session.run()
        finally:
            self._release(session)

        if on_complete is not None:
            try:
                on_complete(result)
            except Exception as e:
                logger.error(
                    "completion_callback_failed", paper_id=session.paper_id, error=str(e)
                )
        return result

    def _release(self, session: ExtractionSession) -> None:
        paper_id = session.paper_id
        if self._sessions.get(paper_id) is session:
            del self._sessions[paper_id]
            self._tasks.pop(paper_id, None)
        if session.result is not None:
            self._last_results[paper_id] = session.result

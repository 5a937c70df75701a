"""Extraction session - one pipeline run for one paper.

State machine:

    idle -> checking-quota -> loading-text -> stage-1-classify
         -> stage-2-extract -> stage-3-integrate -> committing
         -> {done | cancelled | failed}

Preconditions (credits, source text) are checked before any LLM call or
debit. The full run cost is reserved on the Credit Gate while checking
quota and the unspent part is released when the session ends. Each
LLM-calling stage runs under a timeout and is debited once it completes;
debits are never refunded. Intermediate stage outputs stay on the
session and only a complete graph is committed, in one store call.

Cancellation sets a flag and cancels the in-flight step (text load or LLM
call). The flag is re-checked after every awaited step.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional, TypeVar
from uuid import uuid4

from pydantic import ValidationError

from ideagraph_common import (
    ExtractionCancelledError,
    InvalidTransitionError,
    LLMError,
    NoSourceTextError,
    QuotaExhaustedError,
    StageCosts,
    StaleGuard,
    StageFailedError,
    StorageError,
    TextExtractionError,
    get_logger,
    get_tracer,
)
from ideagraph_contracts import (
    ExtractedFinding,
    ExtractionErrorKind,
    ExtractionProgress,
    ExtractionResult,
    ExtractionState,
    PaperKnowledgeGraph,
    PaperMetadata,
    StageTokens,
    ThesisContext,
    TokenUsage,
    utc_now,
)
from ideagraph_pdf import SourceTextProvider
from ideagraph_storage import FindingsGraphStore
from ideagraph_usage import CreditGate

from ideagraph_extraction.base_client import LLMClient, LLMResponse
from ideagraph_extraction.parsing import (
    ClassificationOutput,
    IntegrationOutput,
    parse_classification_response,
    parse_extraction_response,
    parse_integration_response,
)
from ideagraph_extraction.prompts import (
    CLASSIFICATION_SYSTEM_PROMPT,
    INTEGRATION_SYSTEM_PROMPT,
    format_classification_prompt,
    format_extraction_prompt,
    format_integration_prompt,
    get_extraction_system_prompt,
)

logger = get_logger(__name__)
tracer = get_tracer(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[ExtractionProgress], None]

_S = ExtractionState

_TRANSITIONS: dict[ExtractionState, frozenset[ExtractionState]] = {
    _S.IDLE: frozenset({_S.CHECKING_QUOTA, _S.CANCELLED}),
    _S.CHECKING_QUOTA: frozenset({_S.LOADING_TEXT, _S.FAILED, _S.CANCELLED}),
    _S.LOADING_TEXT: frozenset({_S.STAGE_1_CLASSIFY, _S.FAILED, _S.CANCELLED}),
    _S.STAGE_1_CLASSIFY: frozenset({_S.STAGE_2_EXTRACT, _S.FAILED, _S.CANCELLED}),
    _S.STAGE_2_EXTRACT: frozenset({_S.STAGE_3_INTEGRATE, _S.FAILED, _S.CANCELLED}),
    _S.STAGE_3_INTEGRATE: frozenset({_S.COMMITTING, _S.FAILED, _S.CANCELLED}),
    _S.COMMITTING: frozenset({_S.DONE, _S.FAILED}),
    _S.DONE: frozenset(),
    _S.CANCELLED: frozenset(),
    _S.FAILED: frozenset(),
}

_STAGE_STATES = {
    1: _S.STAGE_1_CLASSIFY,
    2: _S.STAGE_2_EXTRACT,
    3: _S.STAGE_3_INTEGRATE,
}

_STATE_STAGES = {state: stage for stage, state in _STAGE_STATES.items()}

_STAGE_DESCRIPTIONS = {
    1: "Classifying paper type...",
    2: "Extracting findings...",
    3: "Connecting findings...",
}

_STAGE_ACTIONS = {
    1: "extraction-stage-1-classify",
    2: "extraction-stage-2-extract",
    3: "extraction-stage-3-integrate",
}

# (start, end) of overall_progress for each stage
_PROGRESS_BANDS = {1: (1, 33), 2: (34, 66), 3: (67, 95)}


def transition_allowed(source: ExtractionState, target: ExtractionState) -> bool:
    """Whether the state machine permits `source -> target`."""
    return target in _TRANSITIONS[source]


class ExtractionSession:
    """One extraction run for one paper.

    A session runs once. Use `ExtractionSessionManager` to enforce one
    active session per paper.

    Example:
        >>> session = ExtractionSession(paper, llm, gate, store, text=text)
        >>> result = await session.run()
        >>> result.state
        <ExtractionState.DONE: 'done'>
    """

    def __init__(
        self,
        paper: PaperMetadata,
        llm: LLMClient,
        gate: CreditGate,
        store: FindingsGraphStore,
        *,
        text: Optional[str] = None,
        thesis: Optional[ThesisContext] = None,
        text_provider: Optional[SourceTextProvider] = None,
        stage_costs: Optional[StageCosts] = None,
        stage_timeout_seconds: float = 120.0,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.paper = paper
        self.llm = llm
        self.gate = gate
        self.store = store
        self.thesis = thesis
        self.text_provider = text_provider
        self.stage_costs = stage_costs or StageCosts()
        self.stage_timeout_seconds = stage_timeout_seconds
        self._text = text
        self._on_progress = on_progress

        self._state = ExtractionState.IDLE
        self._progress: Optional[ExtractionProgress] = None
        self._result: Optional[ExtractionResult] = None
        self._cancel_requested = False
        self._inflight: Optional[asyncio.Future] = None
        self._guard = StaleGuard()
        self._credits_debited = 0.0
        self._reservation = f"session-{self.paper.id}-{uuid4().hex[:8]}"
        self._tokens = TokenUsage()

    @property
    def paper_id(self) -> str:
        return self.paper.id

    @property
    def state(self) -> ExtractionState:
        return self._state

    @property
    def progress(self) -> Optional[ExtractionProgress]:
        """Latest progress update, None before the first stage starts."""
        return self._progress

    @property
    def result(self) -> Optional[ExtractionResult]:
        """Terminal result, None while running."""
        return self._result

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    @property
    def credits_debited(self) -> float:
        return self._credits_debited

    def cancel(self) -> bool:
        """Request cancellation.

        Returns False when the session is terminal or already committing,
        True otherwise. Repeated calls are harmless.
        """
        if self._state.is_terminal or self._state == ExtractionState.COMMITTING:
            return False
        if self._cancel_requested:
            return True

        self._cancel_requested = True
        self._guard.clear()
        logger.info("cancel_requested", paper_id=self.paper_id, state=self._state.value)

        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        return True

    async def run(self) -> ExtractionResult:
        """Drive the state machine to a terminal state.

        Precondition and stage errors are returned as a failed or cancelled
        `ExtractionResult`, never raised. An unexpected error also ends the
        session failed (stage-failed) so it never stops half-run.

        Raises:
            InvalidTransitionError: The session already ran
        """
        if self._state != ExtractionState.IDLE:
            raise InvalidTransitionError(
                f"Session for paper '{self.paper_id}' already ran (state {self._state.value})"
            )

        logger.info(
            "extraction_started",
            paper_id=self.paper_id,
            has_thesis=self.thesis is not None,
            method=self.llm.extraction_method,
        )
        started = time.monotonic()

        try:
            with tracer.start_as_current_span("extraction_session") as span:
                span.set_attribute("paper_id", self.paper_id)
                graph = await self._run_pipeline()
            result = self._finish(ExtractionState.DONE, graph=graph)
        except QuotaExhaustedError as e:
            result = self._fail(ExtractionErrorKind.QUOTA_EXHAUSTED, e)
        except NoSourceTextError as e:
            result = self._fail(ExtractionErrorKind.NO_SOURCE_TEXT, e)
        except StageFailedError as e:
            result = self._fail(ExtractionErrorKind.STAGE_FAILED, e, stage=e.stage)
        except StorageError as e:
            logger.error("commit_failed", paper_id=self.paper_id, error=str(e))
            result = self._fail(ExtractionErrorKind.STAGE_FAILED, e)
        except ExtractionCancelledError:
            result = self._finish(
                ExtractionState.CANCELLED,
                error_kind=ExtractionErrorKind.CANCELLED,
                message="Extraction cancelled",
            )
        except asyncio.CancelledError:
            # The task running the session was cancelled from outside
            self._cancel_requested = True
            if not self._state.is_terminal and self._state != ExtractionState.COMMITTING:
                self._finish(
                    ExtractionState.CANCELLED,
                    error_kind=ExtractionErrorKind.CANCELLED,
                    message="Extraction task cancelled",
                )
            raise
        except Exception as e:
            if not transition_allowed(self._state, ExtractionState.FAILED):
                raise
            logger.error(
                "extraction_crashed",
                paper_id=self.paper_id,
                state=self._state.value,
                error=f"{type(e).__name__}: {e}",
                exc_info=True,
            )
            result = self._fail(
                ExtractionErrorKind.STAGE_FAILED, e, stage=_STATE_STAGES.get(self._state)
            )
        finally:
            self.gate.release(self._reservation)

        logger.info(
            "extraction_finished",
            paper_id=self.paper_id,
            state=result.state.value,
            error_kind=result.error_kind.value if result.error_kind else None,
            credits_debited=result.credits_debited,
            duration_seconds=round(time.monotonic() - started, 3),
        )
        return result

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _run_pipeline(self) -> PaperKnowledgeGraph:
        self._check_cancelled()
        self._transition(ExtractionState.CHECKING_QUOTA)
        required = self.stage_costs.total
        if not self.gate.reserve(required, holder=self._reservation):
            raise QuotaExhaustedError(required, self.gate.credits_available)

        self._check_cancelled()
        self._transition(ExtractionState.LOADING_TEXT)
        text = await self._load_text()

        stage1: ClassificationOutput = await self._run_stage(
            1,
            lambda: self.llm.complete_json(
                format_classification_prompt(self.paper, text),
                system=CLASSIFICATION_SYSTEM_PROMPT,
                max_tokens=1024,
                temperature=0.2,
            ),
            parse_classification_response,
        )

        classification = stage1.classification
        findings: list[ExtractedFinding] = await self._run_stage(
            2,
            lambda: self.llm.complete_json(
                format_extraction_prompt(self.paper, text, classification, self.thesis),
                system=get_extraction_system_prompt(classification.paper_type),
                max_tokens=8192,
                temperature=0.3,
            ),
            lambda data: parse_extraction_response(
                data, include_relevance=self.thesis is not None
            ),
        )

        stage3: IntegrationOutput = await self._run_stage(
            3,
            lambda: self.llm.complete_json(
                format_integration_prompt(self.paper, findings, self.thesis),
                system=INTEGRATION_SYSTEM_PROMPT,
                max_tokens=2048,
                temperature=0.3,
            ),
            lambda data: parse_integration_response(
                data, findings, include_thesis=self.thesis is not None
            ),
        )

        now = utc_now()
        graph = PaperKnowledgeGraph(
            paper_id=self.paper_id,
            created_at=now,
            updated_at=now,
            classification=classification,
            experimental_system=stage1.experimental_system,
            key_contributions=stage1.key_contributions,
            thesis_relevance=stage3.thesis_relevance,
            findings=findings,
            intra_paper_connections=stage3.connections,
            extraction_method=self.llm.extraction_method,
            tokens_used=self._tokens,
        )

        self._transition(ExtractionState.COMMITTING)
        self._emit(3, "Saving findings graph...", 96, can_cancel=False)
        with tracer.start_as_current_span("extraction_commit") as span:
            span.set_attribute("paper_id", self.paper_id)
            span.set_attribute("finding_count", len(graph.findings))
            await self.store.commit(self.paper_id, graph)
        return graph

    async def _load_text(self) -> str:
        if self._text is not None:
            text = self._text
        elif self.text_provider is None:
            raise NoSourceTextError(self.paper_id, "no text supplied and no text provider")
        else:
            token = self._guard.issue(self.paper_id)
            try:
                text = await self._await_step(self.text_provider.get_text(self.paper_id))
            except TextExtractionError as e:
                raise NoSourceTextError(self.paper_id, str(e)) from e
            if not self._guard.is_current(token):
                logger.info("stale_text_discarded", paper_id=self.paper_id)
                raise ExtractionCancelledError(f"Extraction of '{self.paper_id}' cancelled")

        if not text or not text.strip():
            raise NoSourceTextError(self.paper_id, "source text is empty")

        logger.debug("source_text_loaded", paper_id=self.paper_id, chars=len(text))
        return text

    async def _run_stage(
        self,
        stage: int,
        call: Callable[[], Awaitable[LLMResponse]],
        parse: Callable[[dict], T],
    ) -> T:
        """Run one LLM-calling stage, then record tokens, debit and report."""
        self._transition(_STAGE_STATES[stage])
        start, end = _PROGRESS_BANDS[stage]
        self._emit(stage, _STAGE_DESCRIPTIONS[stage], start)
        began = time.monotonic()

        with tracer.start_as_current_span(f"extraction_stage_{stage}") as span:
            span.set_attribute("paper_id", self.paper_id)
            try:
                response = await self._await_step(call(), timeout=self.stage_timeout_seconds)
            except asyncio.TimeoutError as e:
                logger.warning(
                    "stage_timed_out",
                    paper_id=self.paper_id,
                    stage=stage,
                    timeout_seconds=self.stage_timeout_seconds,
                )
                raise StageFailedError(
                    stage, f"timed out after {self.stage_timeout_seconds}s"
                ) from e
            except (LLMError, ValidationError) as e:
                logger.warning("stage_failed", paper_id=self.paper_id, stage=stage, error=str(e))
                raise StageFailedError(stage, e) from e

            # Any error while normalising the reply fails the stage
            try:
                output = parse(response.data)
            except Exception as e:
                logger.warning(
                    "stage_response_rejected",
                    paper_id=self.paper_id,
                    stage=stage,
                    error=f"{type(e).__name__}: {e}",
                )
                raise StageFailedError(stage, e) from e

            span.set_attribute("tokens_input", response.tokens_input)
            span.set_attribute("tokens_output", response.tokens_output)

        setattr(
            self._tokens,
            f"stage{stage}",
            StageTokens(input=response.tokens_input, output=response.tokens_output),
        )
        self._debit_stage(stage)
        logger.info(
            "stage_completed",
            paper_id=self.paper_id,
            stage=stage,
            tokens_input=response.tokens_input,
            tokens_output=response.tokens_output,
            duration_seconds=round(time.monotonic() - began, 3),
        )
        self._emit(stage, _STAGE_DESCRIPTIONS[stage], end)
        self._check_cancelled()
        return output

    async def _await_step(self, awaitable: Awaitable[T], timeout: Optional[float] = None) -> T:
        """Await one suspension point so that `cancel()` can abort it."""
        step = asyncio.ensure_future(awaitable)
        self._inflight = step
        try:
            if timeout is None:
                return await step
            return await asyncio.wait_for(step, timeout)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if self._cancel_requested and not (current and current.cancelling()):
                raise ExtractionCancelledError(
                    f"Extraction of '{self.paper_id}' cancelled"
                ) from None
            raise
        finally:
            self._inflight = None

    def _debit_stage(self, stage: int) -> None:
        cost = self.stage_costs.for_stage(stage)
        self.gate.debit(
            cost,
            action=_STAGE_ACTIONS[stage],
            paper_id=self.paper_id,
            reservation=self._reservation,
        )
        self._credits_debited += cost

    # ------------------------------------------------------------------
    # State and notifications
    # ------------------------------------------------------------------

    def _check_cancelled(self) -> None:
        if self._cancel_requested:
            raise ExtractionCancelledError(f"Extraction of '{self.paper_id}' cancelled")

    def _transition(self, target: ExtractionState) -> None:
        if not transition_allowed(self._state, target):
            raise InvalidTransitionError(
                f"Illegal transition {self._state.value} -> {target.value}"
            )
        logger.debug(
            "session_state_changed",
            paper_id=self.paper_id,
            from_state=self._state.value,
            to_state=target.value,
        )
        self._state = target

    def _emit(self, stage: int, description: str, percent: int, can_cancel: bool = True) -> None:
        if self._progress is not None:
            percent = max(percent, self._progress.overall_progress)
        self._progress = ExtractionProgress(
            paper_id=self.paper_id,
            current_stage=stage,
            stage_description=description,
            overall_progress=min(percent, 100),
            can_cancel=can_cancel,
        )
        if self._on_progress is None:
            return
        try:
            self._on_progress(self._progress)
        except Exception as e:
            logger.error("progress_callback_failed", paper_id=self.paper_id, error=str(e))

    def _finish(
        self,
        state: ExtractionState,
        graph: Optional[PaperKnowledgeGraph] = None,
        error_kind: Optional[ExtractionErrorKind] = None,
        failed_stage: Optional[int] = None,
        message: Optional[str] = None,
    ) -> ExtractionResult:
        self._transition(state)
        if state == ExtractionState.DONE:
            self._emit(3, "Extraction complete", 100, can_cancel=False)
        self._result = ExtractionResult(
            paper_id=self.paper_id,
            state=state,
            graph=graph,
            error_kind=error_kind,
            failed_stage=failed_stage,
            message=message,
            credits_debited=self._credits_debited,
        )
        return self._result

    def _fail(
        self,
        kind: ExtractionErrorKind,
        error: Exception,
        stage: Optional[int] = None,
    ) -> ExtractionResult:
        logger.warning(
            "extraction_failed",
            paper_id=self.paper_id,
            error_kind=kind.value,
            stage=stage,
            error=str(error),
        )
        return self._finish(
            ExtractionState.FAILED,
            error_kind=kind,
            failed_stage=stage,
            message=str(error),
        )

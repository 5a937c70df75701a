"""Tests for the extraction session state machine."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from ideagraph_common import (
    InvalidTransitionError,
    NoSourceTextError,
    StageCosts,
    TextExtractionError,
)
from ideagraph_contracts import (
    ExtractionErrorKind,
    ExtractionState,
    FindingType,
    ReviewStatus,
)
from ideagraph_extraction import (
    ExtractionSession,
    MockLLMClient,
    transition_allowed,
)
from ideagraph_pdf import SourceTextProvider
from ideagraph_usage import CreditGate


async def wait_for_state(session, state, timeout=2.0):
    async def _poll():
        while session.state != state:
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


class TestHappyPath:
    """Complete runs commit one graph and debit every stage."""

    @pytest.mark.asyncio
    async def test_done_commits_unreviewed_graph(self, paper, paper_text, llm, gate, store):
        session = ExtractionSession(paper, llm, gate, store, text=paper_text)

        result = await session.run()

        assert result.state == ExtractionState.DONE
        assert result.succeeded
        assert result.error_kind is None
        assert llm.calls == [1, 2, 3]

        stored = await store.get("paper-1")
        assert stored is not None
        assert [f.id for f in stored.findings] == [f.id for f in result.graph.findings]
        assert len(stored.findings) == 3
        assert len(stored.intra_paper_connections) == 2
        assert stored.review_status == ReviewStatus.UNREVIEWED
        assert all(not f.user_verified for f in stored.findings)
        assert stored.extraction_method == "mock:default"
        assert stored.classification.paper_type.value == "research-article"
        assert stored.key_contributions == [
            "Reports the central result",
            "Validates it with a secondary analysis",
        ]
        assert stored.created_at == stored.updated_at

    @pytest.mark.asyncio
    async def test_each_stage_debited(self, paper, paper_text, llm, gate, store):
        result = await ExtractionSession(paper, llm, gate, store, text=paper_text).run()

        assert result.credits_debited == 5
        assert gate.credits_remaining == 5
        assert [r.action for r in gate.history] == [
            "extraction-stage-3-integrate",
            "extraction-stage-2-extract",
            "extraction-stage-1-classify",
        ]
        assert all(r.paper_id == "paper-1" for r in gate.history)

    @pytest.mark.asyncio
    async def test_custom_stage_costs(self, paper, paper_text, llm, store):
        gate = CreditGate(guest_allowance=3)
        costs = StageCosts(classify=0.5, extract=1.0, integrate=1.5)

        result = await ExtractionSession(
            paper, llm, gate, store, text=paper_text, stage_costs=costs
        ).run()

        assert result.state == ExtractionState.DONE
        assert gate.credits_remaining == 0

    @pytest.mark.asyncio
    async def test_token_usage_recorded(self, paper, paper_text, gate, store):
        llm = MockLLMClient(tokens=(100, 20))

        result = await ExtractionSession(paper, llm, gate, store, text=paper_text).run()

        tokens = result.graph.tokens_used
        assert tokens.stage1.input == 100
        assert tokens.stage3.output == 20
        assert tokens.total == 360

    @pytest.mark.asyncio
    async def test_progress_monotonic_and_ends_at_100(self, paper, paper_text, llm, gate, store):
        seen = []
        session = ExtractionSession(
            paper, llm, gate, store, text=paper_text, on_progress=seen.append
        )

        await session.run()

        values = [p.overall_progress for p in seen]
        assert values == sorted(values)
        assert values[-1] == 100
        assert [p.current_stage for p in seen] == sorted(p.current_stage for p in seen)
        assert {p.current_stage for p in seen} == {1, 2, 3}
        assert seen[-1].can_cancel is False
        assert session.progress.overall_progress == 100

    @pytest.mark.asyncio
    async def test_stage_bands(self, paper, paper_text, llm, gate, store):
        seen = []
        await ExtractionSession(
            paper, llm, gate, store, text=paper_text, on_progress=seen.append
        ).run()

        for progress in seen[:-1]:
            low, high = {1: (0, 33), 2: (33, 66), 3: (66, 100)}[progress.current_stage]
            assert low <= progress.overall_progress <= high

    @pytest.mark.asyncio
    async def test_with_thesis(self, paper, paper_text, thesis, llm, gate, store):
        result = await ExtractionSession(
            paper, llm, gate, store, text=paper_text, thesis=thesis
        ).run()

        graph = result.graph
        assert graph.thesis_relevance.overall_score == 4
        assert graph.thesis_relevance.suggested_role.value == "supports"
        assert graph.findings[0].thesis_relevance.score == 5
        assert graph.findings[2].thesis_relevance is None
        assert "The effect generalises" in llm.prompts[1]
        assert "The effect generalises" in llm.prompts[2]

    @pytest.mark.asyncio
    async def test_without_thesis_drops_relevance(self, paper, paper_text, llm, gate, store):
        result = await ExtractionSession(paper, llm, gate, store, text=paper_text).run()

        assert result.graph.thesis_relevance is None
        assert all(f.thesis_relevance is None for f in result.graph.findings)

    @pytest.mark.asyncio
    async def test_text_from_provider(self, paper, paper_text, llm, gate, store):
        provider = AsyncMock(spec=SourceTextProvider)
        provider.get_text.return_value = paper_text

        result = await ExtractionSession(
            paper, llm, gate, store, text_provider=provider
        ).run()

        assert result.state == ExtractionState.DONE
        provider.get_text.assert_awaited_once_with("paper-1")
        assert "We observe a robust effect." in llm.prompts[0]


class TestModelOutputNormalisation:
    """Untrusted model output never produces an invalid graph."""

    @pytest.mark.asyncio
    async def test_confidence_clamped(self, paper, paper_text, gate, store):
        llm = MockLLMClient(
            responses={
                2: {
                    "findings": [
                        {"title": "Too sure", "finding_type": "central-finding", "confidence": 7},
                        {"title": "Negative", "confidence": -0.4},
                        {"title": "Words", "confidence": "very high"},
                    ]
                },
                3: {"connections": []},
            }
        )

        result = await ExtractionSession(paper, llm, gate, store, text=paper_text).run()

        confidences = [f.confidence for f in result.graph.findings]
        assert confidences == [1.0, 0.0, 0.5]
        assert all(0.0 <= c <= 1.0 for c in confidences)

    @pytest.mark.asyncio
    async def test_bad_connections_dropped(self, paper, paper_text, gate, store):
        llm = MockLLMClient(
            responses={
                3: {
                    "connections": [
                        {"from_finding_index": 1, "to_finding_index": 0},
                        {"from_finding_index": 0, "to_finding_index": 0},
                        {"from_finding_index": 9, "to_finding_index": 0},
                        {"from_finding_index": -1, "to_finding_index": 2},
                        {"from_finding_index": "1", "to_finding_index": 2},
                    ]
                }
            }
        )

        result = await ExtractionSession(paper, llm, gate, store, text=paper_text).run()

        graph = await store.get("paper-1")
        ids = {f.id for f in graph.findings}
        assert len(graph.intra_paper_connections) == 1
        for connection in graph.intra_paper_connections:
            assert connection.from_finding_id in ids
            assert connection.to_finding_id in ids
            assert connection.from_finding_id != connection.to_finding_id
        assert result.state == ExtractionState.DONE

    @pytest.mark.asyncio
    async def test_unknown_types_fall_back(self, paper, paper_text, gate, store):
        llm = MockLLMClient(
            responses={
                1: {"paper_type": "editorial"},
                2: {"findings": [{"title": "A", "finding_type": "hunch"}, {"title": "B"}]},
                3: {
                    "connections": [
                        {"from_finding_index": 0, "to_finding_index": 1, "connection_type": "x"}
                    ]
                },
            }
        )

        result = await ExtractionSession(paper, llm, gate, store, text=paper_text).run()

        graph = result.graph
        assert graph.classification.paper_type.value == "research-article"
        assert graph.findings[0].finding_type == FindingType.SUPPORTING_FINDING
        assert graph.intra_paper_connections[0].connection_type.value == "supports"

    @pytest.mark.asyncio
    async def test_no_findings_commits_empty_graph(self, paper, paper_text, gate, store):
        llm = MockLLMClient(responses={2: {"findings": []}})

        result = await ExtractionSession(paper, llm, gate, store, text=paper_text).run()

        assert result.state == ExtractionState.DONE
        assert result.graph.findings == []
        assert result.graph.intra_paper_connections == []
        assert result.graph.review_status == ReviewStatus.UNREVIEWED


class TestPreconditions:
    """Quota and source text are checked before any LLM call or debit."""

    @pytest.mark.asyncio
    async def test_quota_exhausted(self, paper, paper_text, llm, store):
        gate = CreditGate(guest_allowance=4)

        result = await ExtractionSession(paper, llm, gate, store, text=paper_text).run()

        assert result.state == ExtractionState.FAILED
        assert result.error_kind == ExtractionErrorKind.QUOTA_EXHAUSTED
        assert result.credits_debited == 0
        assert llm.calls == []
        assert gate.credits_remaining == 4
        assert gate.history == []
        assert await store.get("paper-1") is None

    @pytest.mark.asyncio
    async def test_no_text_and_no_provider(self, paper, llm, gate, store):
        result = await ExtractionSession(paper, llm, gate, store).run()

        assert result.error_kind == ExtractionErrorKind.NO_SOURCE_TEXT
        assert llm.calls == []
        assert gate.credits_remaining == 10

    @pytest.mark.asyncio
    async def test_blank_text(self, paper, llm, gate, store):
        result = await ExtractionSession(paper, llm, gate, store, text="  \n ").run()

        assert result.error_kind == ExtractionErrorKind.NO_SOURCE_TEXT
        assert llm.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            NoSourceTextError("paper-1"),
            TextExtractionError("PDF is encrypted"),
        ],
    )
    async def test_provider_errors_map_to_no_source_text(self, paper, llm, gate, store, error):
        provider = AsyncMock(spec=SourceTextProvider)
        provider.get_text.side_effect = error

        result = await ExtractionSession(
            paper, llm, gate, store, text_provider=provider
        ).run()

        assert result.state == ExtractionState.FAILED
        assert result.error_kind == ExtractionErrorKind.NO_SOURCE_TEXT
        assert result.credits_debited == 0
        assert llm.calls == []


class TestStageFailure:
    """Stage errors end the session and leave the store untouched."""

    @pytest.mark.asyncio
    async def test_llm_error_in_stage_2(self, paper, paper_text, gate, store):
        llm = MockLLMClient(fail_stages={2})

        result = await ExtractionSession(paper, llm, gate, store, text=paper_text).run()

        assert result.state == ExtractionState.FAILED
        assert result.error_kind == ExtractionErrorKind.STAGE_FAILED
        assert result.failed_stage == 2
        assert "Stage 2 failed" in result.message
        assert result.credits_debited == 1
        assert gate.credits_remaining == 9
        assert await store.get("paper-1") is None

    @pytest.mark.asyncio
    async def test_stage_timeout(self, paper, paper_text, gate, store):
        llm = MockLLMClient(delays={3: 5.0})
        session = ExtractionSession(
            paper, llm, gate, store, text=paper_text, stage_timeout_seconds=0.05
        )

        result = await session.run()

        assert result.error_kind == ExtractionErrorKind.STAGE_FAILED
        assert result.failed_stage == 3
        assert "timed out" in result.message
        assert result.credits_debited == 3

    @pytest.mark.asyncio
    async def test_failure_keeps_prior_graph(self, paper, paper_text, llm, gate, store):
        first = await ExtractionSession(paper, llm, gate, store, text=paper_text).run()
        llm.fail_stages = {3}

        second = await ExtractionSession(paper, llm, gate, store, text=paper_text).run()

        assert second.state == ExtractionState.FAILED
        stored = await store.get("paper-1")
        assert [f.id for f in stored.findings] == [f.id for f in first.graph.findings]


class TestMalformedReplies:
    """Replies that decode but cannot be normalised fail their stage."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
    async def test_non_finite_numbers_are_normalised(self, paper, paper_text, gate, store, bad):
        llm = MockLLMClient(
            responses={
                1: {"paper_type": "review", "expected_finding_count": bad, "confidence": bad},
                2: {
                    "findings": [
                        {
                            "title": "A",
                            "confidence": bad,
                            "page_numbers": [bad, 2],
                            "direct_quotes": [{"text": "Quoted.", "page_number": bad}],
                        },
                        {"title": "B"},
                    ]
                },
                3: {
                    "connections": [
                        {"from_finding_index": bad, "to_finding_index": 0},
                        {"from_finding_index": 1, "to_finding_index": 0},
                    ],
                    "thesis_relevance": {"overall_score": bad},
                },
            }
        )

        result = await ExtractionSession(paper, llm, gate, store, text=paper_text).run()

        assert result.state == ExtractionState.DONE
        graph = result.graph
        assert graph.classification.expected_finding_count == 8
        assert graph.findings[0].confidence == 0.5
        assert graph.findings[0].page_numbers == [2]
        assert len(graph.intra_paper_connections) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stage", [1, 2, 3])
    async def test_parser_crash_fails_stage(
        self, paper, paper_text, llm, gate, store, monkeypatch, stage
    ):
        parser = {
            1: "parse_classification_response",
            2: "parse_extraction_response",
            3: "parse_integration_response",
        }[stage]

        def explode(*args, **kwargs):
            raise OverflowError("cannot convert float infinity to integer")

        monkeypatch.setattr(f"ideagraph_extraction.session.{parser}", explode)

        result = await ExtractionSession(paper, llm, gate, store, text=paper_text).run()

        assert result.state == ExtractionState.FAILED
        assert result.error_kind == ExtractionErrorKind.STAGE_FAILED
        assert result.failed_stage == stage
        assert "infinity" in result.message
        assert result.credits_debited == sum([1, 2, 2][: stage - 1])
        assert await store.get("paper-1") is None

    @pytest.mark.asyncio
    async def test_unexpected_commit_error_ends_failed(self, paper, paper_text, llm, gate, store):
        store.commit = AsyncMock(side_effect=RuntimeError("disk vanished"))

        session = ExtractionSession(paper, llm, gate, store, text=paper_text)
        result = await session.run()

        assert session.state == ExtractionState.FAILED
        assert session.result == result
        assert result.error_kind == ExtractionErrorKind.STAGE_FAILED
        assert result.failed_stage is None
        assert "disk vanished" in result.message


class TestCreditReservation:
    """Each run reserves its full cost, so concurrent runs cannot overspend."""

    @pytest.mark.asyncio
    async def test_concurrent_runs_share_one_allowance(self, paper, paper_text, store):
        gate = CreditGate(guest_allowance=5)
        llm = MockLLMClient(delays={1: 0.05})
        other = paper.model_copy(update={"id": "paper-2"})

        first, second = await asyncio.gather(
            ExtractionSession(paper, llm, gate, store, text=paper_text).run(),
            ExtractionSession(other, llm, gate, store, text=paper_text).run(),
        )

        assert first.state == ExtractionState.DONE
        assert second.error_kind == ExtractionErrorKind.QUOTA_EXHAUSTED
        assert gate.snapshot().used_credits == 5
        assert gate.credits_reserved == 0

    @pytest.mark.asyncio
    async def test_unspent_reservation_released_on_failure(self, paper, paper_text, gate, store):
        llm = MockLLMClient(fail_stages={2})

        result = await ExtractionSession(paper, llm, gate, store, text=paper_text).run()

        assert result.credits_debited == 1
        assert gate.credits_reserved == 0
        assert gate.credits_available == 9

    @pytest.mark.asyncio
    async def test_reservation_held_while_running(self, paper, paper_text, gate, store):
        llm = MockLLMClient(delays={2: 10.0})
        session = ExtractionSession(paper, llm, gate, store, text=paper_text)
        task = asyncio.ensure_future(session.run())
        await wait_for_state(session, ExtractionState.STAGE_2_EXTRACT)

        assert gate.credits_remaining == 9
        assert gate.credits_reserved == 4
        assert not gate.can_perform(6)

        session.cancel()
        await task
        assert gate.credits_reserved == 0


class TestCancellation:
    """Cancel aborts the in-flight step, commits nothing and keeps debits."""

    @pytest.mark.asyncio
    async def test_cancel_mid_stage_2(self, paper, paper_text, gate, store):
        llm = MockLLMClient(delays={2: 10.0})
        session = ExtractionSession(paper, llm, gate, store, text=paper_text)
        task = asyncio.create_task(session.run())

        await wait_for_state(session, ExtractionState.STAGE_2_EXTRACT)
        assert session.cancel() is True
        result = await asyncio.wait_for(task, 2.0)

        assert result.state == ExtractionState.CANCELLED
        assert result.error_kind == ExtractionErrorKind.CANCELLED
        assert result.credits_debited == 1
        assert [r.action for r in gate.history] == ["extraction-stage-1-classify"]
        assert llm.calls == [1, 2]
        assert await store.get("paper-1") is None

    @pytest.mark.asyncio
    async def test_cancel_keeps_prior_graph(self, paper, paper_text, gate, store):
        llm = MockLLMClient()
        first = await ExtractionSession(paper, llm, gate, store, text=paper_text).run()

        llm.delays = {2: 10.0}
        session = ExtractionSession(paper, llm, gate, store, text=paper_text)
        task = asyncio.create_task(session.run())
        await wait_for_state(session, ExtractionState.STAGE_2_EXTRACT)
        session.cancel()
        await task

        stored = await store.get("paper-1")
        assert [f.id for f in stored.findings] == [f.id for f in first.graph.findings]

    @pytest.mark.asyncio
    async def test_cancel_during_text_load(self, paper, llm, gate, store):
        loading = asyncio.Event()

        async def slow_text(paper_id):
            loading.set()
            await asyncio.sleep(10)
            return "late text"

        provider = AsyncMock(spec=SourceTextProvider)
        provider.get_text.side_effect = slow_text
        session = ExtractionSession(paper, llm, gate, store, text_provider=provider)
        task = asyncio.create_task(session.run())

        await asyncio.wait_for(loading.wait(), 2.0)
        session.cancel()
        result = await asyncio.wait_for(task, 2.0)

        assert result.state == ExtractionState.CANCELLED
        assert result.credits_debited == 0
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_cancel_before_run(self, paper, paper_text, llm, gate, store):
        session = ExtractionSession(paper, llm, gate, store, text=paper_text)

        assert session.cancel() is True
        result = await session.run()

        assert result.state == ExtractionState.CANCELLED
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self, paper, paper_text, gate, store):
        llm = MockLLMClient(delays={1: 10.0})
        session = ExtractionSession(paper, llm, gate, store, text=paper_text)
        task = asyncio.create_task(session.run())
        await wait_for_state(session, ExtractionState.STAGE_1_CLASSIFY)

        assert session.cancel() is True
        assert session.cancel() is True
        result = await task

        assert result.state == ExtractionState.CANCELLED
        assert result.credits_debited == 0
        assert session.cancel() is False

    @pytest.mark.asyncio
    async def test_cancel_after_done_is_noop(self, paper, paper_text, llm, gate, store):
        session = ExtractionSession(paper, llm, gate, store, text=paper_text)
        await session.run()

        assert session.cancel() is False
        assert session.state == ExtractionState.DONE

    @pytest.mark.asyncio
    async def test_external_task_cancel(self, paper, paper_text, gate, store):
        llm = MockLLMClient(delays={2: 10.0})
        session = ExtractionSession(paper, llm, gate, store, text=paper_text)
        task = asyncio.create_task(session.run())
        await wait_for_state(session, ExtractionState.STAGE_2_EXTRACT)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert session.state == ExtractionState.CANCELLED
        assert session.result.credits_debited == 1
        assert await store.get("paper-1") is None


class TestStateMachine:
    def test_forward_transitions(self):
        path = [
            ExtractionState.IDLE,
            ExtractionState.CHECKING_QUOTA,
            ExtractionState.LOADING_TEXT,
            ExtractionState.STAGE_1_CLASSIFY,
            ExtractionState.STAGE_2_EXTRACT,
            ExtractionState.STAGE_3_INTEGRATE,
            ExtractionState.COMMITTING,
            ExtractionState.DONE,
        ]
        for source, target in zip(path, path[1:]):
            assert transition_allowed(source, target)

    def test_rejected_transitions(self):
        assert not transition_allowed(ExtractionState.IDLE, ExtractionState.STAGE_1_CLASSIFY)
        assert not transition_allowed(
            ExtractionState.STAGE_1_CLASSIFY, ExtractionState.STAGE_3_INTEGRATE
        )
        assert not transition_allowed(ExtractionState.COMMITTING, ExtractionState.CANCELLED)
        assert not transition_allowed(ExtractionState.LOADING_TEXT, ExtractionState.DONE)

    def test_terminal_states_are_final(self):
        for terminal in (
            ExtractionState.DONE,
            ExtractionState.CANCELLED,
            ExtractionState.FAILED,
        ):
            assert terminal.is_terminal
            for target in ExtractionState:
                assert not transition_allowed(terminal, target)

    @pytest.mark.asyncio
    async def test_session_runs_once(self, paper, paper_text, llm, gate, store):
        session = ExtractionSession(paper, llm, gate, store, text=paper_text)
        await session.run()

        with pytest.raises(InvalidTransitionError):
            await session.run()

    @pytest.mark.asyncio
    async def test_progress_callback_errors_swallowed(self, paper, paper_text, llm, gate, store):
        def explode(progress):
            raise RuntimeError("ui went away")

        result = await ExtractionSession(
            paper, llm, gate, store, text=paper_text, on_progress=explode
        ).run()

        assert result.state == ExtractionState.DONE

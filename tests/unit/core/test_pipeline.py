"""Unit tests for the dataset generation pipeline."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from typing import Any

import pytest

from fine_format.adapters.cleaning import PlainTextCleaner
from fine_format.adapters.llm.types import FailureKind, Message, ProviderSuccess, SamplingParams, TokenUsage
from fine_format.adapters.registry import Task
from fine_format.core.exceptions import PipelineBusyError, ProviderCallError
from fine_format.core.pipeline import PipelineOrchestrator
from fine_format.core.progress import ProgressUpdate
from fine_format.core.stages import Stage, StageStatus
from fine_format.core.types import FineTuningGoal, Provenance, SourceDocument, ValidationStatus
from fine_format.generators.models import GenerationConfig

SOURCE_TEXT = "The Eiffel Tower was completed in 1889 and is 330 metres tall. " * 16


def call_error(task: Task) -> ProviderCallError:
    return ProviderCallError(
        f"gemini request failed for task '{task.value}': quota",
        provider="gemini",
        kind=FailureKind.RATE_LIMITED,
        keys_attempted=3,
    )


def pairs_json(prefix: str, count: int, *, incorrect: int = 0) -> str:
    return json.dumps(
        [
            {"user": f"{prefix} question {index}?", "model": f"{prefix} answer {index}.", "isCorrect": index > incorrect}
            for index in range(1, count + 1)
        ]
    )


GAPS_JSON = json.dumps(
    [
        {"id": "gap_1", "description": "Construction", "theme": "History", "priority": "high"},
        {"id": "gap_2", "description": "Materials", "theme": "Engineering", "priority": "medium"},
        {"id": "gap_3", "description": "Tourism", "theme": "Visiting", "priority": "low"},
    ]
)
VALID = '{"isValid": true, "confidence": 0.9, "reasoning": "Consistent"}'


class ScriptedSession:
    """Session answering per task from a queue; the last item repeats."""

    def __init__(self, script: dict[Task, list[str | Exception]]) -> None:
        self.script = {task: list(items) for task, items in script.items()}
        self.calls: list[Task] = []
        self.usage = TokenUsage()

    async def complete(
        self,
        task: Task,
        messages: Sequence[Message],
        *,
        sampling: SamplingParams | None = None,
        tools: Sequence[dict[str, Any]] | None = None,
    ) -> ProviderSuccess:
        self.calls.append(task)
        queue = self.script.get(task)
        if not queue:
            raise call_error(task)
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        self.usage = self.usage + TokenUsage(input_tokens=10, output_tokens=5)
        return ProviderSuccess(text=item)


class RecordingSleep:
    """Awaitable sleep replacement recording the requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def make_orchestrator(session: ScriptedSession, sleep: RecordingSleep | None = None) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        session_factory=lambda: session,
        cleaner=PlainTextCleaner(),
        sleep=sleep or RecordingSleep(),
        clock=lambda: 0.0,
    )


def sources(text: str = SOURCE_TEXT) -> list[SourceDocument]:
    return [SourceDocument(name="tower.txt", content=text)]


# ============================================================================
# Basic runs
# ============================================================================


class TestBasicRun:
    """Tests for runs without gap filling."""

    @pytest.mark.asyncio
    async def test_themes_and_qa_only(self) -> None:
        """Without options only themes and Q&A generation call the provider."""
        session = ScriptedSession(
            {
                Task.THEMES: ['["Engineering", "History"]'],
                Task.QA: [pairs_json("orig", 100, incorrect=8)],
            }
        )
        orchestrator = make_orchestrator(session)

        data = await orchestrator.run(sources(), GenerationConfig(qa_pair_target=100))

        assert data is not None
        assert session.calls == [Task.THEMES, Task.QA]
        assert data.gap_filling_enabled is False
        assert data.knowledge_gaps == []
        assert data.themes == ["Engineering", "History"]
        assert data.statistics.total_pairs == 100
        assert data.statistics.incorrect_answers == 8
        assert data.statistics.token_usage.total_tokens == 30
        assert data.warnings == []

    @pytest.mark.asyncio
    async def test_progress_reports(self) -> None:
        """Progress is reported on entering each stage and at completion."""
        session = ScriptedSession({Task.THEMES: ['["History"]'], Task.QA: [pairs_json("orig", 5)]})
        updates: list[ProgressUpdate] = []

        await make_orchestrator(session).run(sources(), GenerationConfig(), on_progress=updates.append)

        assert [update.percent for update in updates] == [0, 33, 67, 100]
        assert updates[1].message == "Identifying key themes..."
        assert updates[-1].message == "Dataset generation complete"
        assert all(update.estimate is not None for update in updates)

    @pytest.mark.asyncio
    async def test_async_progress_callback(self) -> None:
        """Coroutine callbacks are awaited."""
        session = ScriptedSession({Task.THEMES: ['["History"]'], Task.QA: [pairs_json("orig", 5)]})
        seen: list[int] = []

        async def on_progress(update: ProgressUpdate) -> None:
            seen.append(update.percent)

        await make_orchestrator(session).run(sources(), GenerationConfig(), on_progress=on_progress)

        assert seen[-1] == 100

    @pytest.mark.asyncio
    async def test_state_after_success(self) -> None:
        """A successful run leaves the result on the state."""
        session = ScriptedSession({Task.THEMES: ['["History"]'], Task.QA: [pairs_json("orig", 5)]})
        orchestrator = make_orchestrator(session)

        data = await orchestrator.run(sources(), GenerationConfig(goal=FineTuningGoal.STYLE))

        assert orchestrator.state.is_processing is False
        assert orchestrator.state.progress == 100
        assert orchestrator.state.processed_data is data
        assert orchestrator.state.error is None
        assert data is not None
        assert data.goal is FineTuningGoal.STYLE

    @pytest.mark.asyncio
    async def test_multiple_sources_combined(self) -> None:
        """Cleaned sources are joined with a separator."""
        session = ScriptedSession({Task.THEMES: ['["History"]'], Task.QA: [pairs_json("orig", 5)]})
        docs = [SourceDocument(name="a.txt", content=SOURCE_TEXT), SourceDocument(name="b.html", content="<p>More</p>")]

        data = await make_orchestrator(session).run(docs, GenerationConfig())

        assert data is not None
        assert data.combined_text.endswith("\n\n---\n\nMore")
        assert data.source_count == 2


# ============================================================================
# Degraded stages
# ============================================================================


class TestDegradedStages:
    """Tests for non-fatal stage failures."""

    @pytest.mark.asyncio
    async def test_theme_failure_degrades(self) -> None:
        """Q&A generation runs without themes when theme identification fails."""
        session = ScriptedSession({Task.THEMES: [call_error(Task.THEMES)], Task.QA: [pairs_json("orig", 5)]})
        orchestrator = make_orchestrator(session)

        data = await orchestrator.run(sources(), GenerationConfig())

        assert data is not None
        assert data.themes == []
        assert len(data.qa_pairs) == 5
        assert any("Theme identification failed" in warning for warning in data.warnings)
        run = orchestrator.current_run
        assert run is not None
        assert run.statuses[Stage.THEME_IDENTIFICATION] is StageStatus.DEGRADED

    @pytest.mark.asyncio
    async def test_unparseable_themes_degrade(self) -> None:
        """Theme output nested too deep to decode degrades instead of aborting."""
        session = ScriptedSession({Task.THEMES: ["[" * 100000], Task.QA: [pairs_json("orig", 5)]})
        orchestrator = make_orchestrator(session)

        data = await orchestrator.run(sources(), GenerationConfig())

        assert data is not None
        assert data.themes == []
        assert len(data.qa_pairs) == 5
        assert orchestrator.state.error is None

    @pytest.mark.asyncio
    async def test_augmentation_failure_keeps_original_content(self) -> None:
        """A failed augmentation continues with the original content."""
        session = ScriptedSession(
            {
                Task.THEMES: ['["History"]'],
                Task.AUGMENT: [call_error(Task.AUGMENT)],
                Task.QA: [pairs_json("orig", 5)],
            }
        )

        data = await make_orchestrator(session).run(sources(), GenerationConfig(web_augmentation=True))

        assert data is not None
        assert data.web_augmented is False
        assert data.combined_text == SOURCE_TEXT.strip()

    @pytest.mark.asyncio
    async def test_augmentation_replaces_content(self) -> None:
        """Successful augmentation feeds the augmented text downstream."""
        session = ScriptedSession(
            {
                Task.THEMES: ['["History"]'],
                Task.AUGMENT: ["Augmented tower content."],
                Task.QA: [pairs_json("orig", 5)],
            }
        )

        data = await make_orchestrator(session).run(sources(), GenerationConfig(web_augmentation=True))

        assert data is not None
        assert data.web_augmented is True
        assert data.combined_text == "Augmented tower content."

    @pytest.mark.asyncio
    async def test_gap_analysis_failure_skips_gap_filling(self) -> None:
        """Without gaps the run completes with original pairs only."""
        session = ScriptedSession(
            {
                Task.THEMES: ['["History"]'],
                Task.QA: [pairs_json("orig", 5)],
                Task.GAPS: ["No gaps found, the coverage is complete."],
            }
        )
        orchestrator = make_orchestrator(session)

        data = await orchestrator.run(sources(), GenerationConfig(gap_filling=True))

        assert data is not None
        assert len(data.qa_pairs) == 5
        assert data.synthetic_pairs == []
        assert Task.SYNTHETIC not in session.calls
        assert orchestrator.state.progress == 100


# ============================================================================
# Fatal stages
# ============================================================================


class TestFatalStages:
    """Tests for run-aborting failures."""

    @pytest.mark.asyncio
    async def test_qa_failure_aborts(self) -> None:
        """A failed Q&A generation resets the state with an error."""
        session = ScriptedSession({Task.THEMES: ['["History"]'], Task.QA: [call_error(Task.QA)]})
        orchestrator = make_orchestrator(session)

        data = await orchestrator.run(sources(), GenerationConfig())

        assert data is None
        assert orchestrator.state.error is not None
        assert "Q&A generation failed" in orchestrator.state.error
        assert orchestrator.state.progress == 0
        assert orchestrator.state.current_step == ""
        assert orchestrator.state.processed_data is None
        assert orchestrator.state.is_processing is False

    @pytest.mark.asyncio
    async def test_unparseable_qa_aborts(self) -> None:
        """A Q&A response without any pair is fatal."""
        session = ScriptedSession({Task.THEMES: ['["History"]'], Task.QA: ["Sorry, I can't do that."]})
        orchestrator = make_orchestrator(session)

        assert await orchestrator.run(sources(), GenerationConfig()) is None
        assert "Q&A generation failed" in str(orchestrator.state.error)

    @pytest.mark.asyncio
    async def test_short_content_aborts(self) -> None:
        """Content below the minimum length aborts before any provider call."""
        session = ScriptedSession({})
        orchestrator = make_orchestrator(session)

        data = await orchestrator.run(sources("Too short."), GenerationConfig())

        assert data is None
        assert "too short" in str(orchestrator.state.error)
        assert session.calls == []

    @pytest.mark.asyncio
    async def test_no_sources_aborts(self) -> None:
        """A run without sources fails."""
        orchestrator = make_orchestrator(ScriptedSession({}))

        assert await orchestrator.run([], GenerationConfig()) is None
        assert orchestrator.state.error == "No sources provided"


# ============================================================================
# Gap filling
# ============================================================================


class TestGapFilling:
    """Tests for gap analysis, synthetic generation and validation."""

    @pytest.mark.asyncio
    async def test_failed_gap_is_skipped(self) -> None:
        """With gap 2 failing, only gaps 1 and 3 contribute pairs."""
        session = ScriptedSession(
            {
                Task.THEMES: ['["History"]'],
                Task.QA: [pairs_json("orig", 10)],
                Task.GAPS: [GAPS_JSON],
                Task.SYNTHETIC: [pairs_json("g1", 3), call_error(Task.SYNTHETIC), pairs_json("g3", 3)],
                Task.VALIDATION_CONTEXT: ["Condensed reference."],
                Task.VALIDATE: [VALID],
            }
        )
        sleep = RecordingSleep()
        config = GenerationConfig(gap_filling=True, gap_delay_seconds=1.0, validation_delay_seconds=0.5)

        data = await make_orchestrator(session, sleep).run(sources(), config)

        assert data is not None
        synthetic = [pair for pair in data.qa_pairs if pair.provenance is Provenance.SYNTHETIC]
        assert {pair.target_gap for pair in synthetic} == {"gap_1", "gap_3"}
        assert len(data.qa_pairs) == 16
        assert data.statistics.failed_gaps == ["gap_2"]
        assert data.statistics.gaps_identified == 3
        assert data.statistics.gaps_addressed == 2
        assert any("gap_2" in warning for warning in data.warnings)
        assert sleep.delays == [1.0, 1.0] + [0.5] * 5

    @pytest.mark.asyncio
    async def test_validation_outcomes(self) -> None:
        """Only validated synthetic pairs reach the final dataset."""
        session = ScriptedSession(
            {
                Task.THEMES: ['["History"]'],
                Task.QA: [pairs_json("orig", 4)],
                Task.GAPS: ['[{"id": "gap_1", "description": "Construction", "priority": "high"}]'],
                Task.SYNTHETIC: [pairs_json("g1", 3)],
                Task.VALIDATION_CONTEXT: ["Condensed reference."],
                Task.VALIDATE: [
                    VALID,
                    '{"isValid": true, "confidence": 0.65}',
                    "The pair looks fine to me.",
                ],
            }
        )

        data = await make_orchestrator(session).run(sources(), GenerationConfig(gap_filling=True))

        assert data is not None
        statuses = [pair.validation for pair in data.synthetic_pairs]
        assert statuses == [ValidationStatus.VALIDATED, ValidationStatus.REJECTED, ValidationStatus.FAILED]
        assert len(data.qa_pairs) == 5
        assert data.statistics.validated_pairs == 1
        assert data.statistics.rejected_pairs == 1
        assert data.statistics.failed_validations == 1

    @pytest.mark.asyncio
    async def test_context_failure_uses_fallback(self) -> None:
        """A failed context build validates against the original content."""
        session = ScriptedSession(
            {
                Task.THEMES: ['["History"]'],
                Task.QA: [pairs_json("orig", 4)],
                Task.GAPS: ['[{"id": "gap_1", "description": "Construction"}]'],
                Task.SYNTHETIC: [pairs_json("g1", 2)],
                Task.VALIDATION_CONTEXT: [call_error(Task.VALIDATION_CONTEXT)],
                Task.VALIDATE: [VALID],
            }
        )
        orchestrator = make_orchestrator(session)

        data = await orchestrator.run(sources(), GenerationConfig(gap_filling=True))

        assert data is not None
        assert len(data.qa_pairs) == 6
        run = orchestrator.current_run
        assert run is not None
        assert run.validation_context == SOURCE_TEXT.strip()[:8000]
        assert run.statuses[Stage.VALIDATION_CONTEXT] is StageStatus.DEGRADED

    @pytest.mark.asyncio
    async def test_stage_order(self) -> None:
        """Gap filling tasks run in order after Q&A generation."""
        session = ScriptedSession(
            {
                Task.THEMES: ['["History"]'],
                Task.QA: [pairs_json("orig", 4)],
                Task.GAPS: ['[{"id": "gap_1", "description": "Construction"}]'],
                Task.SYNTHETIC: [pairs_json("g1", 1)],
                Task.VALIDATION_CONTEXT: ["Condensed reference."],
                Task.VALIDATE: [VALID],
            }
        )

        await make_orchestrator(session).run(sources(), GenerationConfig(gap_filling=True))

        assert session.calls == [
            Task.THEMES,
            Task.QA,
            Task.GAPS,
            Task.SYNTHETIC,
            Task.VALIDATION_CONTEXT,
            Task.VALIDATE,
        ]


# ============================================================================
# Concurrency and state
# ============================================================================


class BlockingSession(ScriptedSession):
    """Session that blocks theme identification until released."""

    def __init__(self) -> None:
        super().__init__({Task.THEMES: ['["History"]'], Task.QA: [pairs_json("orig", 3)]})
        self.release = asyncio.Event()

    async def complete(self, task: Task, messages: Sequence[Message], **kwargs: Any) -> ProviderSuccess:
        if task is Task.THEMES:
            await self.release.wait()
        return await super().complete(task, messages, **kwargs)


class TestPipelineState:
    """Tests for run exclusivity and state reset."""

    @pytest.mark.asyncio
    async def test_second_run_rejected_while_busy(self) -> None:
        """Starting a run while one is in flight raises."""
        session = BlockingSession()
        orchestrator = make_orchestrator(session)

        first = asyncio.create_task(orchestrator.run(sources(), GenerationConfig()))
        await asyncio.sleep(0)
        assert orchestrator.state.is_processing is True

        with pytest.raises(PipelineBusyError):
            await orchestrator.run(sources(), GenerationConfig())
        with pytest.raises(PipelineBusyError):
            orchestrator.clear()

        session.release.set()
        assert await first is not None
        assert orchestrator.state.is_processing is False

    @pytest.mark.asyncio
    async def test_clear_resets_state(self) -> None:
        """clear() returns the orchestrator to its initial state."""
        session = ScriptedSession({Task.THEMES: ['["History"]'], Task.QA: [pairs_json("orig", 3)]})
        orchestrator = make_orchestrator(session)
        await orchestrator.run(sources(), GenerationConfig())

        orchestrator.clear()

        assert orchestrator.state.processed_data is None
        assert orchestrator.state.progress == 0
        assert orchestrator.current_run is None

    def test_requires_registry_or_session_factory(self) -> None:
        """An orchestrator needs a way to obtain sessions."""
        with pytest.raises(ValueError, match="registry or a session_factory"):
            PipelineOrchestrator()

"""Dataset generation pipeline.

The orchestrator runs the enabled stages in order:

``Preprocess -> ThemeIdentification -> [WebAugmentation] -> QAGeneration
-> [GapAnalysis -> SyntheticGeneration -> ValidationContext -> CrossValidation]``

Each stage returns a StageResult. Fatal results abort the run and reset
the progress state; degraded results add a warning and the run continues
with reduced scope. Per-gap and per-pair calls are sequential, with a
fixed delay between calls.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from fine_format.adapters.cleaning import LLMContentCleaner
from fine_format.adapters.llm.types import TokenUsage
from fine_format.core.exceptions import FineFormatError, PipelineBusyError, StageFatalError
from fine_format.core.progress import ProgressUpdate, TimeEstimate, TimeEstimator, progress_percent
from fine_format.core.stages import (
    Stage,
    StageDegraded,
    StageFatal,
    StageOk,
    StageStatus,
    plan_stages,
)
from fine_format.core.types import (
    DatasetStatistics,
    ProcessedData,
    Provenance,
    ValidationStatus,
)
from fine_format.generators.gaps import GapAnalyzer
from fine_format.generators.models import GenerationConfig
from fine_format.generators.qa import QAGenerator
from fine_format.generators.synthetic import SyntheticGenerator
from fine_format.generators.themes import augment_with_web_search, identify_themes
from fine_format.generators.validators import SyntheticPairValidator, apply_validation, fallback_context

if TYPE_CHECKING:
    from collections.abc import Awaitable, Sequence

    from fine_format.adapters.llm.types import GroundingMetadata
    from fine_format.adapters.registry import ServiceRegistry
    from fine_format.core.protocols import ContentCleanerProtocol, LLMSessionProtocol
    from fine_format.core.stages import StageResult
    from fine_format.core.types import KnowledgeGap, QAPair, SourceDocument

logger = logging.getLogger(__name__)

# Separator placed between cleaned sources
SOURCE_SEPARATOR = "\n\n---\n\n"

ProgressCallback = Callable[[ProgressUpdate], Any]


@dataclass
class PipelineState:
    """UI-facing state of the pipeline.

    Attributes:
        is_processing: Whether a run is in flight.
        current_step: Human-readable current step ("" when idle).
        progress: Overall progress, 0-100.
        error: User-facing error of the last run, if it failed.
        processed_data: Result of the last successful run.
        estimate: Latest time estimate.
    """

    is_processing: bool = False
    current_step: str = ""
    progress: int = 0
    error: str | None = None
    processed_data: ProcessedData | None = None
    estimate: TimeEstimate | None = None


@dataclass
class PipelineRun:
    """Bookkeeping of one run.

    Attributes:
        stages: Enabled stages, in order.
        config: Run configuration.
        source_count: Number of input sources.
        started_at: Clock value at start.
        current_index: Index of the current stage.
        statuses: Per-stage status.
        content: Combined (possibly augmented) content.
        themes: Identified themes.
        pairs: Original pairs.
        gaps: Identified gaps.
        synthetic_pairs: Synthetic pairs and their validation status.
        failed_gaps: Ids of gaps whose synthetic generation failed.
        validation_context: Context used for cross-validation.
        grounding: Web sources from augmentation.
        web_augmented: Whether augmentation was applied.
        warnings: Warnings from degraded stages.
    """

    stages: list[Stage]
    config: GenerationConfig
    source_count: int
    started_at: float
    current_index: int = 0
    statuses: dict[Stage, StageStatus] = field(default_factory=dict)
    content: str = ""
    themes: list[str] = field(default_factory=list)
    pairs: list[QAPair] = field(default_factory=list)
    gaps: list[KnowledgeGap] = field(default_factory=list)
    synthetic_pairs: list[QAPair] = field(default_factory=list)
    failed_gaps: list[str] = field(default_factory=list)
    validation_context: str = ""
    grounding: GroundingMetadata | None = None
    web_augmented: bool = False
    warnings: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.statuses = {stage: StageStatus.PENDING for stage in self.stages}

    @property
    def total_stages(self) -> int:
        return len(self.stages)


class PipelineOrchestrator:
    """Runs dataset generation and exposes its progress state.

    Only one run may be in flight at a time; starting another raises
    PipelineBusyError.

    Attributes:
        state: UI-facing state, updated after every progress step.

    Example:
        >>> registry = ServiceRegistry.from_settings()
        >>> async with registry:
        ...     orchestrator = PipelineOrchestrator(registry)
        ...     data = await orchestrator.run(sources, GenerationConfig(gap_filling=True))
        ...     if data is None:
        ...         print(orchestrator.state.error)
    """

    def __init__(
        self,
        registry: ServiceRegistry | None = None,
        *,
        session_factory: Callable[[], LLMSessionProtocol] | None = None,
        cleaner: ContentCleanerProtocol | None = None,
        estimator: TimeEstimator | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        max_output_tokens: int | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            registry: Service registry providing per-run sessions.
            session_factory: Alternative session source (takes precedence).
            cleaner: Content cleaner; defaults to LLM cleaning through the session.
            estimator: Time estimator.
            sleep: Awaitable used for inter-call delays.
            clock: Monotonic clock in seconds.
            max_output_tokens: Output token cap for Q&A generation.
        """
        if session_factory is None:
            if registry is None:
                msg = "Either a registry or a session_factory is required"
                raise ValueError(msg)
            session_factory = registry.session
        if max_output_tokens is None:
            max_output_tokens = registry.settings.max_output_tokens_cap if registry is not None else 20000

        self._session_factory = session_factory
        self._cleaner = cleaner
        self._estimator = estimator or TimeEstimator()
        self._sleep = sleep
        self._clock = clock
        self._max_output_tokens = max_output_tokens
        self._run: PipelineRun | None = None
        self._on_progress: ProgressCallback | None = None
        self.state = PipelineState()

    @property
    def current_run(self) -> PipelineRun | None:
        """Bookkeeping of the run in flight (or the last one)."""
        return self._run

    def clear(self) -> None:
        """Reset the state after a run.

        Raises:
            PipelineBusyError: If a run is in flight.
        """
        if self.state.is_processing:
            msg = "Cannot clear while a generation run is in progress"
            raise PipelineBusyError(msg)
        self.state = PipelineState()
        self._run = None

    async def run(
        self,
        sources: Sequence[SourceDocument],
        config: GenerationConfig | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ProcessedData | None:
        """Run the pipeline.

        Args:
            sources: Input sources.
            config: Run configuration.
            on_progress: Optional callback (sync or async) for progress updates.

        Returns:
            The processed data, or None when the run failed; the
            user-facing error is then in ``state.error``.

        Raises:
            PipelineBusyError: If another run is in flight.
        """
        if self.state.is_processing:
            msg = "A generation run is already in progress"
            raise PipelineBusyError(msg)

        config = config or GenerationConfig()
        self.state = PipelineState(is_processing=True)
        self._on_progress = on_progress
        self._run = PipelineRun(
            stages=plan_stages(
                augmentation_enabled=config.web_augmentation,
                gap_filling_enabled=config.gap_filling,
            ),
            config=config,
            source_count=len(sources),
            started_at=self._clock(),
        )
        session = self._session_factory()
        logger.info(
            f"Starting generation: {len(sources)} source(s), "
            f"stages={[stage.value for stage in self._run.stages]}"
        )

        try:
            data = await self._execute(self._run, session, sources)
        except StageFatalError as e:
            logger.error(f"Generation aborted at {e.stage}: {e}")
            self._fail(str(e))
            return None
        except Exception as e:
            logger.exception("Unexpected error during generation")
            self._fail(f"Unexpected error during generation: {e}")
            return None
        finally:
            self.state.is_processing = False

        self.state.processed_data = data
        self.state.error = None
        return data

    def _fail(self, message: str) -> None:
        self.state.error = message
        self.state.current_step = ""
        self.state.progress = 0
        self.state.processed_data = None
        self.state.estimate = None

    async def _execute(
        self,
        run: PipelineRun,
        session: LLMSessionProtocol,
        sources: Sequence[SourceDocument],
    ) -> ProcessedData:
        handlers: dict[Stage, Callable[[], Awaitable[StageResult[Any]]]] = {
            Stage.PREPROCESS: lambda: self._preprocess(run, session, sources),
            Stage.THEME_IDENTIFICATION: lambda: self._identify_themes(run, session),
            Stage.WEB_AUGMENTATION: lambda: self._augment(run, session),
            Stage.QA_GENERATION: lambda: self._generate_pairs(run, session),
            Stage.GAP_ANALYSIS: lambda: self._analyze_gaps(run, session),
            Stage.SYNTHETIC_GENERATION: lambda: self._generate_synthetic(run, session),
            Stage.VALIDATION_CONTEXT: lambda: self._build_validation_context(run, session),
            Stage.CROSS_VALIDATION: lambda: self._cross_validate(run, session),
        }

        for index, stage in enumerate(run.stages):
            run.current_index = index
            run.statuses[stage] = StageStatus.RUNNING
            logger.info(f"Stage {index + 1}/{run.total_stages}: {stage.value}")
            await self._report(f"{stage.label}...")

            result = await handlers[stage]()
            run.statuses[stage] = result.status

            if isinstance(result, StageFatal):
                raise StageFatalError(stage.value, result.error)
            if isinstance(result, StageDegraded):
                logger.warning(f"Stage {stage.value} degraded: {result.warning}")
                run.warnings.append(result.warning)

        run.current_index = run.total_stages
        data = self._finalize(run, session)
        await self._report("Dataset generation complete")
        logger.info(
            f"Generation complete: {data.statistics.total_pairs} pair(s), "
            f"{len(run.warnings)} warning(s), {self._clock() - run.started_at:.1f}s"
        )
        return data

    async def _report(self, message: str) -> None:
        run = self._run
        if run is None:
            return

        percent = progress_percent(run.current_index, run.total_stages)
        estimate = self._estimator.estimate(
            run.current_index,
            run.total_stages,
            source_count=run.source_count,
            augmentation_enabled=run.config.web_augmentation,
            gap_filling_enabled=run.config.gap_filling,
            gap_count=len(run.gaps),
            elapsed=self._clock() - run.started_at,
        )
        self.state.current_step = message
        self.state.progress = max(self.state.progress, percent)
        self.state.estimate = estimate

        if self._on_progress:
            update = ProgressUpdate(
                stage_index=run.current_index,
                total_stages=run.total_stages,
                message=message,
                percent=self.state.progress,
                estimate=estimate,
            )
            callback_result = self._on_progress(update)
            # Support async callbacks
            if asyncio.iscoroutine(callback_result):
                await callback_result

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _preprocess(
        self,
        run: PipelineRun,
        session: LLMSessionProtocol,
        sources: Sequence[SourceDocument],
    ) -> StageResult[str]:
        if not sources:
            return StageFatal("No sources provided")

        cleaner = self._cleaner or LLMContentCleaner(session)
        try:
            texts = await cleaner.clean(sources)
        except FineFormatError as e:
            return StageFatal(f"Content cleaning failed: {e}")

        usable = [text.strip() for text in texts if text and text.strip()]
        if not usable:
            return StageFatal("No usable content could be extracted from the sources")

        combined = SOURCE_SEPARATOR.join(usable)
        minimum = run.config.min_content_length
        if len(combined) < minimum:
            return StageFatal(f"Combined content is too short ({len(combined)} characters, minimum {minimum})")

        run.content = combined
        skipped = len(sources) - len(usable)
        logger.info(f"Combined {len(usable)} source(s) into {len(combined)} characters")
        if skipped:
            return StageDegraded(combined, f"{skipped} source(s) yielded no usable text and were skipped")
        return StageOk(combined)

    async def _identify_themes(self, run: PipelineRun, session: LLMSessionProtocol) -> StageResult[list[str]]:
        try:
            run.themes = await identify_themes(session, run.content, run.config.goal_config)
        except FineFormatError as e:
            return StageDegraded([], f"Theme identification failed, continuing without themes: {e}")
        return StageOk(run.themes)

    async def _augment(self, run: PipelineRun, session: LLMSessionProtocol) -> StageResult[str]:
        try:
            result = await augment_with_web_search(session, run.content, run.themes, run.config.goal_config)
        except (FineFormatError, ValueError) as e:
            return StageDegraded(run.content, f"Web augmentation failed, using original content: {e}")

        run.content = result.text
        run.grounding = result.grounding
        run.web_augmented = True
        return StageOk(run.content)

    async def _generate_pairs(self, run: PipelineRun, session: LLMSessionProtocol) -> StageResult[list[QAPair]]:
        generator = QAGenerator(session, run.config, max_output_tokens=self._max_output_tokens)
        try:
            run.pairs = await generator.generate(run.content, run.themes)
        except FineFormatError as e:
            return StageFatal(f"Q&A generation failed: {e}")
        return StageOk(run.pairs)

    async def _analyze_gaps(self, run: PipelineRun, session: LLMSessionProtocol) -> StageResult[list[KnowledgeGap]]:
        try:
            run.gaps = await GapAnalyzer(session, run.config).analyze(run.content, run.pairs, run.themes)
        except FineFormatError as e:
            return StageDegraded([], f"Knowledge gap analysis failed, skipping gap filling: {e}")
        return StageOk(run.gaps)

    async def _generate_synthetic(
        self,
        run: PipelineRun,
        session: LLMSessionProtocol,
    ) -> StageResult[list[QAPair]]:
        if not run.gaps:
            logger.info("No knowledge gaps to fill")
            return StageOk([])

        generator = SyntheticGenerator(session, run.config)
        per_gap = run.config.pairs_per_gap(len(run.gaps))

        for position, gap in enumerate(run.gaps, start=1):
            if position > 1:
                await self._sleep(run.config.gap_delay_seconds)
            await self._report(f"Generating synthetic pairs for gap {position}/{len(run.gaps)}...")
            try:
                pairs = await generator.generate_for_gap(gap, run.content, per_gap)
            except FineFormatError as e:
                logger.warning(f"Skipping {gap.id}: synthetic generation failed: {e}")
                run.failed_gaps.append(gap.id)
                continue
            run.synthetic_pairs.extend(pairs)

        if run.failed_gaps:
            failed = ", ".join(run.failed_gaps)
            return StageDegraded(
                run.synthetic_pairs,
                f"Synthetic generation failed for {len(run.failed_gaps)}/{len(run.gaps)} gap(s): {failed}",
            )
        return StageOk(run.synthetic_pairs)

    async def _build_validation_context(self, run: PipelineRun, session: LLMSessionProtocol) -> StageResult[str]:
        if not run.synthetic_pairs:
            return StageOk("")

        validator = SyntheticPairValidator(session)
        try:
            run.validation_context = await validator.build_context(
                run.content,
                run.themes,
                run.pairs,
                run.gaps,
                run.synthetic_pairs,
            )
        except (FineFormatError, ValueError) as e:
            run.validation_context = fallback_context(run.content)
            return StageDegraded(
                run.validation_context,
                f"Validation context build failed, validating against the original content: {e}",
            )
        return StageOk(run.validation_context)

    async def _cross_validate(self, run: PipelineRun, session: LLMSessionProtocol) -> StageResult[list[QAPair]]:
        if not run.synthetic_pairs:
            return StageOk([])

        validator = SyntheticPairValidator(session)
        threshold = run.config.validation_confidence_threshold
        total = len(run.synthetic_pairs)
        checked: list[QAPair] = []
        failures = 0

        for position, pair in enumerate(run.synthetic_pairs, start=1):
            if position > 1:
                await self._sleep(run.config.validation_delay_seconds)
            await self._report(f"Validating synthetic pair {position}/{total}...")
            try:
                result = await validator.validate(pair, run.validation_context)
            except FineFormatError as e:
                logger.warning(f"Validation failed for synthetic pair {position}/{total}: {e}")
                checked.append(pair.model_copy(update={"validation": ValidationStatus.FAILED}))
                failures += 1
                continue
            checked.append(apply_validation(pair, result, threshold))

        run.synthetic_pairs = checked
        accepted = sum(1 for pair in checked if pair.validation is ValidationStatus.VALIDATED)
        logger.info(f"Cross-validation kept {accepted}/{total} synthetic pair(s)")

        if failures:
            return StageDegraded(checked, f"Validation failed for {failures}/{total} synthetic pair(s)")
        return StageOk(checked)

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    def _finalize(self, run: PipelineRun, session: LLMSessionProtocol) -> ProcessedData:
        validated = [pair for pair in run.synthetic_pairs if pair.validation is ValidationStatus.VALIDATED]
        final_pairs = [*run.pairs, *validated]
        return ProcessedData(
            combined_text=run.content,
            themes=run.themes,
            qa_pairs=final_pairs,
            source_count=run.source_count,
            goal=run.config.goal,
            web_augmented=run.web_augmented,
            grounding=run.grounding,
            gap_filling_enabled=run.config.gap_filling,
            knowledge_gaps=run.gaps,
            synthetic_pairs=run.synthetic_pairs,
            statistics=compute_statistics(run, final_pairs, getattr(session, "usage", None)),
            warnings=run.warnings,
        )


def compute_statistics(
    run: PipelineRun,
    final_pairs: list[QAPair],
    usage: TokenUsage | None = None,
) -> DatasetStatistics:
    """Compute the statistics of a finished run."""
    statuses = [pair.validation for pair in run.synthetic_pairs]
    addressed = {
        pair.target_gap
        for pair in run.synthetic_pairs
        if pair.validation is ValidationStatus.VALIDATED and pair.target_gap
    }
    correct = sum(1 for pair in final_pairs if pair.is_correct)

    return DatasetStatistics(
        total_pairs=len(final_pairs),
        original_pairs=sum(1 for pair in final_pairs if pair.provenance is Provenance.ORIGINAL),
        synthetic_pairs=sum(1 for pair in final_pairs if pair.provenance is Provenance.SYNTHETIC),
        correct_answers=correct,
        incorrect_answers=len(final_pairs) - correct,
        validated_pairs=statuses.count(ValidationStatus.VALIDATED),
        rejected_pairs=statuses.count(ValidationStatus.REJECTED),
        failed_validations=statuses.count(ValidationStatus.FAILED),
        gaps_identified=len(run.gaps),
        gaps_addressed=sum(1 for gap in run.gaps if gap.id in addressed),
        failed_gaps=list(run.failed_gaps),
        token_usage=usage if isinstance(usage, TokenUsage) else TokenUsage(),
    )

"""Progress reporting and time estimation.

Progress is expressed per stage: entering stage ``i`` of ``T`` reports
``round(100 * i / T)`` percent. The time estimate starts from a static
per-stage cost model and grows to match the observed pace once enough of
the run has completed.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

# Minimum completion ratio before the observed pace is trusted
MIN_OBSERVED_RATIO = 0.1


def progress_percent(stage_index: int, total_stages: int) -> int:
    """Percentage reported when entering a stage, rounded half up.

    Example:
        >>> progress_percent(1, 8)
        13
        >>> progress_percent(0, 3)
        0
    """
    if total_stages <= 0:
        return 100
    stage_index = max(0, min(stage_index, total_stages))
    return (200 * stage_index + total_stages) // (2 * total_stages)


@dataclass(frozen=True)
class StageCosts:
    """Static cost model, in seconds.

    Attributes:
        preprocess_per_source: Cleaning cost per source.
        theme_identification: Theme identification call.
        web_augmentation: Web-augmented rewrite call.
        qa_generation: Q&A generation call.
        gap_analysis: Gap analysis call.
        synthetic_per_gap: Synthetic generation per gap (inter-call delay included).
        validation_context: Validation context build call.
        validation_per_pair: Cross-validation per synthetic pair (delay included).
        default_gap_count: Gaps assumed before gap analysis has run.
    """

    preprocess_per_source: float = 6.0
    theme_identification: float = 8.0
    web_augmentation: float = 25.0
    qa_generation: float = 45.0
    gap_analysis: float = 20.0
    synthetic_per_gap: float = 15.0
    validation_context: float = 20.0
    validation_per_pair: float = 3.0
    default_gap_count: int = 5


@dataclass(frozen=True)
class TimeEstimate:
    """Estimated total and remaining duration of a run, in seconds."""

    total_seconds: float
    remaining_seconds: float

    @property
    def remaining_label(self) -> str:
        """Human-readable remaining time, e.g. ``2m 05s``."""
        seconds = int(math.ceil(self.remaining_seconds))
        if seconds < 60:
            return f"{seconds}s"
        return f"{seconds // 60}m {seconds % 60:02d}s"


@dataclass(frozen=True)
class ProgressUpdate:
    """A progress event emitted by the pipeline.

    Attributes:
        stage_index: Index of the current stage (0-based); equals
            ``total_stages`` on completion.
        total_stages: Number of enabled stages.
        message: Human-readable step description.
        percent: Overall progress, 0-100.
        estimate: Time estimate at this point, if available.
    """

    stage_index: int
    total_stages: int
    message: str
    percent: int
    estimate: TimeEstimate | None = None


@dataclass
class TimeEstimator:
    """Blend a static cost model with the observed pace of a run.

    Example:
        >>> estimator = TimeEstimator()
        >>> static = estimator.estimate(0, 4, source_count=1)
        >>> static.remaining_seconds == static.total_seconds
        True
    """

    costs: StageCosts = field(default_factory=StageCosts)
    synthetic_pair_target: int = 75
    max_pairs_per_gap: int = 15

    def static_total(
        self,
        *,
        source_count: int,
        augmentation_enabled: bool = False,
        gap_filling_enabled: bool = False,
        gap_count: int = 0,
    ) -> float:
        """Sum of the per-stage constants for the enabled stages."""
        costs = self.costs
        total = costs.preprocess_per_source * max(1, source_count)
        total += costs.theme_identification + costs.qa_generation
        if augmentation_enabled:
            total += costs.web_augmentation
        if gap_filling_enabled:
            gaps = gap_count if gap_count > 0 else costs.default_gap_count
            estimated_pairs = min(self.synthetic_pair_target, gaps * self.max_pairs_per_gap)
            total += costs.gap_analysis
            total += costs.synthetic_per_gap * gaps
            total += costs.validation_context
            total += costs.validation_per_pair * estimated_pairs
        return total

    def estimate(
        self,
        step_index: int,
        total_steps: int,
        *,
        source_count: int,
        augmentation_enabled: bool = False,
        gap_filling_enabled: bool = False,
        gap_count: int = 0,
        elapsed: float = 0.0,
    ) -> TimeEstimate:
        """Estimate total and remaining time.

        Once more than 10% of the steps are done, the total becomes the
        larger of the static figure and ``elapsed / ratio``: the estimate
        grows to match observed slowness but never drops below the static
        floor.

        Args:
            step_index: Steps completed so far.
            total_steps: Total steps of the run.
            source_count: Number of sources.
            augmentation_enabled: Whether web augmentation runs.
            gap_filling_enabled: Whether gap filling runs.
            gap_count: Known number of gaps (0 before gap analysis).
            elapsed: Seconds since the run started.

        Returns:
            The time estimate.
        """
        total = self.static_total(
            source_count=source_count,
            augmentation_enabled=augmentation_enabled,
            gap_filling_enabled=gap_filling_enabled,
            gap_count=gap_count,
        )

        ratio = step_index / total_steps if total_steps > 0 else 0.0
        if elapsed > 0 and ratio > MIN_OBSERVED_RATIO:
            total = max(total, elapsed / ratio)

        return TimeEstimate(total_seconds=total, remaining_seconds=max(0.0, total - elapsed))

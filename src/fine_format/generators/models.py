"""Configuration models for dataset generation.

This module contains the Pydantic model describing one generation run:
which optional stages run, the fine-tuning goal and the numeric targets.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from fine_format.core.types import FINE_TUNING_GOALS, FineTuningGoal, FineTuningGoalConfig

if TYPE_CHECKING:
    from fine_format.core.config import Settings

# Characters of original content used as validation context fallback
VALIDATION_CONTEXT_FALLBACK_CHARS = 8000


class GenerationConfig(BaseModel):
    """Configuration for one dataset generation run.

    Attributes:
        goal: Fine-tuning goal woven into the prompts.
        web_augmentation: Whether to run the web augmentation stage.
        gap_filling: Whether to run gap analysis and synthetic generation.
        qa_pair_target: Pairs requested from the original content.
        synthetic_pair_target: Synthetic pairs requested across all gaps.
        incorrect_answer_ratio: Share of intentionally incorrect answers.
        max_pairs_per_gap: Upper bound of synthetic pairs per gap.
        max_knowledge_gaps: Upper bound of gaps kept from analysis.
        min_content_length: Minimum combined content length.
        validation_confidence_threshold: Minimum validator confidence.
        gap_delay_seconds: Delay between per-gap calls.
        validation_delay_seconds: Delay between per-pair validations.

    Example:
        >>> config = GenerationConfig(gap_filling=True, qa_pair_target=50)
        >>> config.incorrect_target(config.qa_pair_target)
        4
    """

    goal: FineTuningGoal = Field(default=FineTuningGoal.KNOWLEDGE, description="Fine-tuning goal")
    web_augmentation: bool = Field(default=False, description="Run web augmentation")
    gap_filling: bool = Field(default=False, description="Run gap filling")
    qa_pair_target: int = Field(default=100, ge=1, description="Pairs from original content")
    synthetic_pair_target: int = Field(default=75, ge=1, description="Synthetic pairs across gaps")
    incorrect_answer_ratio: float = Field(default=0.08, gt=0, lt=1, description="Incorrect answer share")
    max_pairs_per_gap: int = Field(default=15, ge=1, description="Max synthetic pairs per gap")
    max_knowledge_gaps: int = Field(default=10, ge=1, description="Max gaps kept")
    min_content_length: int = Field(default=300, ge=1, description="Minimum combined content length")
    validation_confidence_threshold: float = Field(default=0.7, ge=0, le=1, description="Validation threshold")
    gap_delay_seconds: float = Field(default=1.0, ge=0, description="Delay between per-gap calls")
    validation_delay_seconds: float = Field(default=0.5, ge=0, description="Delay between validations")

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> GenerationConfig:
        """Build a run configuration from settings, with per-run overrides."""
        values: dict[str, Any] = {
            "qa_pair_target": settings.qa_pair_target,
            "synthetic_pair_target": settings.synthetic_pair_target,
            "incorrect_answer_ratio": settings.incorrect_answer_ratio,
            "max_pairs_per_gap": settings.max_pairs_per_gap,
            "max_knowledge_gaps": settings.max_knowledge_gaps,
            "min_content_length": settings.min_content_length,
            "validation_confidence_threshold": settings.validation_confidence_threshold,
            "gap_delay_seconds": settings.gap_delay_seconds,
            "validation_delay_seconds": settings.validation_delay_seconds,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    @property
    def goal_config(self) -> FineTuningGoalConfig:
        """Prompt-facing description of the goal."""
        return FINE_TUNING_GOALS[self.goal]

    def incorrect_target(self, pair_count: int) -> int:
        """Number of incorrect answers requested among ``pair_count`` pairs."""
        return math.ceil(pair_count * self.incorrect_answer_ratio)

    def pairs_per_gap(self, gap_count: int) -> int:
        """Synthetic pairs requested for each gap.

        Example:
            >>> GenerationConfig().pairs_per_gap(3)
            15
            >>> GenerationConfig().pairs_per_gap(10)
            8
        """
        if gap_count <= 0:
            return 0
        return min(self.max_pairs_per_gap, math.ceil(self.synthetic_pair_target / gap_count))

    def incorrect_per_gap(self, pairs_per_gap: int) -> int:
        """Incorrect answers requested per gap, at least one."""
        return max(1, math.ceil(pairs_per_gap * self.incorrect_answer_ratio))

"""Pipeline stages and stage outcomes.

Every stage returns a StageResult value instead of raising:

- ``StageOk(data)``: the stage produced its output.
- ``StageDegraded(data, warning)``: the stage failed in a non-essential
  way; the run continues with reduced scope.
- ``StageFatal(error)``: the run is aborted.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class Stage(str, Enum):
    """Pipeline stages, in execution order."""

    PREPROCESS = "preprocess"
    THEME_IDENTIFICATION = "theme_identification"
    WEB_AUGMENTATION = "web_augmentation"
    QA_GENERATION = "qa_generation"
    GAP_ANALYSIS = "gap_analysis"
    SYNTHETIC_GENERATION = "synthetic_generation"
    VALIDATION_CONTEXT = "validation_context"
    CROSS_VALIDATION = "cross_validation"

    @property
    def label(self) -> str:
        """Human-readable stage name."""
        return STAGE_LABELS[self]


STAGE_LABELS: dict[Stage, str] = {
    Stage.PREPROCESS: "Cleaning and combining content",
    Stage.THEME_IDENTIFICATION: "Identifying key themes",
    Stage.WEB_AUGMENTATION: "Augmenting content with web search",
    Stage.QA_GENERATION: "Generating Q&A pairs",
    Stage.GAP_ANALYSIS: "Analyzing knowledge gaps",
    Stage.SYNTHETIC_GENERATION: "Generating synthetic Q&A pairs",
    Stage.VALIDATION_CONTEXT: "Building validation context",
    Stage.CROSS_VALIDATION: "Cross-validating synthetic pairs",
}

# Stages whose failure aborts the run
FATAL_STAGES = frozenset({Stage.PREPROCESS, Stage.QA_GENERATION})


class StageStatus(str, Enum):
    """Per-stage status within a run."""

    PENDING = "pending"
    RUNNING = "running"
    OK = "ok"
    DEGRADED = "degraded"
    FATAL = "fatal"


def plan_stages(*, augmentation_enabled: bool, gap_filling_enabled: bool) -> list[Stage]:
    """Return the ordered list of enabled stages.

    Example:
        >>> [s.value for s in plan_stages(augmentation_enabled=False, gap_filling_enabled=False)]
        ['preprocess', 'theme_identification', 'qa_generation']
    """
    stages = [Stage.PREPROCESS, Stage.THEME_IDENTIFICATION]
    if augmentation_enabled:
        stages.append(Stage.WEB_AUGMENTATION)
    stages.append(Stage.QA_GENERATION)
    if gap_filling_enabled:
        stages.extend(
            [
                Stage.GAP_ANALYSIS,
                Stage.SYNTHETIC_GENERATION,
                Stage.VALIDATION_CONTEXT,
                Stage.CROSS_VALIDATION,
            ]
        )
    return stages


@dataclass(frozen=True)
class StageOk(Generic[T]):
    """Stage succeeded."""

    data: T

    @property
    def status(self) -> StageStatus:
        return StageStatus.OK


@dataclass(frozen=True)
class StageDegraded(Generic[T]):
    """Stage failed in a non-essential way; ``data`` is the fallback."""

    data: T
    warning: str

    @property
    def status(self) -> StageStatus:
        return StageStatus.DEGRADED


@dataclass(frozen=True)
class StageFatal:
    """Stage failed and the run must abort."""

    error: str

    @property
    def status(self) -> StageStatus:
        return StageStatus.FATAL


StageResult = Union[StageOk[T], StageDegraded[T], StageFatal]

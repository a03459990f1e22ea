"""Core module for fine-format.

This module contains the fundamental types, protocols, exceptions,
configuration and progress primitives used throughout the library.
"""

from __future__ import annotations

from fine_format.core.config import Settings
from fine_format.core.exceptions import (
    ConfigurationError,
    FineFormatError,
    ParseError,
    PipelineBusyError,
    PipelineError,
    ProviderCallError,
    ProviderNotConfiguredError,
    StageFatalError,
)
from fine_format.core.progress import ProgressUpdate, TimeEstimate, TimeEstimator, progress_percent
from fine_format.core.protocols import ContentCleanerProtocol, LLMSessionProtocol
from fine_format.core.stages import Stage, StageDegraded, StageFatal, StageOk, StageStatus, plan_stages
from fine_format.core.types import (
    DatasetStatistics,
    FineTuningGoal,
    KnowledgeGap,
    ProcessedData,
    Provenance,
    QAPair,
    SourceDocument,
    ValidationResult,
    ValidationStatus,
)

__all__ = [
    "ConfigurationError",
    "ContentCleanerProtocol",
    "DatasetStatistics",
    "FineFormatError",
    "FineTuningGoal",
    "KnowledgeGap",
    "LLMSessionProtocol",
    "ParseError",
    "PipelineBusyError",
    "PipelineError",
    "ProcessedData",
    "ProgressUpdate",
    "Provenance",
    "ProviderCallError",
    "ProviderNotConfiguredError",
    "QAPair",
    "Settings",
    "SourceDocument",
    "Stage",
    "StageDegraded",
    "StageFatal",
    "StageFatalError",
    "StageOk",
    "StageStatus",
    "TimeEstimate",
    "TimeEstimator",
    "ValidationResult",
    "ValidationStatus",
    "plan_stages",
    "progress_percent",
]

"""fine-format: resilient LLM pipeline turning documents into fine-tuning Q&A datasets."""

from __future__ import annotations

from fine_format.core import (
    FineFormatError,
    FineTuningGoal,
    ProcessedData,
    QAPair,
    Settings,
    SourceDocument,
)
from fine_format.adapters import PlainTextCleaner, ServiceRegistry
from fine_format.core.pipeline import PipelineOrchestrator, PipelineState
from fine_format.generators import GenerationConfig, load_dataset, save_dataset

__version__ = "0.3.0"
__all__ = [
    # Configuration
    "GenerationConfig",
    "Settings",
    # Pipeline
    "PipelineOrchestrator",
    "PipelineState",
    "ServiceRegistry",
    "PlainTextCleaner",
    # Data model
    "FineFormatError",
    "FineTuningGoal",
    "ProcessedData",
    "QAPair",
    "SourceDocument",
    # Persistence
    "load_dataset",
    "save_dataset",
    # Version
    "__version__",
]

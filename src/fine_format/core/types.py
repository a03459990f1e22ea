"""Core type definitions for fine-format.

This module defines the data structures flowing through the dataset
generation pipeline: sources, Q&A pairs, knowledge gaps, validation
results and the final processed dataset.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from fine_format.adapters.llm.types import GroundingMetadata, TokenUsage

# Confidence used when a provider omits it
DEFAULT_CORRECT_CONFIDENCE = 0.9
DEFAULT_INCORRECT_CONFIDENCE = 0.2


class Provenance(str, Enum):
    """Where a Q&A pair comes from."""

    ORIGINAL = "original"
    SYNTHETIC = "synthetic"


class ValidationStatus(str, Enum):
    """Cross-validation status of a synthetic pair."""

    PENDING = "pending"
    VALIDATED = "validated"
    REJECTED = "rejected"
    FAILED = "failed"


class GapPriority(str, Enum):
    """Priority of a knowledge gap."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class FineTuningGoal(str, Enum):
    """What the generated dataset is meant to teach."""

    TOPIC = "topic"
    KNOWLEDGE = "knowledge"
    STYLE = "style"


class FineTuningGoalConfig(BaseModel):
    """Prompt-facing description of a fine-tuning goal."""

    model_config = {"frozen": True}

    goal: FineTuningGoal
    name: str
    description: str
    prompt_focus: str


FINE_TUNING_GOALS: dict[FineTuningGoal, FineTuningGoalConfig] = {
    FineTuningGoal.TOPIC: FineTuningGoalConfig(
        goal=FineTuningGoal.TOPIC,
        name="Topic/Theme Focus",
        description="Generate Q&A pairs focused on the main topics and themes within the content",
        prompt_focus="topic and theme understanding",
    ),
    FineTuningGoal.KNOWLEDGE: FineTuningGoalConfig(
        goal=FineTuningGoal.KNOWLEDGE,
        name="Knowledge Base",
        description="Create comprehensive Q&A pairs for business knowledge bases and factual content",
        prompt_focus="factual knowledge and information retrieval",
    ),
    FineTuningGoal.STYLE: FineTuningGoalConfig(
        goal=FineTuningGoal.STYLE,
        name="Writing/Communication Style",
        description="Focus on mimicking the writing style, tone, and communication patterns",
        prompt_focus="writing style, tone, and communication patterns",
    ),
}


class SourceDocument(BaseModel):
    """A raw input source handed to the content cleaner.

    Attributes:
        kind: ``file`` or ``url``.
        name: File name or URL, used in messages.
        content: Text, or base64 data when ``is_binary`` is set.
        mime_type: MIME type of the content.
        is_binary: Whether ``content`` holds base64-encoded bytes.

    Example:
        >>> source = SourceDocument(kind="file", name="notes.txt", content="Paris is ...")
    """

    model_config = {"frozen": True}

    kind: Literal["file", "url"] = Field(default="file", description="Source kind")
    name: str = Field(..., description="File name or URL")
    content: str = Field(default="", description="Text content, or base64 payload for binaries")
    mime_type: str = Field(default="text/plain", description="MIME type of the content")
    is_binary: bool = Field(default=False, description="Whether content is base64-encoded bytes")


class QAPair(BaseModel):
    """A question/answer pair of the dataset.

    The question and answer are stripped and never empty. Confidence is
    always populated: a missing value defaults to 0.9 for correct answers
    and 0.2 for incorrect ones.

    Attributes:
        question: The user turn.
        answer: The model turn.
        is_correct: Whether the answer is factually correct.
        confidence: Confidence in [0, 1].
        provenance: Original or Synthetic.
        validation: Cross-validation status (synthetic pairs only).
        target_gap: Id of the gap a synthetic pair addresses.
        generation_reasoning: Why the generator produced this pair.
        validation_reasoning: Validator explanation, when validated.

    Example:
        >>> pair = QAPair(question="What is the capital of France?", answer="Paris.", is_correct=True)
        >>> pair.confidence
        0.9
    """

    model_config = {"frozen": True}

    question: str = Field(..., description="The user turn")
    answer: str = Field(..., description="The model turn")
    is_correct: bool = Field(default=True, description="Whether the answer is correct")
    confidence: float = Field(default=DEFAULT_CORRECT_CONFIDENCE, ge=0.0, le=1.0)
    provenance: Provenance = Field(default=Provenance.ORIGINAL)
    validation: ValidationStatus | None = Field(default=None)
    target_gap: str | None = Field(default=None)
    generation_reasoning: str | None = Field(default=None)
    validation_reasoning: str | None = Field(default=None)

    @field_validator("question", "answer")
    @classmethod
    def _strip_non_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            msg = "must not be empty"
            raise ValueError(msg)
        return value

    @model_validator(mode="before")
    @classmethod
    def _default_confidence(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("confidence") is None:
            is_correct = data.get("is_correct", True) is not False
            default = DEFAULT_CORRECT_CONFIDENCE if is_correct else DEFAULT_INCORRECT_CONFIDENCE
            data = {**data, "confidence": default}
        return data


class KnowledgeGap(BaseModel):
    """A knowledge area under-represented in the generated pairs."""

    model_config = {"frozen": True}

    id: str = Field(..., description="Unique identifier within a run")
    description: str = Field(..., description="What is missing")
    theme: str = Field(default="", description="Theme the gap belongs to")
    priority: GapPriority = Field(default=GapPriority.MEDIUM)
    suggested_question_types: list[str] = Field(default_factory=list)
    related_concepts: list[str] = Field(default_factory=list)


class ValidationResult(BaseModel):
    """Outcome of cross-validating one synthetic pair.

    Attributes:
        is_valid: Validator verdict.
        confidence: Validator confidence in [0, 1].
        reasoning: Validator explanation.
        factual_accuracy: Optional factual accuracy score in [0, 1].
        relevance_score: Optional relevance score in [0, 1].
        suggested_correction: Optional corrected answer.
    """

    model_config = {"frozen": True}

    is_valid: bool
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str = ""
    factual_accuracy: float | None = Field(default=None, ge=0.0, le=1.0)
    relevance_score: float | None = Field(default=None, ge=0.0, le=1.0)
    suggested_correction: str | None = None

    def accepts(self, threshold: float) -> bool:
        """Whether the pair is kept: valid and confident enough."""
        return self.is_valid and self.confidence >= threshold


class DatasetStatistics(BaseModel):
    """Counts computed once at the end of a run."""

    total_pairs: int = 0
    original_pairs: int = 0
    synthetic_pairs: int = 0
    correct_answers: int = 0
    incorrect_answers: int = 0
    validated_pairs: int = 0
    rejected_pairs: int = 0
    failed_validations: int = 0
    gaps_identified: int = 0
    gaps_addressed: int = 0
    failed_gaps: list[str] = Field(default_factory=list)
    token_usage: TokenUsage = Field(default_factory=TokenUsage)

    @property
    def incorrect_ratio(self) -> float:
        """Share of incorrect answers among all pairs."""
        if self.total_pairs == 0:
            return 0.0
        return self.incorrect_answers / self.total_pairs


class ProcessedData(BaseModel):
    """Final result of a pipeline run.

    Attributes:
        combined_text: Cleaned, combined (and possibly augmented) content.
        themes: Identified themes.
        qa_pairs: Final pairs: originals plus validated synthetic pairs.
        source_count: Number of sources that yielded usable text.
        goal: Fine-tuning goal used for prompting.
        web_augmented: Whether web augmentation was applied.
        grounding: Web sources cited during augmentation.
        gap_filling_enabled: Whether gap filling was requested.
        knowledge_gaps: Gaps identified during the run.
        synthetic_pairs: All synthetic pairs, with their validation status.
        statistics: Aggregate counts.
        warnings: Human-readable warnings from degraded stages.
    """

    combined_text: str
    themes: list[str] = Field(default_factory=list)
    qa_pairs: list[QAPair] = Field(default_factory=list)
    source_count: int = 0
    goal: FineTuningGoal = FineTuningGoal.KNOWLEDGE
    web_augmented: bool = False
    grounding: GroundingMetadata | None = None
    gap_filling_enabled: bool = False
    knowledge_gaps: list[KnowledgeGap] = Field(default_factory=list)
    synthetic_pairs: list[QAPair] = Field(default_factory=list)
    statistics: DatasetStatistics = Field(default_factory=DatasetStatistics)
    warnings: list[str] = Field(default_factory=list)

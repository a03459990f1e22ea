"""Unit tests for core types module (QAPair, KnowledgeGap, ValidationResult, etc.)."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from fine_format.core.types import (
    FINE_TUNING_GOALS,
    DatasetStatistics,
    FineTuningGoal,
    GapPriority,
    KnowledgeGap,
    ProcessedData,
    Provenance,
    QAPair,
    SourceDocument,
    ValidationResult,
)

# =============================================================================
# QAPair
# =============================================================================


class TestQAPair:
    """Tests for QAPair model."""

    def test_defaults(self) -> None:
        """A pair is original, correct and confident by default."""
        pair = QAPair(question="What is the capital of France?", answer="Paris.")

        assert pair.is_correct is True
        assert pair.confidence == 0.9
        assert pair.provenance is Provenance.ORIGINAL
        assert pair.validation is None

    def test_incorrect_pair_default_confidence(self) -> None:
        """A missing confidence on an incorrect pair defaults to 0.2."""
        pair = QAPair(question="Capital of France?", answer="Lyon.", is_correct=False)

        assert pair.confidence == 0.2

    def test_explicit_none_confidence(self) -> None:
        """An explicit None confidence is replaced by the default."""
        pair = QAPair(question="Q?", answer="A.", is_correct=True, confidence=None)

        assert pair.confidence == 0.9

    def test_explicit_confidence_kept(self) -> None:
        """A given confidence is kept."""
        pair = QAPair(question="Q?", answer="A.", confidence=0.55)

        assert pair.confidence == 0.55

    def test_confidence_out_of_range(self) -> None:
        """Confidence must be within [0, 1]."""
        with pytest.raises(ValidationError):
            QAPair(question="Q?", answer="A.", confidence=1.2)

    def test_question_and_answer_stripped(self) -> None:
        """Surrounding whitespace is removed."""
        pair = QAPair(question="  Q?  ", answer="\nA.\n")

        assert pair.question == "Q?"
        assert pair.answer == "A."

    def test_empty_answer_rejected(self) -> None:
        """Blank question or answer is invalid."""
        with pytest.raises(ValidationError):
            QAPair(question="Q?", answer="   ")

    def test_pair_is_frozen(self) -> None:
        """QAPair should be immutable."""
        pair = QAPair(question="Q?", answer="A.")
        with pytest.raises(ValidationError):
            pair.answer = "changed"  # type: ignore[misc]


# =============================================================================
# KnowledgeGap / ValidationResult
# =============================================================================


class TestKnowledgeGap:
    """Tests for KnowledgeGap model."""

    def test_defaults(self) -> None:
        """Priority defaults to medium and lists to empty."""
        gap = KnowledgeGap(id="gap_1", description="Refund process")

        assert gap.priority is GapPriority.MEDIUM
        assert gap.related_concepts == []

    def test_invalid_priority(self) -> None:
        """Unknown priorities are rejected."""
        with pytest.raises(ValidationError):
            KnowledgeGap(id="gap_1", description="Refunds", priority="urgent")


class TestValidationResult:
    """Tests for ValidationResult."""

    @pytest.mark.parametrize(
        ("is_valid", "confidence", "accepted"),
        [
            (True, 0.9, True),
            (True, 0.7, True),
            (True, 0.65, False),
            (False, 0.95, False),
        ],
    )
    def test_accepts(self, is_valid: bool, confidence: float, accepted: bool) -> None:
        """A pair is accepted when valid and at or above the threshold."""
        result = ValidationResult(is_valid=is_valid, confidence=confidence)

        assert result.accepts(0.7) is accepted


# =============================================================================
# Statistics and results
# =============================================================================


class TestDatasetStatistics:
    """Tests for DatasetStatistics."""

    def test_incorrect_ratio(self) -> None:
        """The ratio is computed over all pairs."""
        stats = DatasetStatistics(total_pairs=50, incorrect_answers=4)

        assert stats.incorrect_ratio == 0.08

    def test_incorrect_ratio_empty(self) -> None:
        """An empty dataset has a zero ratio."""
        assert DatasetStatistics().incorrect_ratio == 0.0


class TestGoalsAndSources:
    """Tests for goals, sources and results."""

    def test_every_goal_configured(self) -> None:
        """Each fine-tuning goal has a prompt description."""
        assert set(FINE_TUNING_GOALS) == set(FineTuningGoal)
        assert FINE_TUNING_GOALS[FineTuningGoal.STYLE].prompt_focus

    def test_source_defaults(self) -> None:
        """Sources default to plain text files."""
        source = SourceDocument(name="notes.txt", content="hello")

        assert source.kind == "file"
        assert source.is_binary is False
        assert source.mime_type == "text/plain"

    def test_processed_data_json_round_trip(self) -> None:
        """ProcessedData serializes with enum values."""
        data = ProcessedData(
            combined_text="text",
            qa_pairs=[QAPair(question="Q?", answer="A.")],
            goal=FineTuningGoal.TOPIC,
        )

        restored = ProcessedData.model_validate_json(data.model_dump_json())

        assert restored == data
        assert '"goal":"topic"' in data.model_dump_json()

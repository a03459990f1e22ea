"""Unit tests for dataset save/load."""

from __future__ import annotations

from pathlib import Path

import pytest

from fine_format.core.types import (
    DatasetStatistics,
    KnowledgeGap,
    ProcessedData,
    Provenance,
    QAPair,
    ValidationStatus,
)
from fine_format.generators.io import load_dataset, save_dataset


def sample_data() -> ProcessedData:
    synthetic = QAPair(
        question="What metal is the tower made of?",
        answer="Puddled iron.",
        provenance=Provenance.SYNTHETIC,
        validation=ValidationStatus.VALIDATED,
        target_gap="gap_1",
    )
    return ProcessedData(
        combined_text="The tower was completed in 1889.",
        themes=["History"],
        qa_pairs=[QAPair(question="When was it completed?", answer="1889."), synthetic],
        source_count=1,
        gap_filling_enabled=True,
        knowledge_gaps=[KnowledgeGap(id="gap_1", description="Materials")],
        synthetic_pairs=[synthetic],
        statistics=DatasetStatistics(total_pairs=2, original_pairs=1, synthetic_pairs=1),
    )


class TestSaveLoad:
    """Tests for save_dataset and load_dataset."""

    def test_save_and_load(self, tmp_path: Path) -> None:
        """A saved dataset loads back unchanged."""
        path = tmp_path / "out" / "dataset.json"
        data = sample_data()

        save_dataset(data, path)

        assert path.exists()
        assert load_dataset(path) == data

    def test_saved_file_uses_enum_values(self, tmp_path: Path) -> None:
        """The file holds plain JSON values."""
        path = tmp_path / "dataset.json"

        save_dataset(sample_data(), str(path))

        content = path.read_text(encoding="utf-8")
        assert '"provenance": "synthetic"' in content
        assert '"validation": "validated"' in content

    def test_load_missing_file(self, tmp_path: Path) -> None:
        """Loading a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError, match="Dataset file not found"):
            load_dataset(tmp_path / "missing.json")

    def test_load_invalid_json(self, tmp_path: Path) -> None:
        """Malformed JSON raises ValueError."""
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ValueError, match="Invalid dataset file"):
            load_dataset(path)

    def test_load_wrong_shape(self, tmp_path: Path) -> None:
        """JSON of the wrong shape raises ValueError."""
        path = tmp_path / "wrong.json"
        path.write_text('{"qa_pairs": "nope"}', encoding="utf-8")

        with pytest.raises(ValueError, match="Invalid dataset file"):
            load_dataset(path)

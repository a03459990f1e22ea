"""I/O utilities for generated datasets.

This module provides functions for saving and loading pipeline results.
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import ValidationError

from fine_format.core.types import ProcessedData


def save_dataset(data: ProcessedData, path: Path | str) -> None:
    """Save a pipeline result to a JSON file.

    Args:
        data: The result to save.
        path: Output file path.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(data.model_dump_json(indent=2), encoding="utf-8")


def load_dataset(path: Path | str) -> ProcessedData:
    """Load a pipeline result from a JSON file.

    Args:
        path: Input file path.

    Returns:
        Loaded ProcessedData.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the file format is invalid.
    """
    path = Path(path)
    if not path.exists():
        msg = f"Dataset file not found: {path}"
        raise FileNotFoundError(msg)

    try:
        return ProcessedData.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (json.JSONDecodeError, ValidationError) as e:
        msg = f"Invalid dataset file {path}: {e}"
        raise ValueError(msg) from e

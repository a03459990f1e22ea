"""Generators module for fine-format.

This module provides the generation stages of the pipeline: theme
identification, Q&A generation, knowledge gap analysis, synthetic
generation and cross-validation, plus the recovery parser they share.
"""

from __future__ import annotations

from fine_format.generators.gaps import GapAnalyzer
from fine_format.generators.io import load_dataset, save_dataset
from fine_format.generators.models import GenerationConfig
from fine_format.generators.parsing import FieldSpec, RecordShape, RecoveryParser, parse_records, parse_string_list
from fine_format.generators.qa import QAGenerator
from fine_format.generators.synthetic import SyntheticGenerator
from fine_format.generators.themes import augment_with_web_search, identify_themes
from fine_format.generators.validators import SyntheticPairValidator

__all__ = [
    "FieldSpec",
    "GapAnalyzer",
    "GenerationConfig",
    "QAGenerator",
    "RecordShape",
    "RecoveryParser",
    "SyntheticGenerator",
    "SyntheticPairValidator",
    "augment_with_web_search",
    "identify_themes",
    "load_dataset",
    "parse_records",
    "parse_string_list",
    "save_dataset",
]

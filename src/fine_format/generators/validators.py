"""Cross-validation of synthetic pairs.

A condensed validation context is built once per run, then each synthetic
pair is checked against it by its own provider call.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fine_format.adapters.llm.types import Message, SamplingParams
from fine_format.adapters.registry import Task
from fine_format.core.types import QAPair, ValidationResult, ValidationStatus
from fine_format.generators.models import VALIDATION_CONTEXT_FALLBACK_CHARS
from fine_format.generators.parsing import FieldSpec, RecordShape, parse_records
from fine_format.generators.prompts import (
    SYSTEM_PROMPT,
    VALIDATION_CONTEXT_PROMPT,
    VALIDATION_PROMPT,
    format_gaps,
    format_questions,
    format_themes,
)

if TYPE_CHECKING:
    from fine_format.core.protocols import LLMSessionProtocol
    from fine_format.core.types import KnowledgeGap

logger = logging.getLogger(__name__)

# Source content sent to the context builder
CONTEXT_CONTENT_CHARS = 12000

VALIDATION_RECORD_SHAPE = RecordShape(
    fields=(
        FieldSpec("isValid", kind="boolean", aliases=("is_valid", "valid")),
        FieldSpec("confidence", kind="number"),
        FieldSpec("reasoning", aliases=("explanation",), required=False),
        FieldSpec("factualAccuracy", kind="number", aliases=("factual_accuracy",), required=False),
        FieldSpec("relevanceScore", kind="number", aliases=("relevance_score", "relevance"), required=False),
        FieldSpec("suggestedCorrection", aliases=("suggested_correction",), required=False),
    )
)


def _clamp(value: float | None) -> float | None:
    if value is None:
        return None
    return min(1.0, max(0.0, value))


def record_to_result(record: dict[str, Any]) -> ValidationResult:
    """Build a ValidationResult from a recovered record, clamping scores."""
    return ValidationResult(
        is_valid=record["isValid"],
        confidence=_clamp(record["confidence"]),
        reasoning=record.get("reasoning", ""),
        factual_accuracy=_clamp(record.get("factualAccuracy")),
        relevance_score=_clamp(record.get("relevanceScore")),
        suggested_correction=record.get("suggestedCorrection"),
    )


def fallback_context(content: str) -> str:
    """Validation context used when the context build fails."""
    return content[:VALIDATION_CONTEXT_FALLBACK_CHARS]


def apply_validation(pair: QAPair, result: ValidationResult, threshold: float) -> QAPair:
    """Return the pair marked Validated or Rejected.

    Example:
        >>> result = ValidationResult(is_valid=True, confidence=0.65)
        >>> apply_validation(pair, result, threshold=0.7).validation
        <ValidationStatus.REJECTED: 'rejected'>
    """
    status = ValidationStatus.VALIDATED if result.accepts(threshold) else ValidationStatus.REJECTED
    return pair.model_copy(update={"validation": status, "validation_reasoning": result.reasoning or None})


class SyntheticPairValidator:
    """Validates synthetic pairs against a condensed reference.

    Attributes:
        session: Provider session.
    """

    def __init__(self, session: LLMSessionProtocol) -> None:
        self.session = session

    async def build_context(
        self,
        content: str,
        themes: list[str],
        original_pairs: list[QAPair],
        gaps: list[KnowledgeGap],
        synthetic_pairs: list[QAPair],
    ) -> str:
        """Condense content, pairs and gaps into a validation context.

        Raises:
            ProviderCallError: If the provider call failed on every key.
            ValueError: If the provider returned a blank text.
        """
        incorrect = sum(1 for pair in original_pairs if not pair.is_correct)
        summary = f"{len(original_pairs)} original pairs ({incorrect} intentionally incorrect)"
        prompt = VALIDATION_CONTEXT_PROMPT.format(
            themes=format_themes(themes),
            dataset_summary=summary,
            gaps=format_gaps(gaps),
            questions=format_questions([pair.question for pair in synthetic_pairs], limit=30),
            content=content[:CONTEXT_CONTENT_CHARS],
        )
        response = await self.session.complete(
            Task.VALIDATION_CONTEXT,
            [Message(role="user", content=prompt)],
            sampling=SamplingParams(temperature=0.2, max_tokens=4000),
        )

        context = response.text.strip()
        if not context:
            msg = "Validation context build returned no content"
            raise ValueError(msg)
        logger.info(f"Validation context built ({len(context)} chars)")
        return context

    async def validate(self, pair: QAPair, context: str) -> ValidationResult:
        """Validate one pair.

        Raises:
            ProviderCallError: If the provider call failed on every key.
            ParseError: If the verdict could not be recovered.
        """
        prompt = VALIDATION_PROMPT.format(
            context=context,
            question=pair.question,
            answer=pair.answer,
            label="correct" if pair.is_correct else "incorrect",
        )
        response = await self.session.complete(
            Task.VALIDATE,
            [Message(role="system", content=SYSTEM_PROMPT), Message(role="user", content=prompt)],
            sampling=SamplingParams(temperature=0.2, max_tokens=1000),
        )
        return record_to_result(parse_records(response.text, VALIDATION_RECORD_SHAPE)[0])

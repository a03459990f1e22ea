"""Q&A pair generation from the original content.

This module turns the combined content into the dataset's original
Q&A pairs, and holds the record-to-pair conversion shared with the
synthetic generator.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from fine_format.adapters.llm.types import Message, SamplingParams
from fine_format.adapters.registry import Task
from fine_format.core.exceptions import ParseError
from fine_format.core.types import Provenance, QAPair, ValidationStatus
from fine_format.generators.parsing import FieldSpec, RecordShape, parse_records
from fine_format.generators.prompts import QA_GENERATION_PROMPT, SYSTEM_PROMPT, format_themes, goal_fields

if TYPE_CHECKING:
    from fine_format.core.protocols import LLMSessionProtocol
    from fine_format.generators.models import GenerationConfig

logger = logging.getLogger(__name__)

# Output tokens budgeted per requested pair
TOKENS_PER_PAIR = 180
BASE_OUTPUT_TOKENS = 1000

QA_RECORD_SHAPE = RecordShape(
    fields=(
        FieldSpec("user", aliases=("question", "input", "prompt")),
        FieldSpec("model", aliases=("answer", "output", "response")),
        FieldSpec("isCorrect", kind="boolean", aliases=("is_correct", "correct"), required=False),
        FieldSpec("confidence", kind="number", required=False),
        FieldSpec("reasoning", aliases=("generationReasoning", "generation_reasoning"), required=False),
    )
)


def output_budget(pair_count: int, cap: int = 20000) -> int:
    """Max output tokens requested for ``pair_count`` pairs."""
    return min(cap, BASE_OUTPUT_TOKENS + pair_count * TOKENS_PER_PAIR)


def record_to_pair(
    record: dict[str, Any],
    *,
    provenance: Provenance = Provenance.ORIGINAL,
    target_gap: str | None = None,
) -> QAPair | None:
    """Convert a recovered record into a QAPair.

    Confidence is clamped to [0, 1]; a missing one gets the default for
    the label. Records that still do not form a valid pair are dropped.

    Args:
        record: A record validated by QA_RECORD_SHAPE.
        provenance: Original or Synthetic.
        target_gap: Gap id for synthetic pairs.

    Returns:
        The pair, or None when the record is unusable.
    """
    confidence = record.get("confidence")
    if confidence is not None:
        confidence = min(1.0, max(0.0, float(confidence)))

    synthetic = provenance is Provenance.SYNTHETIC
    try:
        return QAPair(
            question=record["user"],
            answer=record["model"],
            is_correct=record.get("isCorrect", True),
            confidence=confidence,
            provenance=provenance,
            validation=ValidationStatus.PENDING if synthetic else None,
            target_gap=target_gap,
            generation_reasoning=record.get("reasoning") if synthetic else None,
        )
    except ValidationError as e:
        logger.debug(f"Dropping invalid record: {e.errors()[0]['msg']}")
        return None


def records_to_pairs(
    records: list[dict[str, Any]],
    text: str,
    *,
    provenance: Provenance = Provenance.ORIGINAL,
    target_gap: str | None = None,
) -> list[QAPair]:
    """Convert records into pairs, failing when none survives.

    Raises:
        ParseError: If no record forms a valid pair.
    """
    pairs = [
        pair
        for pair in (record_to_pair(r, provenance=provenance, target_gap=target_gap) for r in records)
        if pair is not None
    ]
    if not pairs:
        msg = "No valid Q&A pairs in the response"
        raise ParseError(msg, text=text)
    return pairs


class QAGenerator:
    """Generates the original Q&A pairs from combined content.

    The correct/incorrect ratio is requested in the prompt; the result is
    not re-balanced when the provider deviates from it.

    Attributes:
        session: Provider session.
        config: Run configuration.
        max_output_tokens: Upper bound for the output budget.

    Example:
        >>> generator = QAGenerator(session, GenerationConfig())
        >>> pairs = await generator.generate(content, themes=["Billing"])
    """

    def __init__(
        self,
        session: LLMSessionProtocol,
        config: GenerationConfig,
        max_output_tokens: int = 20000,
    ) -> None:
        self.session = session
        self.config = config
        self.max_output_tokens = max_output_tokens

    async def generate(self, content: str, themes: list[str] | None = None) -> list[QAPair]:
        """Generate Q&A pairs.

        Args:
            content: Combined content.
            themes: Identified themes, if any.

        Returns:
            Non-empty list of original pairs.

        Raises:
            ProviderCallError: If the provider call failed on every key.
            ParseError: If no pair could be recovered.
        """
        target = self.config.qa_pair_target
        incorrect = self.config.incorrect_target(target)
        prompt = QA_GENERATION_PROMPT.format(
            num_pairs=target,
            num_correct=target - incorrect,
            num_incorrect=incorrect,
            themes=format_themes(themes or []),
            content=content,
            **goal_fields(self.config.goal_config),
        )

        response = await self.session.complete(
            Task.QA,
            [Message(role="system", content=SYSTEM_PROMPT), Message(role="user", content=prompt)],
            sampling=SamplingParams(temperature=0.7, max_tokens=output_budget(target, self.max_output_tokens)),
        )
        if response.truncated:
            logger.warning("Q&A response was truncated, recovering the complete pairs")

        pairs = records_to_pairs(parse_records(response.text, QA_RECORD_SHAPE), response.text)
        wrong = sum(1 for pair in pairs if not pair.is_correct)
        logger.info(f"Generated {len(pairs)}/{target} Q&A pair(s), {wrong} incorrect")
        return pairs

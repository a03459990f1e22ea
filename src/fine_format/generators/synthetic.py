"""Synthetic Q&A generation for knowledge gaps.

Each gap is handled by its own provider call so that a failure on one
gap leaves the others untouched. The pipeline drives the per-gap loop.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fine_format.adapters.llm.types import Message, SamplingParams
from fine_format.adapters.registry import Task
from fine_format.core.types import Provenance
from fine_format.generators.parsing import parse_records
from fine_format.generators.prompts import SYNTHETIC_GENERATION_PROMPT, SYSTEM_PROMPT, goal_fields
from fine_format.generators.qa import QA_RECORD_SHAPE, output_budget, records_to_pairs

if TYPE_CHECKING:
    from fine_format.core.protocols import LLMSessionProtocol
    from fine_format.core.types import KnowledgeGap, QAPair
    from fine_format.generators.models import GenerationConfig

logger = logging.getLogger(__name__)

# Reference content sent with each gap
SYNTHETIC_CONTENT_CHARS = 4000


class SyntheticGenerator:
    """Generates synthetic pairs addressing one knowledge gap at a time.

    Every pair records the gap it targets and the generator's reasoning,
    and starts with a Pending validation status.

    Attributes:
        session: Provider session.
        config: Run configuration.

    Example:
        >>> generator = SyntheticGenerator(session, config)
        >>> per_gap = config.pairs_per_gap(len(gaps))
        >>> pairs = await generator.generate_for_gap(gaps[0], content, per_gap)
    """

    def __init__(self, session: LLMSessionProtocol, config: GenerationConfig) -> None:
        self.session = session
        self.config = config

    async def generate_for_gap(self, gap: KnowledgeGap, content: str, num_pairs: int) -> list[QAPair]:
        """Generate synthetic pairs for one gap.

        Args:
            gap: The gap to address.
            content: Combined content used as reference.
            num_pairs: Pairs requested.

        Returns:
            Non-empty list of synthetic pairs.

        Raises:
            ProviderCallError: If the provider call failed on every key.
            ParseError: If no pair could be recovered.
        """
        num_incorrect = self.config.incorrect_per_gap(num_pairs)
        prompt = SYNTHETIC_GENERATION_PROMPT.format(
            num_pairs=num_pairs,
            num_incorrect=num_incorrect,
            gap_description=gap.description,
            gap_theme=gap.theme or "general",
            gap_priority=gap.priority.value,
            gap_question_types=", ".join(gap.suggested_question_types) or "any",
            gap_concepts=", ".join(gap.related_concepts) or "none listed",
            content=content[:SYNTHETIC_CONTENT_CHARS],
            **goal_fields(self.config.goal_config),
        )

        response = await self.session.complete(
            Task.SYNTHETIC,
            [Message(role="system", content=SYSTEM_PROMPT), Message(role="user", content=prompt)],
            sampling=SamplingParams(temperature=0.8, max_tokens=output_budget(num_pairs)),
        )

        pairs = records_to_pairs(
            parse_records(response.text, QA_RECORD_SHAPE),
            response.text,
            provenance=Provenance.SYNTHETIC,
            target_gap=gap.id,
        )
        logger.info(f"Generated {len(pairs)}/{num_pairs} synthetic pair(s) for {gap.id}")
        return pairs

"""Knowledge gap analysis.

Compares the generated questions against the source content and proposes
a bounded list of under-represented knowledge areas.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fine_format.adapters.llm.types import Message, SamplingParams
from fine_format.adapters.registry import Task
from fine_format.core.exceptions import ParseError
from fine_format.core.types import GapPriority, KnowledgeGap
from fine_format.generators.parsing import FieldSpec, RecordShape, parse_records
from fine_format.generators.prompts import (
    GAP_ANALYSIS_PROMPT,
    SYSTEM_PROMPT,
    format_questions,
    format_themes,
    goal_fields,
)

if TYPE_CHECKING:
    from fine_format.core.protocols import LLMSessionProtocol
    from fine_format.core.types import QAPair
    from fine_format.generators.models import GenerationConfig

logger = logging.getLogger(__name__)

# Source content sent to gap analysis
GAP_CONTENT_CHARS = 6000

GAP_RECORD_SHAPE = RecordShape(
    fields=(
        FieldSpec("description", aliases=("gap", "topic", "title")),
        FieldSpec("id", aliases=("gapId", "gap_id"), required=False),
        FieldSpec("theme", aliases=("category",), required=False),
        FieldSpec("priority", required=False),
        FieldSpec(
            "suggestedQuestionTypes",
            kind="array",
            aliases=("suggested_question_types", "questionTypes", "suggestedQuestions"),
            required=False,
        ),
        FieldSpec("relatedConcepts", kind="array", aliases=("related_concepts", "concepts"), required=False),
    )
)


def records_to_gaps(records: list[dict[str, Any]], max_gaps: int) -> list[KnowledgeGap]:
    """Convert recovered records into gaps.

    Records with an unknown priority are dropped; a missing priority means
    medium. Missing or duplicate ids are replaced with ``gap_<n>``.

    Example:
        >>> gaps = records_to_gaps([{"description": "Refunds"}, {"description": "Taxes", "id": "x"}], 10)
        >>> [gap.id for gap in gaps]
        ['gap_1', 'x']
    """
    gaps: list[KnowledgeGap] = []
    seen_ids: set[str] = set()

    for record in records:
        if len(gaps) >= max_gaps:
            break

        raw_priority = str(record.get("priority", GapPriority.MEDIUM.value)).strip().lower()
        try:
            priority = GapPriority(raw_priority)
        except ValueError:
            logger.debug(f"Dropping gap with invalid priority '{raw_priority}'")
            continue

        gap_id = record.get("id")
        if not gap_id or gap_id in seen_ids:
            gap_id = f"gap_{len(gaps) + 1}"
            while gap_id in seen_ids:
                gap_id = f"{gap_id}_"
        seen_ids.add(gap_id)

        gaps.append(
            KnowledgeGap(
                id=gap_id,
                description=record["description"],
                theme=record.get("theme", ""),
                priority=priority,
                suggested_question_types=record.get("suggestedQuestionTypes", []),
                related_concepts=record.get("relatedConcepts", []),
            )
        )
    return gaps


class GapAnalyzer:
    """Identifies knowledge gaps in the generated pairs.

    Attributes:
        session: Provider session.
        config: Run configuration.
    """

    def __init__(self, session: LLMSessionProtocol, config: GenerationConfig) -> None:
        self.session = session
        self.config = config

    async def analyze(self, content: str, pairs: list[QAPair], themes: list[str]) -> list[KnowledgeGap]:
        """Identify knowledge gaps.

        Args:
            content: Combined content.
            pairs: Original pairs generated so far.
            themes: Identified themes.

        Returns:
            At most ``max_knowledge_gaps`` gaps (possibly none).

        Raises:
            ProviderCallError: If the provider call failed on every key.
            ParseError: If no gap could be recovered.
        """
        prompt = GAP_ANALYSIS_PROMPT.format(
            max_gaps=self.config.max_knowledge_gaps,
            themes=format_themes(themes),
            questions=format_questions([pair.question for pair in pairs]),
            content=content[:GAP_CONTENT_CHARS],
            **goal_fields(self.config.goal_config),
        )
        response = await self.session.complete(
            Task.GAPS,
            [Message(role="system", content=SYSTEM_PROMPT), Message(role="user", content=prompt)],
            sampling=SamplingParams(temperature=0.5, max_tokens=3000),
        )

        gaps = records_to_gaps(parse_records(response.text, GAP_RECORD_SHAPE), self.config.max_knowledge_gaps)
        if not gaps:
            msg = "No valid knowledge gaps in the response"
            raise ParseError(msg, text=response.text)

        logger.info(f"Identified {len(gaps)} knowledge gap(s)")
        return gaps

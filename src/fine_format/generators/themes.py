"""Theme identification and web augmentation.

Both steps enrich the content before Q&A generation. Neither is required
downstream, so the pipeline degrades when they fail.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from fine_format.adapters.llm.gemini import GOOGLE_SEARCH_TOOL
from fine_format.adapters.llm.types import Message, SamplingParams
from fine_format.adapters.registry import Task
from fine_format.generators.parsing import parse_string_list
from fine_format.generators.prompts import (
    SYSTEM_PROMPT,
    THEME_IDENTIFICATION_PROMPT,
    WEB_AUGMENTATION_PROMPT,
    format_themes,
    goal_fields,
)

if TYPE_CHECKING:
    from fine_format.adapters.llm.types import GroundingMetadata
    from fine_format.core.protocols import LLMSessionProtocol
    from fine_format.core.types import FineTuningGoalConfig

logger = logging.getLogger(__name__)

# Themes kept from a response
MAX_THEMES = 10

# Content sent to theme identification
THEME_CONTENT_CHARS = 12000


@dataclass(frozen=True)
class AugmentationResult:
    """Web-augmented content.

    Attributes:
        text: Augmented content.
        grounding: Web sources and queries reported by the provider.
    """

    text: str
    grounding: GroundingMetadata | None = None


async def identify_themes(
    session: LLMSessionProtocol,
    content: str,
    goal: FineTuningGoalConfig,
) -> list[str]:
    """Identify the key themes of the content.

    Args:
        session: Provider session.
        content: Combined content.
        goal: Fine-tuning goal.

    Returns:
        Deduplicated themes, at most MAX_THEMES.

    Raises:
        ProviderCallError: If the provider call failed on every key.
        ParseError: If no theme could be recovered from the response.
    """
    prompt = THEME_IDENTIFICATION_PROMPT.format(content=content[:THEME_CONTENT_CHARS], **goal_fields(goal))
    response = await session.complete(
        Task.THEMES,
        [Message(role="system", content=SYSTEM_PROMPT), Message(role="user", content=prompt)],
        sampling=SamplingParams(temperature=0.3, max_tokens=1000),
    )

    themes: list[str] = []
    for theme in parse_string_list(response.text):
        if theme.lower() not in {t.lower() for t in themes}:
            themes.append(theme)

    logger.info(f"Identified {len(themes[:MAX_THEMES])} theme(s)")
    return themes[:MAX_THEMES]


async def augment_with_web_search(
    session: LLMSessionProtocol,
    content: str,
    themes: list[str],
    goal: FineTuningGoalConfig,
) -> AugmentationResult:
    """Enrich the content with web search results.

    Args:
        session: Provider session.
        content: Combined content.
        themes: Identified themes.
        goal: Fine-tuning goal.

    Returns:
        The augmented content and its grounding metadata.

    Raises:
        ProviderCallError: If the provider call failed on every key.
        ValueError: If the provider returned a blank text.
    """
    prompt = WEB_AUGMENTATION_PROMPT.format(
        content=content,
        themes=format_themes(themes),
        **goal_fields(goal),
    )
    response = await session.complete(
        Task.AUGMENT,
        [Message(role="user", content=prompt)],
        sampling=SamplingParams(temperature=0.5, max_tokens=8000),
        tools=[GOOGLE_SEARCH_TOOL],
    )

    text = response.text.strip()
    if not text:
        msg = "Web augmentation returned no content"
        raise ValueError(msg)

    sources = len(response.grounding_metadata.sources) if response.grounding_metadata else 0
    logger.info(f"Content augmented with web search ({sources} source(s))")
    return AugmentationResult(text=text, grounding=response.grounding_metadata)

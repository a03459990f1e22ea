"""Content cleaning adapters.

Two implementations of ContentCleanerProtocol:

- PlainTextCleaner: offline, strips markup and normalizes whitespace.
- LLMContentCleaner: cleans each source through the primary provider,
  sending binary documents as inline data.
"""

from __future__ import annotations

import html
import logging
import re
from typing import TYPE_CHECKING

from fine_format.adapters.llm.types import InlineData, Message, SamplingParams
from fine_format.adapters.registry import Task
from fine_format.core.exceptions import ProviderCallError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fine_format.core.protocols import LLMSessionProtocol
    from fine_format.core.types import SourceDocument

logger = logging.getLogger(__name__)

_SCRIPT_PATTERN = re.compile(r"<(script|style|noscript)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_COMMENT_PATTERN = re.compile(r"<!--.*?-->", re.DOTALL)
_BLOCK_TAG_PATTERN = re.compile(r"</?(p|div|br|li|tr|h[1-6]|section|article|header|footer)\b[^>]*>", re.IGNORECASE)
_TAG_PATTERN = re.compile(r"<[^>]+>")
_INLINE_SPACE_PATTERN = re.compile(r"[ \t\f\v]+")
_BLANK_LINES_PATTERN = re.compile(r"\n\s*\n+")

_CLEANING_MAX_TOKENS = 8000

CONTENT_CLEANING_PROMPT = """Extract the meaningful text content from the source "{name}".

Remove navigation menus, cookie banners, advertisements, page headers and footers, \
boilerplate and markup. Keep headings, paragraphs, lists and tables as plain text.
Do not summarize and do not add anything that is not in the source.

Source:
{content}

Return the cleaned plain text only."""

BINARY_CLEANING_PROMPT = """Extract all meaningful text content from the attached document "{name}".

Keep headings, paragraphs, lists and tables as plain text. Skip page numbers, \
running headers and footers. Do not summarize.

Return the extracted plain text only."""


def strip_markup(text: str) -> str:
    """Remove HTML markup and normalize whitespace.

    Example:
        >>> strip_markup("<p>Hello&nbsp;<b>world</b></p><script>x()</script>")
        'Hello world'
    """
    text = _SCRIPT_PATTERN.sub(" ", text)
    text = _COMMENT_PATTERN.sub(" ", text)
    text = _BLOCK_TAG_PATTERN.sub("\n", text)
    text = _TAG_PATTERN.sub(" ", text)
    text = html.unescape(text).replace("\xa0", " ")
    text = "\n".join(_INLINE_SPACE_PATTERN.sub(" ", line).strip() for line in text.splitlines())
    return _BLANK_LINES_PATTERN.sub("\n\n", text).strip()


class PlainTextCleaner:
    """Offline cleaner for text sources.

    Binary sources cannot be read without a provider and are skipped.

    Example:
        >>> cleaner = PlainTextCleaner()
        >>> await cleaner.clean([SourceDocument(name="a.html", content="<p>Hi</p>")])
        ['Hi']
    """

    async def clean(self, sources: Sequence[SourceDocument]) -> list[str]:
        texts: list[str] = []
        for source in sources:
            if source.is_binary:
                logger.warning(f"Skipping binary source '{source.name}': offline cleaning supports text only")
                continue
            text = strip_markup(source.content)
            if text:
                texts.append(text)
            else:
                logger.warning(f"Source '{source.name}' has no usable text")
        return texts


class LLMContentCleaner:
    """Cleans each source through the primary provider.

    A failure on one source is logged and the source skipped; the other
    sources are still cleaned.

    Attributes:
        session: Provider session.
    """

    def __init__(self, session: LLMSessionProtocol) -> None:
        self.session = session

    async def clean(self, sources: Sequence[SourceDocument]) -> list[str]:
        texts: list[str] = []
        for index, source in enumerate(sources, start=1):
            logger.info(f"Cleaning '{source.name}' ({index}/{len(sources)})")
            try:
                text = await self._clean_one(source)
            except ProviderCallError as e:
                logger.warning(f"Cleaning failed for '{source.name}': {e}")
                continue
            if text:
                texts.append(text)
            else:
                logger.warning(f"Source '{source.name}' has no usable text")
        return texts

    async def _clean_one(self, source: SourceDocument) -> str:
        if source.is_binary:
            message = Message(
                role="user",
                content=BINARY_CLEANING_PROMPT.format(name=source.name),
                attachments=(InlineData(mime_type=source.mime_type, data=source.content),),
            )
        else:
            content = strip_markup(source.content) if "<" in source.content else source.content
            message = Message(role="user", content=CONTENT_CLEANING_PROMPT.format(name=source.name, content=content))

        response = await self.session.complete(
            Task.CLEAN,
            [message],
            sampling=SamplingParams(temperature=0.1, max_tokens=_CLEANING_MAX_TOKENS),
        )
        return response.text.strip()

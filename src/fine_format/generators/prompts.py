"""Prompts for dataset generation.

This module contains the prompt templates used by the generation stages.
Templates use ``str.format`` placeholders; literal JSON braces are doubled.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fine_format.core.types import FineTuningGoalConfig, KnowledgeGap

# System instruction shared by every generation call
SYSTEM_PROMPT = """You are an expert dataset engineer building question/answer datasets \
for fine-tuning language models. You always answer with valid JSON when JSON is requested, \
without Markdown fences or commentary."""

# Prompt for identifying the main themes of the content
THEME_IDENTIFICATION_PROMPT = """Identify the key themes of the following content.

Fine-tuning goal: {goal_name} ({goal_focus})

Content:
{content}

Requirements:
- Between 3 and 8 themes
- Each theme is a short noun phrase (2-6 words)
- Themes must be relevant to the fine-tuning goal

Example output:
["Quarterly revenue reporting", "Customer onboarding process", "Data retention policy"]

Return a JSON array of strings only."""

# Prompt for enriching the content with web search results
WEB_AUGMENTATION_PROMPT = """Use web search to find current, authoritative information related \
to the following themes and integrate it into the content.

Themes: {themes}
Fine-tuning goal: {goal_name} ({goal_focus})

Original content:
{content}

Requirements:
- Keep all of the original content
- Add only information that is relevant to the themes and the goal
- Do not contradict the original content

Return the augmented content as plain text."""

# Prompt for generating the original Q&A pairs
QA_GENERATION_PROMPT = """Generate exactly {num_pairs} question/answer pairs from the content below.

Fine-tuning goal: {goal_name}
Goal description: {goal_description}
Focus on: {goal_focus}
Key themes: {themes}

Content:
{content}

Requirements:
- {num_correct} pairs with correct, complete answers grounded in the content
- {num_incorrect} pairs with plausible but factually incorrect answers, marked "isCorrect": false
- Vary question types: factual, conceptual, procedural, comparative
- Questions must be self-contained and unambiguous
- "confidence" is your confidence (0 to 1) that the label is right

Output format:
[
  {{"user": "question text", "model": "answer text", "isCorrect": true, "confidence": 0.95}}
]

Return a JSON array only, nothing else."""

# Prompt for identifying knowledge gaps
GAP_ANALYSIS_PROMPT = """Compare the generated questions with the source content and identify \
knowledge areas that are missing or under-represented.

Fine-tuning goal: {goal_name} ({goal_focus})
Key themes: {themes}

Generated questions:
{questions}

Source content:
{content}

Requirements:
- At most {max_gaps} gaps, most important first
- "priority" is one of "high", "medium", "low"
- "suggestedQuestionTypes" and "relatedConcepts" are arrays of short strings

Output format:
[
  {{"id": "gap_1", "description": "what is missing", "theme": "related theme", "priority": "high", \
"suggestedQuestionTypes": ["procedural"], "relatedConcepts": ["concept"]}}
]

Return a JSON array only, nothing else."""

# Prompt for generating synthetic pairs addressing one gap
SYNTHETIC_GENERATION_PROMPT = """Generate exactly {num_pairs} new question/answer pairs that fill \
the following knowledge gap.

Fine-tuning goal: {goal_name} ({goal_focus})

Gap: {gap_description}
Theme: {gap_theme}
Priority: {gap_priority}
Suggested question types: {gap_question_types}
Related concepts: {gap_concepts}

Reference content:
{content}

Requirements:
- {num_incorrect} of the pairs must have plausible but factually incorrect answers, marked "isCorrect": false
- All other answers must be correct and consistent with the reference content
- "reasoning" explains briefly how the pair addresses the gap

Output format:
[
  {{"user": "question text", "model": "answer text", "isCorrect": true, "confidence": 0.9, \
"reasoning": "why this pair fills the gap"}}
]

Return a JSON array only, nothing else."""

# Prompt for condensing the content into a validation reference
VALIDATION_CONTEXT_PROMPT = """Condense the source content into a compact reference that can be \
used to fact-check question/answer pairs.

Key themes: {themes}
Existing dataset: {dataset_summary}

Knowledge gaps being filled:
{gaps}

Sample of the synthetic questions to be checked:
{questions}

Source content:
{content}

Keep every fact, figure, definition and procedure needed to check the questions above. \
Return plain text only."""

# Prompt for validating one synthetic pair
VALIDATION_PROMPT = """Fact-check the following question/answer pair against the reference.

Reference:
{context}

Question: {question}
Answer: {answer}
Intended label: {label}

The pair is valid when its answer's correctness matches the intended label: a pair labeled \
correct must be accurate, a pair labeled incorrect must be plausibly wrong.

Output format:
{{"isValid": true, "confidence": 0.85, "reasoning": "short explanation", "factualAccuracy": 0.9, \
"relevanceScore": 0.8, "suggestedCorrection": null}}

Return a single JSON object only, nothing else."""


def format_themes(themes: Sequence[str]) -> str:
    """Render themes for a prompt."""
    return ", ".join(themes) if themes else "not identified"


def format_questions(questions: Sequence[str], limit: int = 40) -> str:
    """Render a numbered question list for a prompt, capped at ``limit`` items."""
    lines = [f"{index}. {question}" for index, question in enumerate(questions[:limit], start=1)]
    if len(questions) > limit:
        lines.append(f"... and {len(questions) - limit} more")
    return "\n".join(lines) or "(none)"


def format_gaps(gaps: Sequence[KnowledgeGap]) -> str:
    """Render knowledge gaps for a prompt."""
    return "\n".join(f"- [{gap.priority.value}] {gap.description} ({gap.theme})" for gap in gaps) or "(none)"


def goal_fields(goal: FineTuningGoalConfig) -> dict[str, str]:
    """Template fields describing the fine-tuning goal."""
    return {
        "goal_name": goal.name,
        "goal_description": goal.description,
        "goal_focus": goal.prompt_focus,
    }

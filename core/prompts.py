"""Prompt composition for flashcard content generation."""
from __future__ import annotations

from string import Template
from typing import Any, Dict, Optional, Sequence

from config.settings import SOURCE_LANGUAGE, TARGET_LANGUAGE

__all__ = [
    "KIND_DEFINITION",
    "KIND_SHORT_DESCRIPTION",
    "KIND_SINGLE_EXAMPLE",
    "KIND_THREE_EXAMPLES",
    "KIND_TRANSCRIPTION",
    "KIND_TRANSLATE_TO_TARGET",
    "KIND_TRANSLATE_FROM_TARGET",
    "KIND_FULL_CARD",
    "PROMPT_KINDS",
    "STRUCTURED_KINDS",
    "normalize_kind",
    "build_prompt",
    "build_regenerate_examples_prompt",
]

KIND_DEFINITION = "definition"
KIND_SHORT_DESCRIPTION = "shortDescription"
KIND_SINGLE_EXAMPLE = "singleExample"
KIND_THREE_EXAMPLES = "threeExamples"
KIND_TRANSCRIPTION = "transcription"
KIND_TRANSLATE_TO_TARGET = "translateToTarget"
KIND_TRANSLATE_FROM_TARGET = "translateFromTarget"
KIND_FULL_CARD = "fullCard"

PROMPT_KINDS = (
    KIND_DEFINITION,
    KIND_SHORT_DESCRIPTION,
    KIND_SINGLE_EXAMPLE,
    KIND_THREE_EXAMPLES,
    KIND_TRANSCRIPTION,
    KIND_TRANSLATE_TO_TARGET,
    KIND_TRANSLATE_FROM_TARGET,
    KIND_FULL_CARD,
)

# Kinds whose answer is parsed into structure rather than used verbatim
STRUCTURED_KINDS = (KIND_FULL_CARD, KIND_THREE_EXAMPLES)

# Names still sent by older clients
_KIND_ALIASES: Dict[str, str] = {
    "example": KIND_SINGLE_EXAMPLE,
    "translateToUkrainian": KIND_TRANSLATE_TO_TARGET,
    "translateFromUkrainian": KIND_TRANSLATE_FROM_TARGET,
    "completeFlashcard": KIND_FULL_CARD,
}

_TRANSCRIPTION_FORMAT = (
    "Resources: Oxford Learner's Dictionaries. Format for output: "
    "Transcription for 'University' (Oxford Learner's Dictionaries):"
    "UK: [ˌjuːnɪˈvɜːsəti]; US: [ˌjuːnɪˈvɜːrsəti];"
)

_TEMPLATES: Dict[str, Template] = {
    KIND_DEFINITION: Template(
        "$SOURCE level: $LEVEL. Provide a detailed definition/explanation for: $ITEM"
    ),
    KIND_SHORT_DESCRIPTION: Template(
        "$SOURCE level: $LEVEL. Write a very short description (2-3 sentences max, under 150 characters) "
        'for $SOURCE word/phrase: "$ITEM". The description should be concise, clear and appropriate '
        "for $LEVEL level learners."
    ),
    KIND_SINGLE_EXAMPLE: Template(
        "Create a sentence. $SOURCE level: $LEVEL. Word to use: $ITEM"
    ),
    KIND_THREE_EXAMPLES: Template(
        'Create three different example sentences using the $SOURCE word/phrase: "$ITEM". '
        "$SOURCE level: $LEVEL. Each sentence must be natural and show a different context.\n"
        'Return ONLY a JSON array of exactly 3 strings, e.g. ["First sentence.", "Second sentence.", "Third sentence."]'
    ),
    KIND_TRANSCRIPTION: Template(
        "Provide me with the transcription for: $ITEM. $TRANSCRIPTION_FORMAT"
    ),
    KIND_TRANSLATE_TO_TARGET: Template(
        "Provide translation to $TARGET for: $ITEM."
    ),
    KIND_TRANSLATE_FROM_TARGET: Template(
        "Provide translation from $TARGET to $SOURCE for: $ITEM"
    ),
    KIND_FULL_CARD: Template(
        """
Create a complete flashcard for an $SOURCE vocabulary word/phrase. Word: "$ITEM".
$SOURCE level: $LEVEL.

Return JSON format:
{
  "text": "$ITEM",
  "transcription": "$TRANSCRIPTION_FORMAT",
  "translation": "Some variants of $TARGET translation",
  "shortDescription": "Very brief 2-3 sentences description (under 150 characters), clear and concise",
  "explanation": "A detailed definition/explanation of meaning and usage (can be longer and more comprehensive)",
  "examples": ["First example sentence", "Second example sentence", "Third example sentence"],
  "notes": ""
}

Make sure to provide:
- Accurate phonetic transcription
- Clear explanation (in $SOURCE) appropriate for $LEVEL $SOURCE level
- Short description that's concise but informative for quick reference
- Detailed explanation for comprehensive understanding
- Three natural example sentences, each showing a different context
- $TARGET translation
""".strip()
    ),
}

_REGENERATE_TEMPLATE = Template(
    'Create three NEW and DIFFERENT example sentences using the $SOURCE word/phrase: "$ITEM". '
    "$SOURCE level: $LEVEL. Use contexts that differ from each other$AVOID\n"
    'Return ONLY a JSON array of exactly 3 strings, e.g. ["First sentence.", "Second sentence.", "Third sentence."]'
)


def normalize_kind(kind: Any) -> str:
    """Map wire names (including legacy aliases) to a kind; unknown -> fullCard."""
    if not kind or not isinstance(kind, str):
        return KIND_FULL_CARD
    kind = _KIND_ALIASES.get(kind, kind)
    return kind if kind in PROMPT_KINDS else KIND_FULL_CARD


def build_prompt(lexical_item: str, level: str, kind: Optional[str]) -> str:
    """Return the user instruction for one generation request.

    `lexical_item` and `level` are embedded exactly as given.
    """
    template = _TEMPLATES[normalize_kind(kind)]
    return template.substitute(
        ITEM=lexical_item,
        LEVEL=level,
        SOURCE=SOURCE_LANGUAGE,
        TARGET=TARGET_LANGUAGE,
        TRANSCRIPTION_FORMAT=_TRANSCRIPTION_FORMAT,
    )


def build_regenerate_examples_prompt(
    lexical_item: str, level: str, existing_examples: Sequence[str] = ()
) -> str:
    """Ask for three fresh examples, listing the current ones to steer away from."""
    existing = [ex for ex in existing_examples if ex]
    if existing:
        avoid = ", and that do not repeat these existing examples:\n" + "\n".join(
            f"- {ex}" for ex in existing
        )
    else:
        avoid = "."
    return _REGENERATE_TEMPLATE.substitute(
        ITEM=lexical_item,
        LEVEL=level,
        SOURCE=SOURCE_LANGUAGE,
        AVOID=avoid,
    )

"""Tests for core.prompts."""
from __future__ import annotations

import pytest

from core import prompts


def test_item_and_level_embedded_verbatim() -> None:
    prompt = prompts.build_prompt("  Look Up ", "C1", prompts.KIND_DEFINITION)

    assert "  Look Up " in prompt
    assert "C1" in prompt


def test_short_description_quotes_the_item() -> None:
    prompt = prompts.build_prompt("Valley", "B1", prompts.KIND_SHORT_DESCRIPTION)

    assert '"Valley"' in prompt
    assert "B1" in prompt


def test_full_card_prompt_contains_json_shape() -> None:
    prompt = prompts.build_prompt("Valley", "B1", prompts.KIND_FULL_CARD)

    for field in ("text", "transcription", "translation", "shortDescription", "explanation", "examples", "notes"):
        assert f'"{field}"' in prompt
    assert '"examples": [' in prompt
    assert "Ukrainian" in prompt


@pytest.mark.parametrize("kind", [None, "", "unknownKind", {"x": 1}, ["definition"]])
def test_unknown_kind_builds_full_card(kind) -> None:
    assert prompts.build_prompt("run", "A2", kind) == prompts.build_prompt("run", "A2", prompts.KIND_FULL_CARD)


@pytest.mark.parametrize(
    "alias, kind",
    [
        ("example", prompts.KIND_SINGLE_EXAMPLE),
        ("translateToUkrainian", prompts.KIND_TRANSLATE_TO_TARGET),
        ("translateFromUkrainian", prompts.KIND_TRANSLATE_FROM_TARGET),
        ("completeFlashcard", prompts.KIND_FULL_CARD),
    ],
)
def test_legacy_aliases(alias, kind) -> None:
    assert prompts.normalize_kind(alias) == kind


def test_every_kind_builds_a_distinct_prompt() -> None:
    built = {prompts.build_prompt("river", "B2", kind) for kind in prompts.PROMPT_KINDS}

    assert len(built) == len(prompts.PROMPT_KINDS)


def test_prompt_is_deterministic() -> None:
    first = prompts.build_prompt("river", "B2", prompts.KIND_THREE_EXAMPLES)
    second = prompts.build_prompt("river", "B2", prompts.KIND_THREE_EXAMPLES)

    assert first == second


def test_regenerate_prompt_lists_existing_examples() -> None:
    prompt = prompts.build_regenerate_examples_prompt("river", "B1", ["The river is wide.", ""])

    assert "NEW and DIFFERENT" in prompt
    assert "- The river is wide." in prompt
    assert "JSON array" in prompt


def test_regenerate_prompt_without_existing_examples() -> None:
    prompt = prompts.build_regenerate_examples_prompt("river", "B1")

    assert "existing examples" not in prompt

"""Tests for core.generation orchestration (fake provider, in-memory store)."""
from __future__ import annotations

import json

import pytest

from core import generation
from core.store import CARDS, SETTINGS
from core.errors import (
    CardNotFound,
    ClientInputError,
    GenerationFailed,
    InvalidCredential,
    NoCredentialAvailable,
    QuotaExceeded,
    RateLimited,
)
from core.user_settings import ensure_settings

from tests.fakes import OPERATOR_KEY, PERSONAL_KEY, FakeAPIError


def _generate(store, provider, text="Valley", level="B1", kind=None, operator_key=OPERATOR_KEY):
    return generation.generate_content(
        "user-1",
        text,
        level,
        kind,
        store=store,
        operator_key=operator_key,
        client_factory=provider,
    )


def test_short_description_returns_raw_text_verbatim(store, provider) -> None:
    provider.chat_reply = "A low area of land between hills."

    outcome = _generate(store, provider, kind="shortDescription")

    assert outcome.result == "A low area of land between hills."
    assert outcome.raw == outcome.result
    assert outcome.parsed is False
    assert outcome.model_used == "gpt-4.1-mini"
    call = provider.chat_calls[0]
    assert call["model"] == "gpt-4.1-mini"
    assert call["temperature"] == 0.7
    assert call["max_tokens"] == 300
    assert [m["role"] for m in call["messages"]] == ["system", "user"]
    assert '"Valley"' in call["messages"][1]["content"]
    assert "B1" in call["messages"][1]["content"]


def test_full_card_is_parsed_and_text_forced(store, provider) -> None:
    provider.chat_reply = "```json\n" + json.dumps(
        {"text": "valley!", "translation": "долина", "examples": ["One.", "Two.", "Three."]}
    ) + "\n```"

    outcome = _generate(store, provider, kind="fullCard")
    payload = outcome.to_dict()

    assert payload["parsed"] is True
    assert payload["result"]["text"] == "Valley"
    assert payload["result"]["examples"] == ["One.", "Two.", "Three."]
    assert payload["apiKeyInfo"]["effectiveSource"] == "system"
    assert payload["modelUsed"] == "gpt-4.1-mini"
    assert provider.chat_calls[0]["max_tokens"] == 600


def test_missing_kind_means_full_card(store, provider) -> None:
    provider.chat_reply = '{"translation": "x"}'

    outcome = _generate(store, provider, kind=None)

    assert outcome.parsed is True
    assert outcome.result.translation == "x"


def test_unparseable_full_card_is_not_an_error(store, provider) -> None:
    provider.chat_reply = "no json here"

    payload = _generate(store, provider, kind="fullCard").to_dict()

    assert payload["parsed"] is False
    assert payload["raw"] == "no json here"
    assert payload["message"]
    assert "result" not in payload
    assert payload["apiKeyInfo"]["hasValidKey"] is True


def test_three_examples_result_is_list(store, provider) -> None:
    provider.chat_reply = "1. First.\n2. Second.\n3. Third."

    outcome = _generate(store, provider, kind="threeExamples")

    assert outcome.result == ["First.", "Second.", "Third."]
    assert provider.chat_calls[0]["max_tokens"] == 600


@pytest.mark.parametrize(
    "text, level",
    [
        ("", "B1"),
        ("   ", "B1"),
        (None, "B1"),
        ("x" * 201, "B1"),
        ("word", ""),
        ("word", None),
        ("word", "D1"),
    ],
)
def test_invalid_input_rejected_before_provider_call(store, provider, text, level) -> None:
    with pytest.raises(ClientInputError) as excinfo:
        _generate(store, provider, text=text, level=level)

    assert excinfo.value.status == 400
    assert provider.chat_calls == []


@pytest.mark.parametrize("kind", [{"x": 1}, ["fullCard"], 3])
def test_non_string_kind_is_input_error(store, provider, kind) -> None:
    with pytest.raises(ClientInputError) as excinfo:
        _generate(store, provider, kind=kind)

    assert excinfo.value.status == 400
    assert provider.chat_calls == []


def test_text_at_length_limit_is_accepted(store, provider) -> None:
    provider.chat_reply = "ok"

    _generate(store, provider, text="x" * 200, kind="definition")

    assert len(provider.chat_calls) == 1


def test_no_credential_raises_and_creates_settings(store, provider) -> None:
    with pytest.raises(NoCredentialAvailable) as excinfo:
        _generate(store, provider, operator_key="")

    assert excinfo.value.api_key_info["effectiveSource"] == "none"
    assert provider.keys == []
    assert store.find_one(SETTINGS, {"userId": "user-1"}) is not None


def test_personal_key_and_model_from_settings(store, provider) -> None:
    settings = ensure_settings(store, "user-1")
    settings.update({"apiKeySource": "user", "openaiApiKey": PERSONAL_KEY})
    settings["aiSettings"]["chatgptModel"] = "gpt-4o"
    store.save(SETTINGS, settings)
    provider.chat_reply = "definition text"

    outcome = _generate(store, provider, kind="definition")

    assert provider.keys == [PERSONAL_KEY]
    assert outcome.model_used == "gpt-4o"
    assert outcome.api_key_info["effectiveSource"] == "user"


@pytest.mark.parametrize(
    "error, expected, status",
    [
        (FakeAPIError("Incorrect API key provided", 401), InvalidCredential, 401),
        (FakeAPIError("You exceeded your current quota", 429), QuotaExceeded, 402),
        (FakeAPIError("Rate limit reached", 429), RateLimited, 429),
        (ConnectionError("connection refused"), GenerationFailed, 500),
        (FakeAPIError("upstream exploded", 502), GenerationFailed, 502),
    ],
)
def test_provider_errors_are_classified(store, provider, error, expected, status) -> None:
    provider.error = error

    with pytest.raises(expected) as excinfo:
        _generate(store, provider, kind="definition")

    assert excinfo.value.status == status
    assert excinfo.value.api_key_info["effectiveSource"] == "system"
    assert len(provider.chat_calls) == 1


def _card(store, **fields):
    card = {
        "userId": "user-1",
        "categoryId": None,
        "text": "river",
        "examples": [],
        "example": "",
        "isAIGenerated": False,
    }
    card.update(fields)
    return store.save(CARDS, card)


def test_regenerate_overwrites_examples_and_clears_legacy(store, provider) -> None:
    card = _card(store, examples=[], example="Old legacy sentence.")
    provider.chat_reply = '["New one.", "New two.", "New three."]'

    payload = generation.regenerate_examples_for_card(
        card["_id"], "user-1", store=store, operator_key=OPERATOR_KEY, client_factory=provider
    )

    assert payload["success"] is True
    assert payload["newExamples"] == ["New one.", "New two.", "New three."]
    assert payload["flashcard"]["examples"] == payload["newExamples"]
    assert payload["modelUsed"] == "gpt-4.1-mini"
    stored = store.find_one(CARDS, {"_id": card["_id"]})
    assert stored["examples"] == ["New one.", "New two.", "New three."]
    assert stored["example"] == ""
    call = provider.chat_calls[0]
    assert call["temperature"] == 0.8
    # legacy example was migrated into the prompt's list of examples to avoid
    assert "Old legacy sentence." in call["messages"][1]["content"]


def test_regenerate_foreign_card_is_not_found(store, provider) -> None:
    card = _card(store, userId="someone-else")

    with pytest.raises(CardNotFound) as excinfo:
        generation.regenerate_examples_for_card(
            card["_id"], "user-1", store=store, operator_key=OPERATOR_KEY, client_factory=provider
        )

    assert excinfo.value.status == 404
    assert provider.chat_calls == []


def test_regenerate_missing_card_is_not_found(store, provider) -> None:
    with pytest.raises(CardNotFound):
        generation.regenerate_examples_for_card(
            "missing", "user-1", store=store, operator_key=OPERATOR_KEY, client_factory=provider
        )


def test_regenerate_empty_answer_leaves_card_untouched(store, provider) -> None:
    card = _card(store, examples=["Keep me."])
    provider.chat_reply = "   "

    with pytest.raises(GenerationFailed):
        generation.regenerate_examples_for_card(
            card["_id"], "user-1", store=store, operator_key=OPERATOR_KEY, client_factory=provider
        )

    assert store.find_one(CARDS, {"_id": card["_id"]})["examples"] == ["Keep me."]

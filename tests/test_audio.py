"""Tests covering the speech cache and synthesis orchestration."""
from __future__ import annotations

import httpx
import openai
import pytest

from core import audio
from core.credentials import EffectiveCredentialInfo
from core.errors import (
    ClientInputError,
    InvalidCredential,
    InvalidCredentialFormat,
    InvalidTTSRequest,
    NoCredentialAvailable,
    ProviderUnreachable,
)
from core.store import SETTINGS
from core.user_settings import ensure_settings

from tests.fakes import OPERATOR_KEY, FakeAPIError


def _speak(store, provider, cache, text="Hello world", operator_key=OPERATOR_KEY):
    return audio.synthesize_speech(
        "user-1",
        text,
        store=store,
        operator_key=operator_key,
        cache=cache,
        client_factory=provider,
    )


def _set_tts(store, general=None, **tts):
    settings = ensure_settings(store, "user-1")
    settings["ttsSettings"].update(tts)
    settings["generalSettings"].update(general or {})
    store.save(SETTINGS, settings)


@pytest.fixture
def cache() -> audio.SpeechCache:
    return audio.SpeechCache()


def test_identical_requests_hit_provider_once(store, provider, cache) -> None:
    first = _speak(store, provider, cache)
    second = _speak(store, provider, cache, text="  hello WORLD ")

    assert len(provider.speech_calls) == 1
    assert first.cache_hit is False
    assert second.cache_hit is True
    assert first.audio == second.audio == provider.audio
    assert cache.size() == 1


def test_speech_call_parameters_and_result(store, provider, cache) -> None:
    result = _speak(store, provider, cache)

    call = provider.speech_calls[0]
    assert call == {
        "model": "tts-1",
        "voice": "alloy",
        "input": "Hello world",
        "response_format": "mp3",
        "speed": 1.0,
    }
    assert provider.timeouts == [30.0]
    assert result.model == "tts-1"
    assert result.voice == "alloy"
    assert result.content_type == "audio/mpeg"
    assert result.api_key_info["effectiveSource"] == "system"


def test_instructions_only_for_instruction_model(store, provider, cache) -> None:
    _set_tts(store, model="gpt-4o-mini-tts", voiceStyle="calm", customInstructions="Slowly.")

    _speak(store, provider, cache)

    instructions = provider.speech_calls[0]["instructions"]
    assert instructions.startswith(audio.VOICE_STYLE_INSTRUCTIONS["calm"])
    assert instructions.endswith("\n\nAdditional instructions: Slowly.")


def test_style_ignored_for_standard_models(store, provider, cache) -> None:
    _set_tts(store, model="tts-1-hd", voiceStyle="dramatic")

    _speak(store, provider, cache)

    assert "instructions" not in provider.speech_calls[0]


def test_input_truncated_and_speed_clamped(store, provider, cache) -> None:
    _set_tts(store, speed=10)

    _speak(store, provider, cache, text="a" * 5000)

    call = provider.speech_calls[0]
    assert len(call["input"]) == 4096
    assert call["speed"] == 4.0


def test_content_type_follows_format(store, provider, cache) -> None:
    _set_tts(store, responseFormat="opus")

    assert _speak(store, provider, cache).content_type == "audio/ogg"


def test_caching_disabled_always_calls_provider(store, provider, cache) -> None:
    _set_tts(store, general={"cacheAudio": False})

    _speak(store, provider, cache)
    result = _speak(store, provider, cache)

    assert len(provider.speech_calls) == 2
    assert result.cache_hit is False
    assert cache.size() == 0


def test_full_cache_still_returns_audio(store, provider) -> None:
    small = audio.SpeechCache(capacity=1)

    _speak(store, provider, small, text="one")
    result = _speak(store, provider, small, text="two")

    assert result.audio == provider.audio
    assert small.size() == 1
    assert _speak(store, provider, small, text="two").cache_hit is False


def test_cache_capacity_bound() -> None:
    cache = audio.SpeechCache()

    stored = [cache.set(f"key-{i}", b"x") for i in range(101)]

    assert stored.count(True) == 100
    assert stored[-1] is False
    assert cache.size() == 100
    # overwriting an existing key is still allowed when full
    assert cache.set("key-0", b"y") is True
    assert cache.get("key-0") == b"y"


def test_clear_audio_cache_reports_count(store, provider, cache) -> None:
    _speak(store, provider, cache, text="one")
    _speak(store, provider, cache, text="two")

    assert audio.clear_audio_cache(cache) == 2
    assert cache.size() == 0
    assert audio.clear_audio_cache(cache) == 0


def test_cache_key_depends_on_settings() -> None:
    base = {"model": "tts-1", "voice": "alloy", "speed": 1.0, "voiceStyle": "neutral", "customInstructions": ""}

    key = audio.speech_cache_key("Hello", base)

    assert key == audio.speech_cache_key("  hello ", dict(base))
    assert key != audio.speech_cache_key("Hello", {**base, "voice": "nova"})
    assert key != audio.speech_cache_key("Hello", {**base, "speed": 1.5})
    assert key != audio.speech_cache_key("Hello", {**base, "customInstructions": "loud"})
    assert len(key) == 32


def test_unknown_style_uses_neutral() -> None:
    assert audio.voice_style_instructions("whisper") == audio.VOICE_STYLE_INSTRUCTIONS["neutral"]
    assert audio.build_speech_instructions("formal", "   ") == audio.VOICE_STYLE_INSTRUCTIONS["formal"]


@pytest.mark.parametrize("value, expected", [(0.1, 0.25), (2, 2.0), ("fast", 1.0), (None, 1.0)])
def test_clamp_speed(value, expected) -> None:
    assert audio.clamp_speed(value) == expected


@pytest.mark.parametrize("text", ["", "   ", None])
def test_empty_text_rejected(store, provider, cache, text) -> None:
    with pytest.raises(ClientInputError):
        _speak(store, provider, cache, text=text)

    assert provider.keys == []


def test_no_credential(store, provider, cache) -> None:
    with pytest.raises(NoCredentialAvailable):
        _speak(store, provider, cache, operator_key=None)

    assert provider.speech_calls == []


@pytest.mark.parametrize(
    "error, expected, status",
    [
        (FakeAPIError("bad voice", 400), InvalidTTSRequest, 400),
        (ConnectionError("ECONNREFUSED"), ProviderUnreachable, 503),
        (FakeAPIError("Incorrect API key provided", 401), InvalidCredential, 401),
    ],
)
def test_speech_errors_classified(store, provider, cache, error, expected, status) -> None:
    provider.error = error

    with pytest.raises(expected) as excinfo:
        _speak(store, provider, cache)

    assert excinfo.value.status == status
    assert cache.size() == 0


SPEECH_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/audio/speech")


def _status_error(cls, message, status):
    return cls(message, response=httpx.Response(status, request=SPEECH_REQUEST), body=None)


@pytest.mark.parametrize(
    "error, expected, status",
    [
        (openai.APIConnectionError(request=SPEECH_REQUEST), ProviderUnreachable, 503),
        (openai.APITimeoutError(request=SPEECH_REQUEST), ProviderUnreachable, 503),
        (_status_error(openai.AuthenticationError, "Incorrect API key provided", 401), InvalidCredential, 401),
        (_status_error(openai.BadRequestError, "Invalid voice", 400), InvalidTTSRequest, 400),
    ],
)
def test_sdk_errors_classified(store, provider, cache, error, expected, status) -> None:
    provider.error = error

    with pytest.raises(expected) as excinfo:
        _speak(store, provider, cache)

    assert excinfo.value.status == status
    assert excinfo.value.original_error is error
    assert cache.size() == 0


def test_malformed_effective_key_is_rejected_before_provider_call(store, provider, cache, monkeypatch) -> None:
    info = EffectiveCredentialInfo(
        source="system", has_user_key=False, has_system_key=True, effective_source="system"
    )
    monkeypatch.setattr(audio, "resolve_effective_credential", lambda settings, operator_key: ("bogus-key", info))

    with pytest.raises(InvalidCredentialFormat) as excinfo:
        _speak(store, provider, cache)

    assert excinfo.value.status == 500
    assert excinfo.value.api_key_info == info.to_dict()
    assert provider.keys == []


def test_list_available_models_filters_speech_models(store, provider) -> None:
    provider.model_ids = ["gpt-4o", "tts-1", "tts-1-hd", "gpt-4o-mini-tts", "whisper-1", "speech-preview"] + [
        f"extra-{i}" for i in range(10)
    ]

    payload = audio.list_available_models(
        "user-1", store=store, operator_key=OPERATOR_KEY, client_factory=provider
    )

    assert payload["success"] is True
    assert payload["total_models"] == 16
    assert payload["tts_models"] == ["tts-1", "tts-1-hd", "gpt-4o-mini-tts", "speech-preview"]
    assert len(payload["all_models"]) == 10
    assert payload["apiKeyInfo"]["effectiveSource"] == "system"


def test_speech_settings_check_bypasses_cache(store, provider, cache) -> None:
    _set_tts(store, voice="nova")

    payload = audio.test_speech_settings(
        "user-1", store=store, operator_key=OPERATOR_KEY, client_factory=provider
    )

    assert payload["success"] is True
    assert payload["audio_size"] == len(provider.audio)
    assert payload["settings_used"]["voice"] == "nova"
    assert provider.speech_calls[0]["input"] == "Test TTS functionality"
    assert cache.size() == 0

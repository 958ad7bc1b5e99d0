"""Text-to-speech synthesis with a process-wide audio cache."""
from __future__ import annotations

import hashlib
import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from config.settings import (
    AUDIO_CACHE_CAPACITY,
    DEFAULT_TTS_SETTINGS,
    MESSAGES,
    SPEECH_TIMEOUT_SECONDS,
    TTS_INPUT_MAX_CHARS,
    TTS_INSTRUCTION_MODELS,
    TTS_KNOWN_MODEL_IDS,
    TTS_MODEL_SUBSTRINGS,
    TTS_RESPONSE_FORMAT_DEFAULT,
    TTS_RESPONSE_FORMATS,
    TTS_SPEED_DEFAULT,
    TTS_SPEED_MAX,
    TTS_SPEED_MIN,
    TTS_TEST_PHRASE,
    VOICE_STYLE_DEFAULT,
    VOICE_STYLE_INSTRUCTIONS,
)
from core.credentials import EffectiveCredentialInfo, is_well_formed, resolve_effective_credential
from core.errors import (
    ClientInputError,
    InvalidCredentialFormat,
    NoCredentialAvailable,
    classify_provider_error,
)
from core.llm_clients import create_client, list_model_ids, send_speech_request
from core.store import DocumentStore
from core.user_settings import ensure_settings

__all__ = [
    "SpeechCache",
    "SpeechResult",
    "speech_cache_key",
    "voice_style_instructions",
    "build_speech_instructions",
    "clamp_speed",
    "synthesize_speech",
    "clear_audio_cache",
    "list_available_models",
    "test_speech_settings",
]

logger = logging.getLogger(__name__)

ClientFactory = Callable[..., Any]


class SpeechCache:
    """Bounded in-memory map of cache key -> audio bytes.

    Inserts are refused once `capacity` entries exist; nothing is evicted
    until `clear()`.
    """

    def __init__(self, capacity: int = AUDIO_CACHE_CAPACITY) -> None:
        self.capacity = capacity
        self._entries: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, audio: bytes) -> bool:
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.capacity:
                return False
            self._entries[key] = bytes(audio)
            return True

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count


@dataclass
class SpeechResult:
    """Audio plus what the HTTP layer reports in response headers."""

    audio: bytes
    cache_hit: bool
    api_key_info: Dict[str, Any]
    model: str
    voice: str
    content_type: str


def _tts_settings(settings: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(DEFAULT_TTS_SETTINGS)
    merged.update(settings.get("ttsSettings") or {})
    return merged


def speech_cache_key(text: str, tts_settings: Mapping[str, Any]) -> str:
    """Deterministic key over the normalized text and every setting that changes the audio."""
    payload = {
        "text": (text or "").strip().lower(),
        "model": tts_settings.get("model"),
        "voice": tts_settings.get("voice"),
        "speed": tts_settings.get("speed"),
        "style": tts_settings.get("voiceStyle") or VOICE_STYLE_DEFAULT,
        "custom": tts_settings.get("customInstructions") or "",
    }
    canonical = json.dumps(payload, sort_keys=True, ensure_ascii=False)
    return hashlib.md5(canonical.encode("utf-8")).hexdigest()


def voice_style_instructions(style: Optional[str]) -> str:
    return VOICE_STYLE_INSTRUCTIONS.get(style or "", VOICE_STYLE_INSTRUCTIONS[VOICE_STYLE_DEFAULT])


def build_speech_instructions(style: Optional[str], custom: Optional[str] = None) -> str:
    instructions = voice_style_instructions(style)
    if custom and custom.strip():
        instructions += "\n\nAdditional instructions: " + custom.strip()
    return instructions


def clamp_speed(speed: Any) -> float:
    try:
        value = float(speed)
    except (TypeError, ValueError):
        return TTS_SPEED_DEFAULT
    return min(max(value, TTS_SPEED_MIN), TTS_SPEED_MAX)


def _content_type(response_format: str) -> str:
    return TTS_RESPONSE_FORMATS.get(response_format, TTS_RESPONSE_FORMATS[TTS_RESPONSE_FORMAT_DEFAULT])


def _resolve_for_speech(
    settings: Mapping[str, Any], operator_key: Optional[str]
) -> Tuple[str, EffectiveCredentialInfo]:
    credential, info = resolve_effective_credential(settings, operator_key)
    if credential is None:
        raise NoCredentialAvailable(info.to_dict())
    if not is_well_formed(credential):
        raise InvalidCredentialFormat(
            MESSAGES["invalid_key_format"],
            MESSAGES["invalid_key_format_details"],
            api_key_info=info.to_dict(),
        )
    return credential, info


def _synthesize(
    client_factory: ClientFactory,
    credential: str,
    info: EffectiveCredentialInfo,
    tts: Mapping[str, Any],
    text: str,
    log_extra: Dict[str, Any],
) -> bytes:
    model = tts["model"]
    instructions = None
    if model in TTS_INSTRUCTION_MODELS:
        instructions = build_speech_instructions(tts.get("voiceStyle"), tts.get("customInstructions"))
    try:
        client = client_factory(credential, timeout=SPEECH_TIMEOUT_SECONDS)
        return send_speech_request(
            client,
            model=model,
            voice=tts["voice"],
            input_text=text[:TTS_INPUT_MAX_CHARS],
            response_format=tts.get("responseFormat") or TTS_RESPONSE_FORMAT_DEFAULT,
            speed=clamp_speed(tts.get("speed")),
            instructions=instructions,
        )
    except Exception as exc:  # noqa: BLE001
        error = classify_provider_error(exc, speech=True, api_key_info=info.to_dict())
        logger.warning(
            "Speech request failed",
            extra={**log_extra, "error_class": type(error).__name__},
            exc_info=True,
        )
        raise error from exc


def synthesize_speech(
    user_id: str,
    text: Any,
    *,
    store: DocumentStore,
    operator_key: Optional[str],
    cache: SpeechCache,
    client_factory: ClientFactory = create_client,
) -> SpeechResult:
    """Return audio for `text` using the user's TTS settings.

    With caching enabled, an identical request is served from `cache`
    without contacting the provider. A full cache still returns audio; the
    entry is simply not stored.
    """
    if not isinstance(text, str) or not text.strip():
        raise ClientInputError(MESSAGES["text_required"])

    settings = ensure_settings(store, user_id)
    credential, info = _resolve_for_speech(settings, operator_key)
    tts = _tts_settings(settings)
    caching = bool((settings.get("generalSettings") or {}).get("cacheAudio", True))
    content_type = _content_type(tts.get("responseFormat"))
    key = speech_cache_key(text, tts)
    log_extra = {
        "user_id": user_id,
        "model": tts["model"],
        "voice": tts["voice"],
        "key_source": info.effective_source,
    }

    if caching:
        cached = cache.get(key)
        if cached is not None:
            logger.debug("Speech cache hit", extra=log_extra)
            return SpeechResult(cached, True, info.to_dict(), tts["model"], tts["voice"], content_type)

    audio = _synthesize(client_factory, credential, info, tts, text, log_extra)

    if caching and not cache.set(key, audio):
        logger.info("Speech cache full, entry not stored", extra={**log_extra, "cache_size": cache.size()})
    logger.debug("Speech generated", extra={**log_extra, "bytes": len(audio), "cache_size": cache.size()})
    return SpeechResult(audio, False, info.to_dict(), tts["model"], tts["voice"], content_type)


def clear_audio_cache(cache: SpeechCache) -> int:
    cleared = cache.clear()
    logger.info("Speech cache cleared", extra={"cleared_entries": cleared})
    return cleared


def _is_speech_model(model_id: str) -> bool:
    lowered = model_id.lower()
    return model_id in TTS_KNOWN_MODEL_IDS or any(token in lowered for token in TTS_MODEL_SUBSTRINGS)


def list_available_models(
    user_id: str,
    *,
    store: DocumentStore,
    operator_key: Optional[str],
    client_factory: ClientFactory = create_client,
) -> Dict[str, Any]:
    """Speech-capable models from the provider's catalogue for the effective key."""
    settings = ensure_settings(store, user_id)
    credential, info = _resolve_for_speech(settings, operator_key)
    try:
        model_ids = list_model_ids(client_factory(credential))
    except Exception as exc:  # noqa: BLE001
        error = classify_provider_error(exc, speech=True, api_key_info=info.to_dict())
        logger.warning("Model listing failed", extra={"user_id": user_id, "error_class": type(error).__name__})
        raise error from exc

    tts_models: List[str] = [model_id for model_id in model_ids if _is_speech_model(model_id)]
    return {
        "success": True,
        "message": MESSAGES["models_retrieved"],
        "total_models": len(model_ids),
        "tts_models": tts_models,
        "all_models": model_ids[:10],
        "apiKeyInfo": info.to_dict(),
    }


def test_speech_settings(
    user_id: str,
    *,
    store: DocumentStore,
    operator_key: Optional[str],
    client_factory: ClientFactory = create_client,
) -> Dict[str, Any]:
    """Synthesize a fixed phrase with the current settings, bypassing the cache."""
    settings = ensure_settings(store, user_id)
    credential, info = _resolve_for_speech(settings, operator_key)
    tts = _tts_settings(settings)
    log_extra = {"user_id": user_id, "model": tts["model"], "voice": tts["voice"], "stage": "tts_test"}
    audio = _synthesize(client_factory, credential, info, tts, TTS_TEST_PHRASE, log_extra)
    return {
        "success": True,
        "message": MESSAGES["tts_test_ok"],
        "audio_size": len(audio),
        "settings_used": {
            "model": tts["model"],
            "voice": tts["voice"],
            "speed": tts.get("speed"),
            "responseFormat": tts.get("responseFormat"),
            "voiceStyle": tts.get("voiceStyle"),
        },
        "apiKeyInfo": info.to_dict(),
    }

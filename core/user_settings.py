"""
core/user_settings.py: per-user settings record: lazy creation, patch update,
reset, options catalog and API key validation.
"""
from __future__ import annotations

import copy
import logging
from typing import Any, Callable, Dict, Mapping, Optional

from config.settings import (
    API_KEY_PREFIX,
    API_KEY_SOURCE_SYSTEM,
    API_KEY_SOURCE_USER,
    API_KEY_SOURCES,
    AVAILABLE_OPTIONS,
    CHAT_MODELS,
    DEFAULT_AI_SETTINGS,
    DEFAULT_GENERAL_SETTINGS,
    DEFAULT_TTS_SETTINGS,
    ENGLISH_LEVELS,
    MESSAGES,
    TTS_CUSTOM_INSTRUCTIONS_MAX,
    TTS_MODELS,
    TTS_RESPONSE_FORMATS,
    TTS_SPEED_MAX,
    TTS_SPEED_MIN,
    TTS_VOICES,
    VOICE_STYLE_INSTRUCTIONS,
)
from core.credentials import (
    PERSONAL_KEY_FIELD,
    api_key_info,
    redacted_settings_view,
    resolve_effective_credential,
)
from core.errors import (
    ClientInputError,
    NoCredentialAvailable,
    classify_provider_error,
)
from core.llm_clients import create_client, probe_api_key
from core.store import SETTINGS, DocumentStore

__all__ = [
    "default_settings",
    "ensure_settings",
    "get_settings_view",
    "update_settings",
    "reset_settings",
    "available_options",
    "validate_and_save_api_key",
    "test_current_api_key",
]

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], Any]


def default_settings(user_id: str) -> Dict[str, Any]:
    return {
        "userId": user_id,
        "apiKeySource": API_KEY_SOURCE_SYSTEM,
        PERSONAL_KEY_FIELD: "",
        "ttsSettings": copy.deepcopy(DEFAULT_TTS_SETTINGS),
        "generalSettings": copy.deepcopy(DEFAULT_GENERAL_SETTINGS),
        "aiSettings": copy.deepcopy(DEFAULT_AI_SETTINGS),
    }


def _fill_defaults(settings: Dict[str, Any]) -> Dict[str, Any]:
    """Add sections and fields missing from records written by older versions."""
    defaults = default_settings(settings.get("userId", ""))
    for key, value in defaults.items():
        if key not in settings:
            settings[key] = value
        elif isinstance(value, dict) and isinstance(settings[key], dict):
            for sub_key, sub_value in value.items():
                settings[key].setdefault(sub_key, sub_value)
    return settings


def ensure_settings(store: DocumentStore, user_id: str, persist: bool = True) -> Dict[str, Any]:
    """Return the user's settings, creating the default record on first use.

    Idempotent: a second call finds the record the first one saved.
    """
    settings = store.find_one(SETTINGS, {"userId": user_id})
    if settings is not None:
        return _fill_defaults(settings)
    settings = default_settings(user_id)
    if persist:
        settings = store.save(SETTINGS, settings)
        logger.info("Created default settings", extra={"user_id": user_id})
    return settings


def get_settings_view(store: DocumentStore, user_id: str, operator_key: Optional[str]) -> Dict[str, Any]:
    return redacted_settings_view(ensure_settings(store, user_id), operator_key)


# -----------------
# Patch validation
# -----------------

def _require_choice(section: str, field: str, value: Any, choices) -> Any:
    if value not in choices:
        raise ClientInputError(
            f"Invalid value for {section}.{field}",
            f"Expected one of: {', '.join(str(c) for c in choices)}",
        )
    return value


def _validate_tts_patch(patch: Mapping[str, Any]) -> Dict[str, Any]:
    clean: Dict[str, Any] = {}
    for field, value in patch.items():
        if field == "model":
            clean[field] = _require_choice("ttsSettings", field, value, TTS_MODELS)
        elif field == "voice":
            clean[field] = _require_choice("ttsSettings", field, value, TTS_VOICES)
        elif field == "responseFormat":
            clean[field] = _require_choice("ttsSettings", field, value, list(TTS_RESPONSE_FORMATS))
        elif field == "voiceStyle":
            clean[field] = _require_choice("ttsSettings", field, value, list(VOICE_STYLE_INSTRUCTIONS))
        elif field == "speed":
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ClientInputError("Invalid value for ttsSettings.speed", "Speed must be a number")
            if not TTS_SPEED_MIN <= value <= TTS_SPEED_MAX:
                raise ClientInputError(
                    "Invalid value for ttsSettings.speed",
                    f"Speed must be between {TTS_SPEED_MIN} and {TTS_SPEED_MAX}",
                )
            clean[field] = float(value)
        elif field == "customInstructions":
            value = "" if value is None else value
            if not isinstance(value, str):
                raise ClientInputError("Invalid value for ttsSettings.customInstructions")
            if len(value) > TTS_CUSTOM_INSTRUCTIONS_MAX:
                raise ClientInputError(
                    "Invalid value for ttsSettings.customInstructions",
                    f"Custom instructions must be at most {TTS_CUSTOM_INSTRUCTIONS_MAX} characters",
                )
            clean[field] = value
    return clean


def _validate_general_patch(patch: Mapping[str, Any]) -> Dict[str, Any]:
    clean: Dict[str, Any] = {}
    if "cacheAudio" in patch:
        if not isinstance(patch["cacheAudio"], bool):
            raise ClientInputError("Invalid value for generalSettings.cacheAudio", "Expected true or false")
        clean["cacheAudio"] = patch["cacheAudio"]
    if "defaultEnglishLevel" in patch:
        clean["defaultEnglishLevel"] = _require_choice(
            "generalSettings", "defaultEnglishLevel", patch["defaultEnglishLevel"], ENGLISH_LEVELS
        )
    return clean


def _validate_ai_patch(patch: Mapping[str, Any]) -> Dict[str, Any]:
    if "chatgptModel" in patch:
        return {"chatgptModel": _require_choice("aiSettings", "chatgptModel", patch["chatgptModel"], CHAT_MODELS)}
    return {}


_SECTION_VALIDATORS = {
    "ttsSettings": _validate_tts_patch,
    "generalSettings": _validate_general_patch,
    "aiSettings": _validate_ai_patch,
}


def update_settings(
    store: DocumentStore,
    user_id: str,
    patch: Mapping[str, Any],
    operator_key: Optional[str],
) -> Dict[str, Any]:
    """Apply a per-field patch and return the redacted view.

    Only fields present in `patch` change. Unknown fields are ignored.
    Concurrent patches of the same record: last writer wins.
    """
    if not isinstance(patch, Mapping):
        raise ClientInputError("Invalid settings payload", "Expected a JSON object")

    settings = ensure_settings(store, user_id)

    if "apiKeySource" in patch:
        settings["apiKeySource"] = _require_choice("settings", "apiKeySource", patch["apiKeySource"], API_KEY_SOURCES)

    # A personal key is stored only by validate_and_save_api_key; a patch may only clear it
    if PERSONAL_KEY_FIELD in patch:
        key = patch[PERSONAL_KEY_FIELD]
        if key is not None and (not isinstance(key, str) or key.strip()):
            raise ClientInputError(MESSAGES["api_key_patch_rejected"], MESSAGES["api_key_patch_rejected_details"])
        settings[PERSONAL_KEY_FIELD] = ""

    for section, validator in _SECTION_VALIDATORS.items():
        section_patch = patch.get(section)
        if section_patch is None:
            continue
        if not isinstance(section_patch, Mapping):
            raise ClientInputError(f"Invalid value for {section}", "Expected a JSON object")
        settings[section].update(validator(section_patch))

    saved = store.save(SETTINGS, settings)
    logger.info("Settings updated", extra={"user_id": user_id, "fields": sorted(patch.keys())})
    return redacted_settings_view(saved, operator_key)


def reset_settings(store: DocumentStore, user_id: str, operator_key: Optional[str]) -> Dict[str, Any]:
    """Replace the record with defaults, keeping its identity. The personal key is dropped."""
    existing = store.find_one(SETTINGS, {"userId": user_id})
    fresh = default_settings(user_id)
    if existing is not None:
        fresh["_id"] = existing["_id"]
    saved = store.save(SETTINGS, fresh)
    logger.info("Settings reset", extra={"user_id": user_id})
    return redacted_settings_view(saved, operator_key)


def available_options() -> Dict[str, Any]:
    return copy.deepcopy(AVAILABLE_OPTIONS)


# -----------------
# API key checks
# -----------------

def validate_and_save_api_key(
    store: DocumentStore,
    user_id: str,
    candidate: Any,
    operator_key: Optional[str],
    *,
    client_factory: ClientFactory = create_client,
) -> Dict[str, Any]:
    """Probe a personal key; on success store it and switch the preference to it."""
    key = candidate.strip() if isinstance(candidate, str) else ""
    if not key:
        raise ClientInputError(MESSAGES["api_key_required"], MESSAGES["api_key_required_details"])
    if not key.startswith(API_KEY_PREFIX):
        raise ClientInputError(MESSAGES["invalid_key_format"], MESSAGES["invalid_key_format_details"])

    try:
        probe_api_key(client_factory(key))
    except Exception as exc:
        error = classify_provider_error(exc)
        logger.warning(
            "Personal key rejected",
            extra={"user_id": user_id, "error_class": type(error).__name__},
        )
        raise error from exc

    settings = ensure_settings(store, user_id)
    settings[PERSONAL_KEY_FIELD] = key
    settings["apiKeySource"] = API_KEY_SOURCE_USER
    saved = store.save(SETTINGS, settings)
    logger.info("Personal key validated and saved", extra={"user_id": user_id})
    return {
        "success": True,
        "message": MESSAGES["api_key_saved"],
        "details": MESSAGES["api_key_saved_details"],
        "apiKeyInfo": api_key_info(saved, operator_key),
    }


def test_current_api_key(
    store: DocumentStore,
    user_id: str,
    operator_key: Optional[str],
    *,
    client_factory: ClientFactory = create_client,
) -> Dict[str, Any]:
    """Probe whichever key the user's requests would currently use."""
    settings = ensure_settings(store, user_id)
    credential, info = resolve_effective_credential(settings, operator_key)
    if credential is None:
        raise NoCredentialAvailable(info.to_dict())

    try:
        probe_api_key(client_factory(credential))
    except Exception as exc:
        error = classify_provider_error(exc, api_key_info=info.to_dict())
        if error.api_key_info is None:
            error.api_key_info = info.to_dict()
        raise error from exc

    source_label = "Personal" if info.effective_source == API_KEY_SOURCE_USER else "System"
    return {
        "success": True,
        "message": MESSAGES["api_key_works_fmt"].format(source=source_label),
        "details": f"Using {info.effective_source} API key",
        "apiKeyInfo": info.to_dict(),
    }

"""
Configuration for the flashcard AI backend
"""

import os

from typing import Any, Dict, List, Tuple

# ==========================
# Credentials
# ==========================

OPERATOR_API_KEY_ENV: str = "OPENAI_API_KEY"
API_KEY_PREFIX: str = "sk-"

API_KEY_SOURCE_SYSTEM: str = "system"
API_KEY_SOURCE_USER: str = "user"
API_KEY_SOURCE_NONE: str = "none"
API_KEY_SOURCES: Tuple[str, ...] = (API_KEY_SOURCE_SYSTEM, API_KEY_SOURCE_USER)


def get_operator_api_key() -> str:
    """Read the operator key on every call; it may be rotated while running."""
    return os.environ.get(OPERATOR_API_KEY_ENV, "")


# ==========================
# Generation (chat completions)
# ==========================

CHAT_MODELS: List[str] = ["gpt-4.1", "gpt-4.1-mini", "gpt-4o"]
CHAT_MODEL_DEFAULT: str = "gpt-4.1-mini"
# Cheapest model able to answer a one-token probe
KEY_PROBE_MODEL: str = "gpt-3.5-turbo"

ENGLISH_LEVELS: Tuple[str, ...] = ("A1", "A2", "B1", "B2", "C1", "C2")
ENGLISH_LEVEL_DEFAULT: str = "B1"

SOURCE_LANGUAGE: str = "English"
TARGET_LANGUAGE: str = "Ukrainian"

SYSTEM_INSTRUCTION: str = (
    f"You are a helpful assistant for language learning, specializing in {SOURCE_LANGUAGE} and {TARGET_LANGUAGE}."
)

TEXT_MAX_LENGTH: int = 200

TEMPERATURE_GENERATE: float = 0.7
TEMPERATURE_REGENERATE: float = 0.8

MAX_TOKENS_STRUCTURED: int = 600
MAX_TOKENS_SINGLE_FIELD: int = 300

EXAMPLES_MAX: int = 3

# ==========================
# Audio / TTS settings
# ==========================

TTS_MODELS: List[str] = ["tts-1", "tts-1-hd", "gpt-4o-mini-tts"]
TTS_MODEL_DEFAULT: str = "tts-1"
# Only these models accept free-text style instructions
TTS_INSTRUCTION_MODELS: Tuple[str, ...] = ("gpt-4o-mini-tts",)
# Exact ids reported as speech-capable besides substring matches
TTS_KNOWN_MODEL_IDS: Tuple[str, ...] = ("tts-1", "tts-1-hd")
TTS_MODEL_SUBSTRINGS: Tuple[str, ...] = ("tts", "speech")

TTS_VOICES: List[str] = ["alloy", "ash", "coral", "echo", "fable", "onyx", "nova", "sage", "shimmer"]
TTS_VOICE_DEFAULT: str = "alloy"

TTS_RESPONSE_FORMATS: Dict[str, str] = {
    "mp3": "audio/mpeg",
    "opus": "audio/ogg",
    "aac": "audio/aac",
    "flac": "audio/flac",
}
TTS_RESPONSE_FORMAT_DEFAULT: str = "mp3"

TTS_SPEED_MIN: float = 0.25
TTS_SPEED_MAX: float = 4.0
TTS_SPEED_DEFAULT: float = 1.0

TTS_INPUT_MAX_CHARS: int = 4096
TTS_CUSTOM_INSTRUCTIONS_MAX: int = 500
TTS_TEST_PHRASE: str = "Test TTS functionality"

# Documented caller-side timeout; the SDK abandons the call after this many seconds
SPEECH_TIMEOUT_SECONDS: float = 30.0

AUDIO_CACHE_CAPACITY: int = 100

VOICE_STYLE_DEFAULT: str = "neutral"
VOICE_STYLE_INSTRUCTIONS: Dict[str, str] = {
    "neutral": "Speak naturally and clearly with neutral tone.",
    "formal": (
        "Voice: Clear, authoritative, and composed, projecting confidence and professionalism. "
        "Tone: Neutral and informative, maintaining a balance between formality and approachability."
    ),
    "calm": (
        "Voice Affect: Calm, composed, and reassuring; project quiet authority and confidence. "
        "Tone: Sincere, empathetic, and gently authoritative."
    ),
    "dramatic": (
        "Voice Affect: Low, hushed, and suspenseful; convey tension and intrigue. "
        "Tone: Deeply serious and mysterious, maintaining an undercurrent of unease."
    ),
    "educational": (
        "Voice: Clear and engaging, suitable for learning. "
        "Pace: Moderate and well-structured for comprehension. "
        "Tone: Encouraging and instructive."
    ),
}

# ==========================
# Default user settings
# ==========================

DEFAULT_TTS_SETTINGS: Dict[str, Any] = {
    "model": TTS_MODEL_DEFAULT,
    "voice": TTS_VOICE_DEFAULT,
    "speed": TTS_SPEED_DEFAULT,
    "responseFormat": TTS_RESPONSE_FORMAT_DEFAULT,
    "voiceStyle": VOICE_STYLE_DEFAULT,
    "customInstructions": "",
}

DEFAULT_GENERAL_SETTINGS: Dict[str, Any] = {
    "cacheAudio": True,
    "defaultEnglishLevel": ENGLISH_LEVEL_DEFAULT,
}

DEFAULT_AI_SETTINGS: Dict[str, Any] = {
    "chatgptModel": CHAT_MODEL_DEFAULT,
}

# ==========================
# Options catalog (settings dropdowns)
# ==========================

AVAILABLE_OPTIONS: Dict[str, List[Dict[str, str]]] = {
    "models": [
        {"id": "tts-1", "name": "TTS-1 (Standard)", "description": "Fast, good quality"},
        {"id": "tts-1-hd", "name": "TTS-1 HD", "description": "Higher quality, slower"},
        {"id": "gpt-4o-mini-tts", "name": "GPT-4o Mini TTS", "description": "Advanced model with custom instructions"},
    ],
    "voices": [
        {"id": "alloy", "name": "Alloy", "description": "Neutral, versatile"},
        {"id": "ash", "name": "Ash", "description": "Clear, professional"},
        {"id": "coral", "name": "Coral", "description": "Warm, friendly"},
        {"id": "echo", "name": "Echo", "description": "Deep, resonant"},
        {"id": "fable", "name": "Fable", "description": "Expressive, storytelling"},
        {"id": "onyx", "name": "Onyx", "description": "Strong, confident"},
        {"id": "nova", "name": "Nova", "description": "Bright, energetic"},
        {"id": "sage", "name": "Sage", "description": "Wise, calm"},
        {"id": "shimmer", "name": "Shimmer", "description": "Gentle, soothing"},
    ],
    "voiceStyles": [
        {"id": "neutral", "name": "Neutral", "description": "Natural and clear delivery"},
        {"id": "formal", "name": "Formal", "description": "Professional and authoritative"},
        {"id": "calm", "name": "Calm", "description": "Reassuring and confident"},
        {"id": "dramatic", "name": "Dramatic", "description": "Tense and intriguing"},
        {"id": "educational", "name": "Educational", "description": "Clear and easy to follow for learners"},
    ],
    "responseFormats": [
        {"id": "mp3", "name": "MP3", "description": "Standard quality, widely supported"},
        {"id": "opus", "name": "Opus", "description": "Good compression, modern format"},
        {"id": "aac", "name": "AAC", "description": "High quality, Apple preferred"},
        {"id": "flac", "name": "FLAC", "description": "Lossless quality, large files"},
    ],
    "englishLevels": [
        {"id": "A1", "name": "A1 - Beginner", "description": "Basic words and phrases"},
        {"id": "A2", "name": "A2 - Elementary", "description": "Simple everyday expressions"},
        {"id": "B1", "name": "B1 - Intermediate", "description": "Conversation on familiar topics"},
        {"id": "B2", "name": "B2 - Upper intermediate", "description": "Fluent conversation with native speakers"},
        {"id": "C1", "name": "C1 - Advanced", "description": "Complex texts and abstract topics"},
        {"id": "C2", "name": "C2 - Proficient", "description": "Near-native command"},
    ],
    "chatgptModels": [
        {"id": "gpt-4.1", "name": "GPT-4.1", "description": "Most capable model, best results"},
        {"id": "gpt-4.1-mini", "name": "GPT-4.1 Mini", "description": "Best balance of quality and cost (recommended)"},
        {"id": "gpt-4o", "name": "GPT-4o", "description": "Fast and efficient with good quality"},
    ],
    "apiKeySources": [
        {"id": "system", "name": "System key", "description": "Use the shared key configured by the operator"},
        {"id": "user", "name": "Personal key", "description": "Use your own API key"},
    ],
}

# ==========================
# Messages and hints
# ==========================

MESSAGES: Dict[str, str] = {
    "text_required": "Text is required",
    "text_too_long_fmt": "Text must be at most {limit} characters",
    "level_required": "English level is required",
    "level_invalid_fmt": "Unknown English level '{level}'",
    "prompt_type_invalid": "promptType must be a string",
    "card_not_found": "Flashcard not found",
    "no_api_key": "No OpenAI API key available",
    "no_api_key_details": "Please configure an API key in Settings",
    "invalid_key_format": "Invalid OpenAI API key format",
    "invalid_key_format_details": f"OpenAI API keys must start with '{API_KEY_PREFIX}'",
    "invalid_key": "Invalid OpenAI API key",
    "invalid_key_details": "API key may be expired, invalid, or have insufficient permissions",
    "invalid_key_action": "Check your API key in Settings",
    "rate_limited": "OpenAI API rate limit exceeded",
    "rate_limited_details": "Too many requests to OpenAI API",
    "rate_limited_action": "Please try again later",
    "quota_exceeded": "OpenAI API quota exceeded",
    "quota_exceeded_details": "Insufficient credits or billing issue",
    "quota_exceeded_action": "Please check your OpenAI billing",
    "invalid_tts_request": "Invalid request to OpenAI API",
    "invalid_tts_request_action": "Check your TTS settings",
    "unreachable": "Cannot connect to OpenAI API",
    "unreachable_details": "Network connectivity issue",
    "unreachable_action": "Check your internet connection",
    "generation_failed": "Error generating content",
    "generation_failed_details": "Error occurred while generating content with AI",
    "speech_failed": "Error generating speech",
    "speech_failed_details": "Internal server error occurred while generating speech",
    "unparseable": "Couldn't parse AI response as JSON",
    "examples_regenerated": "Examples regenerated successfully",
    "no_examples_returned": "AI response did not contain any examples",
    "api_key_required": "API key is required",
    "api_key_required_details": "Enter your OpenAI API key",
    "api_key_patch_rejected": "API key cannot be set through a settings update",
    "api_key_patch_rejected_details": "Use the validate-api-key endpoint to test and save a personal key",
    "api_key_saved": "API key is valid and has been saved",
    "api_key_saved_details": "Key tested and saved. Switched to using your personal key.",
    "api_key_works_fmt": "{source} API key works",
    "cache_cleared": "Audio cache cleared",
    "models_retrieved": "Models retrieved successfully",
    "tts_test_ok": "TTS works with the current settings",
    "internal_error": "Internal Server Error",
    "auth_required": "Authentication required",
}


# ==========================
# Flask application
# ==========================

class Config:
    """Flask configuration; subclass in tests to override."""

    SECRET_KEY = os.environ.get("SECRET_KEY") or "change-me-in-production"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FILE = os.environ.get("LOG_FILE") or None
    JSON_SORT_KEYS = False
    TESTING = False

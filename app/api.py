"""JSON API blueprint: generation, speech and settings routes."""
from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Dict

from flask import Blueprint, Response, current_app, g, jsonify, request

from config.settings import MESSAGES
from core import audio, generation, user_settings
from core.errors import ClientInputError, FlashcardAIError
from core.credentials import PERSONAL_KEY_FIELD

__all__ = ["api_bp", "require_user"]

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__, url_prefix="/api")

USER_HEADER = "X-User-Id"


def _deps() -> Dict[str, Any]:
    from app.app import EXTENSION_KEY

    return current_app.extensions[EXTENSION_KEY]


def _operator_key() -> str:
    return _deps()["operator_key_getter"]()


def _json_body() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ClientInputError("Invalid request body", "Expected a JSON object")
    return body


def require_user(view):
    """Identity comes from the auth layer in front of us, passed as a header."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        user_id = (request.headers.get(USER_HEADER) or "").strip()
        if not user_id:
            return jsonify({"message": MESSAGES["auth_required"]}), 401
        g.user_id = user_id
        return view(*args, **kwargs)

    return wrapper


@api_bp.errorhandler(FlashcardAIError)
def handle_classified_error(error: FlashcardAIError):
    if isinstance(error, ClientInputError):
        logger.info("Rejected request: %s", error.message, extra={"path": request.path})
    else:
        logger.warning(
            "Request failed: %s",
            error.message,
            extra={"path": request.path, "status": error.status, "error_class": type(error).__name__},
        )
    return jsonify(error.to_dict()), error.status


@api_bp.errorhandler(Exception)
def handle_unexpected_error(error: Exception):
    logger.exception("Unhandled error", extra={"path": request.path})
    return jsonify({"message": MESSAGES["internal_error"]}), 500


# -----------------
# Generation
# -----------------

@api_bp.route("/openai/generate-flashcard", methods=["POST"])
@require_user
def generate_flashcard():
    body = _json_body()
    deps = _deps()
    outcome = generation.generate_content(
        g.user_id,
        body.get("text"),
        body.get("englishLevel"),
        body.get("promptType"),
        store=deps["store"],
        operator_key=_operator_key(),
        client_factory=deps["client_factory"],
    )
    return jsonify(outcome.to_dict())


@api_bp.route("/flashcards/<card_id>/regenerate-examples", methods=["POST"])
@require_user
def regenerate_examples(card_id: str):
    deps = _deps()
    payload = generation.regenerate_examples_for_card(
        card_id,
        g.user_id,
        store=deps["store"],
        operator_key=_operator_key(),
        client_factory=deps["client_factory"],
    )
    return jsonify(payload)


# -----------------
# Speech
# -----------------

@api_bp.route("/tts/speech", methods=["POST"])
@require_user
def speech():
    body = _json_body()
    deps = _deps()
    result = audio.synthesize_speech(
        g.user_id,
        body.get("text"),
        store=deps["store"],
        operator_key=_operator_key(),
        cache=deps["cache"],
        client_factory=deps["client_factory"],
    )
    response = Response(result.audio, mimetype=result.content_type)
    response.headers["Content-Length"] = str(len(result.audio))
    response.headers["X-Audio-Source"] = "cache" if result.cache_hit else "generated"
    response.headers["X-API-Key-Source"] = result.api_key_info["effectiveSource"]
    response.headers["X-TTS-Model"] = result.model
    response.headers["X-TTS-Voice"] = result.voice
    return response


@api_bp.route("/tts/test", methods=["POST"])
@require_user
def speech_test():
    deps = _deps()
    return jsonify(
        audio.test_speech_settings(
            g.user_id,
            store=deps["store"],
            operator_key=_operator_key(),
            client_factory=deps["client_factory"],
        )
    )


@api_bp.route("/tts/cache", methods=["DELETE"])
@require_user
def clear_speech_cache():
    cleared = audio.clear_audio_cache(_deps()["cache"])
    return jsonify({"message": MESSAGES["cache_cleared"], "cleared_entries": cleared})


@api_bp.route("/tts/models", methods=["GET"])
@require_user
def speech_models():
    deps = _deps()
    return jsonify(
        audio.list_available_models(
            g.user_id,
            store=deps["store"],
            operator_key=_operator_key(),
            client_factory=deps["client_factory"],
        )
    )


# -----------------
# Settings
# -----------------

@api_bp.route("/settings", methods=["GET"])
@require_user
def get_settings():
    return jsonify(user_settings.get_settings_view(_deps()["store"], g.user_id, _operator_key()))


@api_bp.route("/settings", methods=["PUT"])
@require_user
def update_settings():
    view = user_settings.update_settings(_deps()["store"], g.user_id, _json_body(), _operator_key())
    return jsonify(view)


@api_bp.route("/settings/validate-api-key", methods=["POST"])
@require_user
def validate_api_key():
    deps = _deps()
    payload = user_settings.validate_and_save_api_key(
        deps["store"],
        g.user_id,
        _json_body().get(PERSONAL_KEY_FIELD),
        _operator_key(),
        client_factory=deps["client_factory"],
    )
    return jsonify(payload)


@api_bp.route("/settings/test-current-key", methods=["GET"])
@require_user
def test_current_key():
    deps = _deps()
    payload = user_settings.test_current_api_key(
        deps["store"],
        g.user_id,
        _operator_key(),
        client_factory=deps["client_factory"],
    )
    return jsonify(payload)


@api_bp.route("/settings/reset", methods=["POST"])
@require_user
def reset_settings():
    return jsonify(user_settings.reset_settings(_deps()["store"], g.user_id, _operator_key()))


@api_bp.route("/settings/options", methods=["GET"])
@require_user
def settings_options():
    return jsonify(user_settings.available_options())

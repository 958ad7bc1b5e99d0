"""
core/errors.py: error taxonomy for provider-facing operations.

Every classified error carries a short message, a longer detail string and,
where the user can do something about it, a suggested action. Provider
exceptions are converted exactly once, by `classify_provider_error`, at the
orchestrator boundary.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

import openai

from config.settings import MESSAGES

__all__ = [
    "FlashcardAIError",
    "ClientInputError",
    "CardNotFound",
    "NoCredentialAvailable",
    "InvalidCredential",
    "InvalidCredentialFormat",
    "RateLimited",
    "QuotaExceeded",
    "InvalidTTSRequest",
    "ProviderUnreachable",
    "GenerationFailed",
    "classify_provider_error",
]


class FlashcardAIError(Exception):
    """Base class for classified, user-facing errors."""

    status: int = 500

    def __init__(
        self,
        message: str,
        details: str = "",
        action: Optional[str] = None,
        *,
        status: Optional[int] = None,
        api_key_info: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.action = action
        if status is not None:
            self.status = status
        self.api_key_info = api_key_info
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"message": self.message, "details": self.details}
        if self.action:
            payload["action"] = self.action
        if self.api_key_info is not None:
            payload["apiKeyInfo"] = self.api_key_info
        return payload


class ClientInputError(FlashcardAIError):
    """Missing or invalid request field. Never retried, never a system fault."""

    status = 400


class CardNotFound(FlashcardAIError):
    status = 404


class NoCredentialAvailable(FlashcardAIError):
    """Neither the personal nor the operator key is usable."""

    status = 500

    def __init__(self, api_key_info: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            MESSAGES["no_api_key"],
            MESSAGES["no_api_key_details"],
            api_key_info=api_key_info,
        )


class InvalidCredential(FlashcardAIError):
    status = 401


class InvalidCredentialFormat(FlashcardAIError):
    status = 500


class RateLimited(FlashcardAIError):
    status = 429


class QuotaExceeded(FlashcardAIError):
    status = 402


class InvalidTTSRequest(FlashcardAIError):
    status = 400


class ProviderUnreachable(FlashcardAIError):
    status = 503


class GenerationFailed(FlashcardAIError):
    """Catch-all for provider failures that match no other class."""

    status = 500


def _status_of(exc: Exception) -> Optional[int]:
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def _is_connection_error(exc: Exception) -> bool:
    if isinstance(exc, (openai.APIConnectionError, ConnectionError)):
        return True
    code = getattr(exc, "code", None)
    return code in {"ENOTFOUND", "ECONNREFUSED"}


def classify_provider_error(
    exc: Exception,
    *,
    speech: bool = False,
    api_key_info: Optional[Dict[str, Any]] = None,
) -> FlashcardAIError:
    """Map a provider exception onto the error taxonomy.

    `speech=True` enables the two speech-only classes (malformed request and
    unreachable provider); on the generation path those fall into
    `GenerationFailed`.
    """
    if isinstance(exc, FlashcardAIError):
        return exc

    status = _status_of(exc)
    msg = str(exc).lower()
    common = {"api_key_info": api_key_info, "original_error": exc}

    if status == 401 or "incorrect api key" in msg:
        return InvalidCredential(
            MESSAGES["invalid_key"],
            MESSAGES["invalid_key_details"],
            MESSAGES["invalid_key_action"],
            **common,
        )
    # Billing exhaustion is reported as 429 with "quota" in the body, so it is checked first
    if status == 402 or "quota" in msg:
        return QuotaExceeded(
            MESSAGES["quota_exceeded"],
            MESSAGES["quota_exceeded_details"],
            MESSAGES["quota_exceeded_action"],
            **common,
        )
    if status == 429 or "rate limit" in msg:
        return RateLimited(
            MESSAGES["rate_limited"],
            MESSAGES["rate_limited_details"],
            MESSAGES["rate_limited_action"],
            **common,
        )
    if speech and status == 400:
        return InvalidTTSRequest(
            MESSAGES["invalid_tts_request"],
            str(exc),
            MESSAGES["invalid_tts_request_action"],
            **common,
        )
    if speech and _is_connection_error(exc):
        return ProviderUnreachable(
            MESSAGES["unreachable"],
            MESSAGES["unreachable_details"],
            MESSAGES["unreachable_action"],
            **common,
        )

    if speech:
        message, details = MESSAGES["speech_failed"], MESSAGES["speech_failed_details"]
    else:
        message, details = MESSAGES["generation_failed"], MESSAGES["generation_failed_details"]
    return GenerationFailed(
        message,
        details,
        status=status if status is not None and status >= 400 else None,
        **common,
    )

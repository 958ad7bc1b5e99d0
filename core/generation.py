"""core.generation

Оркестрация генерации контента карточки: проверка входных данных,
выбор ключа API, построение промпта, вызов модели, разбор ответа.

Модуль не зависит от Flask. Ошибки провайдера классифицируются ровно
один раз, здесь, через `classify_provider_error`; повторов нет.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from config.settings import (
    CHAT_MODEL_DEFAULT,
    ENGLISH_LEVEL_DEFAULT,
    ENGLISH_LEVELS,
    MAX_TOKENS_SINGLE_FIELD,
    MAX_TOKENS_STRUCTURED,
    MESSAGES,
    SYSTEM_INSTRUCTION,
    TEMPERATURE_GENERATE,
    TEMPERATURE_REGENERATE,
    TEXT_MAX_LENGTH,
)
from core.cards import load_owned_card, migrate_legacy_example, save_card_examples
from core.credentials import EffectiveCredentialInfo, resolve_effective_credential
from core.errors import (
    ClientInputError,
    GenerationFailed,
    NoCredentialAvailable,
    classify_provider_error,
)
from core.llm_clients import create_client, get_response_text, send_chat_request
from core.parsing import ParseFailure, StructuredCardContent, extract_examples, parse_card_response
from core.prompts import STRUCTURED_KINDS, build_prompt, build_regenerate_examples_prompt, normalize_kind
from core.store import DocumentStore
from core.user_settings import ensure_settings

__all__ = [
    "GenerationRequest",
    "GenerationOutcome",
    "generate_content",
    "regenerate_examples_for_card",
]

logger = logging.getLogger(__name__)

ClientFactory = Callable[..., Any]


@dataclass
class GenerationRequest:
    """Проверенный запрос на генерацию одного поля или целой карточки."""

    lexical_item: str
    level: str
    kind: str

    @classmethod
    def from_input(cls, text: Any, level: Any, kind: Any) -> "GenerationRequest":
        if not isinstance(text, str) or not text.strip():
            raise ClientInputError(MESSAGES["text_required"])
        if len(text) > TEXT_MAX_LENGTH:
            raise ClientInputError(MESSAGES["text_too_long_fmt"].format(limit=TEXT_MAX_LENGTH))
        if not level:
            raise ClientInputError(MESSAGES["level_required"])
        if level not in ENGLISH_LEVELS:
            raise ClientInputError(MESSAGES["level_invalid_fmt"].format(level=level))
        if kind is not None and not isinstance(kind, str):
            raise ClientInputError(MESSAGES["prompt_type_invalid"])
        return cls(lexical_item=text, level=level, kind=normalize_kind(kind))

    @property
    def max_tokens(self) -> int:
        return MAX_TOKENS_STRUCTURED if self.kind in STRUCTURED_KINDS else MAX_TOKENS_SINGLE_FIELD


@dataclass
class GenerationOutcome:
    """Результат генерации. `result is None` означает, что JSON не разобран."""

    result: Any
    raw: str
    parsed: bool
    api_key_info: Dict[str, Any]
    model_used: str
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.result is None:
            return {
                "raw": self.raw,
                "parsed": False,
                "message": self.message,
                "apiKeyInfo": self.api_key_info,
                "modelUsed": self.model_used,
            }
        result = self.result.to_dict() if isinstance(self.result, StructuredCardContent) else self.result
        return {
            "result": result,
            "raw": self.raw,
            "parsed": self.parsed,
            "apiKeyInfo": self.api_key_info,
            "modelUsed": self.model_used,
        }


def _chat_model(settings: Dict[str, Any]) -> str:
    return (settings.get("aiSettings") or {}).get("chatgptModel") or CHAT_MODEL_DEFAULT


def _resolve_or_raise(settings: Dict[str, Any], operator_key: Optional[str]) -> Tuple[str, EffectiveCredentialInfo]:
    credential, info = resolve_effective_credential(settings, operator_key)
    if credential is None:
        raise NoCredentialAvailable(info.to_dict())
    return credential, info


def _complete(
    client_factory: ClientFactory,
    credential: str,
    info: EffectiveCredentialInfo,
    *,
    model: str,
    prompt: str,
    temperature: float,
    max_tokens: int,
    log_extra: Dict[str, Any],
) -> str:
    try:
        client = client_factory(credential)
        response = send_chat_request(
            client,
            model=model,
            system_instruction=SYSTEM_INSTRUCTION,
            prompt=prompt,
            temperature=temperature,
            max_tokens=max_tokens,
        )
    except Exception as exc:  # noqa: BLE001
        error = classify_provider_error(exc, api_key_info=info.to_dict())
        if isinstance(error, GenerationFailed):
            logger.exception("Generation request failed", extra={**log_extra, "stage": "llm_request"})
        else:
            logger.warning(
                "Generation request rejected",
                extra={**log_extra, "stage": "llm_request", "error_class": type(error).__name__},
            )
        raise error from exc
    logger.debug("Generation request completed", extra=log_extra)
    return get_response_text(response)


def generate_content(
    user_id: str,
    text: Any,
    level: Any,
    kind: Any = None,
    *,
    store: DocumentStore,
    operator_key: Optional[str],
    client_factory: ClientFactory = create_client,
) -> GenerationOutcome:
    """Сгенерировать одно поле карточки или всю карточку (`fullCard`).

    Неразобранный JSON для `fullCard` не является ошибкой: возвращается
    исход с `result=None`, сырой ответ и сообщение для пользователя.
    """
    request = GenerationRequest.from_input(text, level, kind)
    settings = ensure_settings(store, user_id)
    credential, info = _resolve_or_raise(settings, operator_key)
    model = _chat_model(settings)
    log_extra = {
        "user_id": user_id,
        "model": model,
        "level": request.level,
        "kind": request.kind,
        "key_source": info.effective_source,
    }

    raw = _complete(
        client_factory,
        credential,
        info,
        model=model,
        prompt=build_prompt(request.lexical_item, request.level, request.kind),
        temperature=TEMPERATURE_GENERATE,
        max_tokens=request.max_tokens,
        log_extra=log_extra,
    )

    outcome = parse_card_response(raw, request.kind, request.lexical_item)
    if isinstance(outcome, ParseFailure):
        logger.warning("Response parsing failed", extra={**log_extra, "stage": "parse_response"})
        return GenerationOutcome(
            result=None,
            raw=outcome.raw,
            parsed=False,
            api_key_info=info.to_dict(),
            model_used=model,
            message=MESSAGES["unparseable"],
        )
    return GenerationOutcome(
        result=outcome.result,
        raw=outcome.raw,
        parsed=outcome.parsed,
        api_key_info=info.to_dict(),
        model_used=model,
    )


def regenerate_examples_for_card(
    card_id: str,
    user_id: str,
    *,
    store: DocumentStore,
    operator_key: Optional[str],
    client_factory: ClientFactory = create_client,
) -> Dict[str, Any]:
    """Заменить примеры карточки тремя новыми.

    Пустой список от модели считается ошибкой, и карточка не меняется.
    """
    card = load_owned_card(store, card_id, user_id)
    settings = ensure_settings(store, user_id)
    credential, info = _resolve_or_raise(settings, operator_key)
    model = _chat_model(settings)
    level = (settings.get("generalSettings") or {}).get("defaultEnglishLevel") or ENGLISH_LEVEL_DEFAULT
    existing: List[str] = card.get("examples") or []
    log_extra = {
        "user_id": user_id,
        "card_id": card_id,
        "model": model,
        "key_source": info.effective_source,
    }

    raw = _complete(
        client_factory,
        credential,
        info,
        model=model,
        prompt=build_regenerate_examples_prompt(card.get("text", ""), level, existing),
        temperature=TEMPERATURE_REGENERATE,
        max_tokens=MAX_TOKENS_STRUCTURED,
        log_extra=log_extra,
    )

    examples, _ = extract_examples(raw)
    if not examples:
        logger.warning("No examples in response", extra={**log_extra, "stage": "parse_response"})
        raise GenerationFailed(
            MESSAGES["generation_failed"],
            MESSAGES["no_examples_returned"],
            api_key_info=info.to_dict(),
        )

    saved = migrate_legacy_example(save_card_examples(store, card, examples))
    logger.info("Examples regenerated", extra={**log_extra, "count": len(examples)})
    return {
        "success": True,
        "flashcard": saved,
        "newExamples": examples,
        "message": MESSAGES["examples_regenerated"],
        "apiKeyInfo": info.to_dict(),
        "modelUsed": model,
    }

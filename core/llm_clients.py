"""
core/llm_clients.py

Small wrapper helpers around the OpenAI SDK.
Responsibilities:
- create a client bound to one request's effective API key
- send a single chat completion, speech synthesis or model-list request
  (no retries; failures propagate to the orchestrator for classification)
- extract text, audio bytes and model ids from the various SDK response shapes

This module is Flask-agnostic and contains no HTTP code.
"""
from __future__ import annotations

import base64
import json
import logging
from typing import Any, Dict, List, Optional

from openai import OpenAI

from config.settings import KEY_PROBE_MODEL

__all__ = [
    "create_client",
    "send_chat_request",
    "get_response_text",
    "send_speech_request",
    "list_model_ids",
    "probe_api_key",
]

logger = logging.getLogger(__name__)


def create_client(api_key: str, timeout: Optional[float] = None) -> Any:
    """Create an OpenAI client for one request.

    SDK-level retries are disabled: each call either succeeds once or raises.
    Keep this thin so callers can swap in a fake factory in tests.
    """
    kwargs: Dict[str, Any] = {"api_key": api_key, "max_retries": 0}
    if timeout is not None:
        kwargs["timeout"] = timeout
    return OpenAI(**kwargs)


def send_chat_request(
    client: Any,
    *,
    model: str,
    system_instruction: str,
    prompt: str,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> Any:
    """Send one chat completion with a system and a user message."""
    kwargs: Dict[str, Any] = {
        "model": model,
        "messages": [
            {"role": "system", "content": system_instruction},
            {"role": "user", "content": prompt},
        ],
    }
    if temperature is not None:
        kwargs["temperature"] = temperature
    if max_tokens is not None:
        kwargs["max_tokens"] = max_tokens
    return client.chat.completions.create(**kwargs)


def get_response_text(resp: Any) -> str:
    """Extract the completion text from SDK objects or plain dicts.

    Chat completions expose resp.choices[0].message.content; dict-shaped
    fakes and cached payloads use the same keys.
    """
    if resp is None:
        return ""
    if isinstance(resp, str):
        return resp
    choices = getattr(resp, "choices", None)
    if choices is None and isinstance(resp, dict):
        choices = resp.get("choices")
    if choices:
        first = choices[0]
        message = getattr(first, "message", None)
        if message is None and isinstance(first, dict):
            message = first.get("message")
        content = getattr(message, "content", None)
        if content is None and isinstance(message, dict):
            content = message.get("content")
        if isinstance(content, str):
            return content
    text = getattr(resp, "output_text", None)
    if isinstance(text, str) and text:
        return text
    try:
        return json.dumps(resp, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(resp)


def _extract_bytes(response: object) -> bytes:
    if isinstance(response, (bytes, bytearray)):
        return bytes(response)
    # New SDKs expose .read()
    read = getattr(response, "read", None)
    if callable(read):
        data = read()
        if isinstance(data, bytes):
            return data
    content = getattr(response, "content", None)
    if isinstance(content, (bytes, bytearray)):
        return bytes(content)
    audio_attr = getattr(response, "audio", None)
    if isinstance(audio_attr, (bytes, bytearray)):
        return bytes(audio_attr)
    if isinstance(audio_attr, str):
        return base64.b64decode(audio_attr)
    raise ValueError("Unable to extract audio bytes from response")


def send_speech_request(
    client: Any,
    *,
    model: str,
    voice: str,
    input_text: str,
    response_format: str,
    speed: float,
    instructions: Optional[str] = None,
) -> bytes:
    """Synthesize speech and return the raw audio bytes."""
    if not input_text:
        raise ValueError("Text for TTS is empty")
    kwargs: Dict[str, Any] = {
        "model": model,
        "voice": voice,
        "input": input_text,
        "response_format": response_format,
        "speed": speed,
    }
    if instructions:
        kwargs["instructions"] = instructions
    response = client.audio.speech.create(**kwargs)
    return _extract_bytes(response)


def list_model_ids(client: Any) -> List[str]:
    """Return model ids from the provider catalogue, tolerating list/page shapes."""
    listing = client.models.list()
    data = getattr(listing, "data", None)
    if data is None and isinstance(listing, dict):
        data = listing.get("data")
    if data is None:
        data = listing
    ids: List[str] = []
    for model in data or []:
        if isinstance(model, str):
            ids.append(model)
            continue
        model_id = getattr(model, "id", None)
        if model_id is None and isinstance(model, dict):
            model_id = model.get("id")
        if model_id:
            ids.append(str(model_id))
    return ids


def probe_api_key(client: Any) -> None:
    """Spend one token to confirm the key is accepted. Raises on failure."""
    client.chat.completions.create(
        model=KEY_PROBE_MODEL,
        messages=[{"role": "user", "content": "Test"}],
        max_tokens=1,
    )

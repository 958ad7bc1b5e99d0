"""
core/credentials.py: decide which API key a request uses.

Responsibilities:
- check key well-formedness
- apply the stated preference with fallback to the operator key
- build the only serializable views of credential state (`apiKeyInfo` and the
  redacted settings dict); the raw personal key never leaves this module

Pure functions: nothing here reads the environment or the store.
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from config.settings import (
    API_KEY_PREFIX,
    API_KEY_SOURCE_NONE,
    API_KEY_SOURCE_SYSTEM,
    API_KEY_SOURCE_USER,
)

__all__ = [
    "EffectiveCredentialInfo",
    "is_well_formed",
    "describe_credentials",
    "api_key_info",
    "resolve_effective_credential",
    "redacted_settings_view",
]

logger = logging.getLogger(__name__)

PERSONAL_KEY_FIELD = "openaiApiKey"


@dataclass(frozen=True)
class EffectiveCredentialInfo:
    """Which key is in effect and why. Always safe to send to a client."""

    source: str
    has_user_key: bool
    has_system_key: bool
    effective_source: str

    @property
    def is_usable(self) -> bool:
        return self.effective_source != API_KEY_SOURCE_NONE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "hasUserKey": self.has_user_key,
            "hasSystemKey": self.has_system_key,
            "effectiveSource": self.effective_source,
            "hasValidKey": self.is_usable,
        }


def is_well_formed(credential: Optional[str]) -> bool:
    """Non-empty after trimming and carrying the provider's secret-key prefix."""
    if not isinstance(credential, str):
        return False
    trimmed = credential.strip()
    return bool(trimmed) and trimmed.startswith(API_KEY_PREFIX)


def _preference(settings: Mapping[str, Any]) -> str:
    value = settings.get("apiKeySource")
    return value if value == API_KEY_SOURCE_USER else API_KEY_SOURCE_SYSTEM


def describe_credentials(
    settings: Mapping[str, Any], operator_credential: Optional[str]
) -> EffectiveCredentialInfo:
    preference = _preference(settings)
    has_user_key = is_well_formed(settings.get(PERSONAL_KEY_FIELD))
    has_system_key = is_well_formed(operator_credential)

    if preference == API_KEY_SOURCE_USER and has_user_key:
        effective = API_KEY_SOURCE_USER
    elif has_system_key:
        effective = API_KEY_SOURCE_SYSTEM
    else:
        effective = API_KEY_SOURCE_NONE

    return EffectiveCredentialInfo(
        source=preference,
        has_user_key=has_user_key,
        has_system_key=has_system_key,
        effective_source=effective,
    )


def api_key_info(
    settings: Mapping[str, Any], operator_credential: Optional[str]
) -> Dict[str, Any]:
    """The serializable `apiKeyInfo` struct."""
    return describe_credentials(settings, operator_credential).to_dict()


def resolve_effective_credential(
    settings: Mapping[str, Any], operator_credential: Optional[str]
) -> Tuple[Optional[str], EffectiveCredentialInfo]:
    """Return `(key or None, info)` for one request.

    A personal key is used only when the user prefers it and it is well-formed;
    otherwise the operator key is tried. `None` is not an error here; callers
    turn it into `NoCredentialAvailable` before contacting the provider.
    """
    info = describe_credentials(settings, operator_credential)

    if info.effective_source == API_KEY_SOURCE_USER:
        return str(settings.get(PERSONAL_KEY_FIELD)).strip(), info

    if info.source == API_KEY_SOURCE_USER:
        logger.debug("Personal key missing or malformed, falling back to operator key")

    if info.effective_source == API_KEY_SOURCE_SYSTEM:
        return str(operator_credential).strip(), info

    logger.debug("No valid API key available")
    return None, info


def redacted_settings_view(
    settings: Mapping[str, Any], operator_credential: Optional[str]
) -> Dict[str, Any]:
    """Settings as sent to clients: personal key removed, status summary added."""
    view = copy.deepcopy(dict(settings))
    personal = view.pop(PERSONAL_KEY_FIELD, "")
    view["hasApiKey"] = bool(personal)
    view["apiKeyInfo"] = api_key_info(settings, operator_credential)
    return view

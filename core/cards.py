"""Flashcard record access for the regenerate flow."""
from __future__ import annotations

import logging
from typing import Any, Dict, List

from config.settings import MESSAGES
from core.errors import CardNotFound
from core.parsing import normalize_examples
from core.store import CARDS, DocumentStore

__all__ = ["load_owned_card", "save_card_examples", "migrate_legacy_example"]

logger = logging.getLogger(__name__)


def migrate_legacy_example(card: Dict[str, Any]) -> Dict[str, Any]:
    """Expose a legacy singular `example` as `examples` on read. Does not write."""
    examples = card.get("examples")
    if not isinstance(examples, list):
        examples = normalize_examples(examples)
    if not examples and isinstance(card.get("example"), str) and card["example"].strip():
        examples = [card["example"].strip()]
    card["examples"] = examples
    return card


def load_owned_card(store: DocumentStore, card_id: str, user_id: str) -> Dict[str, Any]:
    """Fetch a card by id that belongs to `user_id`; missing and foreign cards look the same."""
    card = store.find_one(CARDS, {"_id": card_id, "userId": user_id})
    if card is None:
        raise CardNotFound(MESSAGES["card_not_found"])
    return migrate_legacy_example(card)


def save_card_examples(store: DocumentStore, card: Dict[str, Any], examples: List[str]) -> Dict[str, Any]:
    """Replace the card's examples wholesale and clear the legacy field."""
    card = dict(card)
    card["examples"] = list(examples)
    card["example"] = ""
    saved = store.save(CARDS, card)
    logger.debug("Card examples replaced", extra={"card_id": saved.get("_id"), "count": len(examples)})
    return saved

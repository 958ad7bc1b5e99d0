"""Flask application factory for the flashcard AI backend."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from flask import Flask

from config.settings import Config, get_operator_api_key
from core.audio import SpeechCache
from core.llm_clients import create_client
from core.store import DocumentStore, InMemoryStore

__all__ = ["create_app", "configure_logging", "EXTENSION_KEY"]

EXTENSION_KEY = "flashcard_ai"

# Package loggers configured here; module loggers propagate to them
_LOGGER_NAMES = ("core", "app")


def configure_logging(app: Flask) -> None:
    """Attach handlers to the package loggers once per process."""
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    for name in _LOGGER_NAMES:
        pkg_logger = logging.getLogger(name)
        pkg_logger.setLevel(level)
        if pkg_logger.handlers:
            continue
        stream = logging.StreamHandler()
        stream.setFormatter(formatter)
        pkg_logger.addHandler(stream)
        log_file = app.config.get("LOG_FILE")
        if log_file:
            handler = logging.FileHandler(log_file, encoding="utf-8")
            handler.setFormatter(formatter)
            pkg_logger.addHandler(handler)


def create_app(
    config_class: type = Config,
    *,
    store: Optional[DocumentStore] = None,
    cache: Optional[SpeechCache] = None,
    client_factory: Optional[Callable[..., Any]] = None,
    operator_key_getter: Optional[Callable[[], str]] = None,
) -> Flask:
    """Create the app. Collaborators default to in-process implementations."""
    app = Flask(__name__)
    app.config.from_object(config_class)
    app.json.sort_keys = bool(app.config.get("JSON_SORT_KEYS", False))

    configure_logging(app)

    deps: Dict[str, Any] = {
        "store": store if store is not None else InMemoryStore(),
        "cache": cache if cache is not None else SpeechCache(),
        "client_factory": client_factory or create_client,
        "operator_key_getter": operator_key_getter or get_operator_api_key,
    }
    app.extensions[EXTENSION_KEY] = deps

    from app.api import api_bp

    app.register_blueprint(api_bp)
    return app

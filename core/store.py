"""
core/store.py: document store interface and an in-process implementation.

The real persistence engine is an external collaborator; the core only needs
key-based find/save/delete over three collections.
"""
from __future__ import annotations

import copy
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

__all__ = [
    "CARDS",
    "CATEGORIES",
    "SETTINGS",
    "DocumentStore",
    "InMemoryStore",
]

CARDS = "flashcards"
CATEGORIES = "categories"
SETTINGS = "user_settings"

Document = Dict[str, Any]


class DocumentStore(ABC):
    """
    Abstract base class for the document store used by the core.
    """

    @abstractmethod
    def find_one(self, collection: str, query: Dict[str, Any]) -> Optional[Document]:
        """
        Return the first document whose fields equal every item of `query`, or None.
        """
        pass

    @abstractmethod
    def find(self, collection: str, query: Dict[str, Any]) -> List[Document]:
        """
        Return all documents matching `query`.
        """
        pass

    @abstractmethod
    def save(self, collection: str, document: Document) -> Document:
        """
        Insert or replace a document. Documents without an `_id` get one.
        """
        pass

    @abstractmethod
    def delete(self, collection: str, query: Dict[str, Any]) -> int:
        """
        Delete all documents matching `query`; return how many were removed.
        """
        pass


def _matches(document: Document, query: Dict[str, Any]) -> bool:
    return all(document.get(key) == value for key, value in query.items())


class InMemoryStore(DocumentStore):
    """Dict-backed store. Returned documents are copies; writes replace whole documents."""

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, Document]] = {}
        self._lock = threading.Lock()

    def find_one(self, collection: str, query: Dict[str, Any]) -> Optional[Document]:
        with self._lock:
            for doc in self._collections.get(collection, {}).values():
                if _matches(doc, query):
                    return copy.deepcopy(doc)
        return None

    def find(self, collection: str, query: Dict[str, Any]) -> List[Document]:
        with self._lock:
            return [
                copy.deepcopy(doc)
                for doc in self._collections.get(collection, {}).values()
                if _matches(doc, query)
            ]

    def save(self, collection: str, document: Document) -> Document:
        stored = copy.deepcopy(document)
        stored.setdefault("_id", uuid.uuid4().hex)
        with self._lock:
            self._collections.setdefault(collection, {})[stored["_id"]] = stored
        return copy.deepcopy(stored)

    def delete(self, collection: str, query: Dict[str, Any]) -> int:
        with self._lock:
            docs = self._collections.get(collection, {})
            doomed = [key for key, doc in docs.items() if _matches(doc, query)]
            for key in doomed:
                del docs[key]
        return len(doomed)

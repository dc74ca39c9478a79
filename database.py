"""
Document store

The whole dataset lives in one JSON document:

    {"users": [...], "products": [...], "orders": [...]}

There is no partial read or write. Every read loads a fresh snapshot and
every mutation rewrites the full document, so callers must modify and save
the same snapshot they loaded. Mutations go through ``transaction()``, which
serializes writers within the process.
"""

import copy
import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from typing import Any, Dict, Optional

from bson import ObjectId

DATABASE_PATH = os.getenv("DATABASE_PATH", "database.json")

COLLECTIONS = ("users", "products", "orders")

logger = logging.getLogger(__name__)

Document = Dict[str, Any]


class StorageError(Exception):
    """Raised when the document cannot be read or written."""


def empty_document() -> Document:
    return {name: [] for name in COLLECTIONS}


def new_id() -> str:
    return str(ObjectId())


def find_by_id(collection: list, doc_id: str) -> Optional[dict]:
    return next((doc for doc in collection if doc.get("id") == doc_id), None)


class DocumentStore:
    """Load/save the full document. Subclasses implement ``_read`` and ``_write``."""

    # shared by every store so all writers in the process are serialized
    _lock = threading.RLock()

    def load(self) -> Document:
        document = self._read()
        for name in COLLECTIONS:
            document.setdefault(name, [])
        return document

    def save(self, document: Document) -> None:
        self._write(document)

    @contextmanager
    def transaction(self):
        with self._lock:
            yield

    def _read(self) -> Document:
        raise NotImplementedError

    def _write(self, document: Document) -> None:
        raise NotImplementedError


class JsonFileStore(DocumentStore):
    def __init__(self, path: str = DATABASE_PATH):
        self.path = path

    def _read(self) -> Document:
        if not os.path.exists(self.path):
            return empty_document()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("Error reading database %s: %s", self.path, e)
            raise StorageError(f"Could not read {self.path}") from e
        if not isinstance(document, dict):
            raise StorageError(f"{self.path} does not contain a JSON object")
        return document

    def _write(self, document: Document) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".database-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(document, f, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                os.unlink(tmp_path)
                raise
        except (OSError, TypeError, ValueError) as e:
            logger.error("Error writing database %s: %s", self.path, e)
            raise StorageError(f"Could not write {self.path}") from e


class MemoryStore(DocumentStore):
    """In-memory store; hands out deep copies so snapshots never alias."""

    def __init__(self, document: Optional[Document] = None):
        self.document = copy.deepcopy(document) if document is not None else empty_document()

    def _read(self) -> Document:
        return copy.deepcopy(self.document)

    def _write(self, document: Document) -> None:
        self.document = copy.deepcopy(document)


store: DocumentStore = JsonFileStore()


def get_store() -> DocumentStore:
    return store

"""JSON backed document database with Firestore-like collections."""

from __future__ import annotations

import copy
import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from travelmap.errors import DocumentNotFoundError, PersistenceError

logger = logging.getLogger(__name__)

TRIPS_COLLECTION = "trips"
PHOTOS_COLLECTION = "photos"
FAMILY_COLLECTION = "familyMembers"


class _Absent:
    """Marker for a field that has no value and must not be persisted."""

    _instance: Optional["_Absent"] = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()


def sanitize(value: Any) -> Any:
    """Strip ``ABSENT`` recursively from dicts and lists; ``None`` is kept."""
    if isinstance(value, list):
        return [item for item in (sanitize(v) for v in value) if item is not ABSENT]
    if isinstance(value, tuple):
        return [item for item in (sanitize(v) for v in value) if item is not ABSENT]
    if isinstance(value, dict):
        out = {}
        for key, item in value.items():
            cleaned = sanitize(item)
            if cleaned is not ABSENT:
                out[key] = cleaned
        return out
    return value


def _reject_absent(value: Any, path: str = "") -> None:
    if value is ABSENT:
        raise PersistenceError(f"Unsupported field value ABSENT at '{path or '<root>'}'")
    if isinstance(value, dict):
        for key, item in value.items():
            _reject_absent(item, f"{path}.{key}" if path else str(key))
    elif isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            _reject_absent(item, f"{path}[{index}]")


class JsonDocumentStore:
    """Collections of JSON documents, one file per collection.

    Reads always return deep copies, so callers can mutate what they get back
    without touching the cached state. Writes are flushed immediately.
    """

    def __init__(self, root: Path) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def _collection_path(self, collection: str) -> Path:
        return self._root / f"{collection}.json"

    def _load(self, collection: str) -> Dict[str, Dict[str, Any]]:
        cached = self._collections.get(collection)
        if cached is not None:
            return cached
        path = self._collection_path(collection)
        if not path.exists():
            documents: Dict[str, Dict[str, Any]] = {}
        else:
            with path.open("r", encoding="utf-8") as handle:
                documents = json.load(handle).get("documents", {})
        self._collections[collection] = documents
        return documents

    def _flush(self, collection: str) -> None:
        path = self._collection_path(collection)
        tmp_path = path.with_suffix(".json.tmp")
        payload = {"documents": self._collections.get(collection, {})}
        try:
            with tmp_path.open("w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2, ensure_ascii=False)
            tmp_path.replace(path)
        except (OSError, TypeError, ValueError) as exc:
            # Drop the cache so the next read reflects what is on disk.
            self._collections.pop(collection, None)
            raise PersistenceError(f"Failed to write collection '{collection}': {exc}") from exc

    def collections(self) -> List[str]:
        return sorted(path.stem for path in self._root.glob("*.json"))

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            document = self._load(collection).get(doc_id)
            return copy.deepcopy(document) if document is not None else None

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        _reject_absent(data)
        with self._lock:
            self._load(collection)[doc_id] = copy.deepcopy(data)
            self._flush(collection)
        logger.debug("Wrote %s/%s", collection, doc_id)

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        _reject_absent(fields)
        with self._lock:
            documents = self._load(collection)
            if doc_id not in documents:
                raise DocumentNotFoundError(collection, doc_id)
            documents[doc_id].update(copy.deepcopy(fields))
            self._flush(collection)
        logger.debug("Updated %s/%s fields=%s", collection, doc_id, sorted(fields))

    def delete(self, collection: str, doc_id: str) -> None:
        with self._lock:
            documents = self._load(collection)
            if documents.pop(doc_id, None) is None:
                return
            self._flush(collection)
        logger.debug("Deleted %s/%s", collection, doc_id)

    def list(self, collection: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(doc) for doc in self._load(collection).values()]

    def where(self, collection: str, field: str, value: Any) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                copy.deepcopy(doc)
                for doc in self._load(collection).values()
                if doc.get(field) == value
            ]

"""
Key-value persistence for the store core.

Values are JSON documents stored under string keys. Every read returns a
fresh decoded copy, so callers mutate their own copy and write the whole
collection back with ``set``.

Backends:
- MemoryStore: process-local dict, used for tests and development
- MongoStore: one MongoDB collection, each key kept as {"_id": key, "value": ...}
"""
import json
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from pymongo import MongoClient
from pymongo.collection import Collection

import config

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    backend = "base"

    def __init__(self):
        self._lock = threading.RLock()

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._read(key)
        if raw is None:
            return default
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        self._write(key, json.dumps(value))

    def remove(self, key: str) -> None:
        self._delete(key)

    def has(self, key: str) -> bool:
        return self._read(key) is not None

    @contextmanager
    def locked(self):
        """Hold the store lock across a read-modify-write of one collection."""
        with self._lock:
            yield self

    @abstractmethod
    def keys(self) -> List[str]:
        ...

    @abstractmethod
    def _read(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def _write(self, key: str, raw: str) -> None:
        ...

    @abstractmethod
    def _delete(self, key: str) -> None:
        ...


class MemoryStore(KeyValueStore):
    backend = "memory"

    def __init__(self):
        super().__init__()
        self._data: Dict[str, str] = {}

    def keys(self) -> List[str]:
        return list(self._data)

    def _read(self, key):
        return self._data.get(key)

    def _write(self, key, raw):
        self._data[key] = raw

    def _delete(self, key):
        self._data.pop(key, None)


class MongoStore(KeyValueStore):
    backend = "mongo"

    def __init__(self, collection: Collection):
        super().__init__()
        self.collection = collection

    def keys(self) -> List[str]:
        return [doc["_id"] for doc in self.collection.find({}, {"_id": 1})]

    def _read(self, key):
        doc = self.collection.find_one({"_id": key})
        if doc is None:
            return None
        return json.dumps(doc["value"])

    def _write(self, key, raw):
        self.collection.replace_one({"_id": key}, {"_id": key, "value": json.loads(raw)}, upsert=True)

    def _delete(self, key):
        self.collection.delete_one({"_id": key})


def create_store(backend: Optional[str] = None) -> KeyValueStore:
    backend = backend or config.STORE_BACKEND
    if backend == "memory":
        return MemoryStore()
    if backend == "mongo":
        if not config.DATABASE_URL or not config.DATABASE_NAME:
            raise ValueError("DATABASE_URL and DATABASE_NAME must be set for the mongo store")
        client = MongoClient(config.DATABASE_URL)
        db = client[config.DATABASE_NAME]
        logger.info(f"Using MongoDB store {config.DATABASE_NAME}.{config.STORE_COLLECTION}")
        return MongoStore(db[config.STORE_COLLECTION])
    raise ValueError(f"Unknown store backend: {backend}")


def get_documents(store: KeyValueStore, key: str) -> List[Dict[str, Any]]:
    return store.get(key) or []


def save_documents(store: KeyValueStore, key: str, docs: List[Dict[str, Any]]) -> None:
    store.set(key, docs)

import pytest

import config
from database import KeyValueStore, MemoryStore, MongoStore, create_store, get_documents


class FakeCollection:
    """Dict-backed stand-in for the pymongo collection calls MongoStore makes."""

    def __init__(self):
        self.docs = {}

    def find_one(self, filter):
        doc = self.docs.get(filter["_id"])
        return dict(doc) if doc is not None else None

    def replace_one(self, filter, doc, upsert=False):
        if filter["_id"] in self.docs or upsert:
            self.docs[filter["_id"]] = dict(doc)

    def delete_one(self, filter):
        self.docs.pop(filter["_id"], None)

    def find(self, filter, projection=None):
        return [{"_id": key} for key in self.docs]


def test_memory_store_returns_copies():
    store = MemoryStore()
    store.set("cart", [{"product_id": 1, "quantity": 1}])

    items = store.get("cart")
    items[0]["quantity"] = 99

    assert store.get("cart") == [{"product_id": 1, "quantity": 1}]


def test_remove_and_default():
    store = MemoryStore()
    store.set("auth_token", "abc")
    store.remove("auth_token")
    store.remove("auth_token")

    assert store.get("auth_token") is None
    assert store.get("auth_token", "fallback") == "fallback"
    assert get_documents(store, "orders") == []


def test_mongo_store_keeps_one_document_per_key():
    collection = FakeCollection()
    store = MongoStore(collection)
    store.set("users", [{"id": 1, "name": "Ann"}])
    store.set("is_authenticated", True)
    store.set("users", [{"id": 1, "name": "Ann"}, {"id": 2, "name": "Bob"}])

    assert collection.docs["users"] == {"_id": "users", "value": [{"id": 1, "name": "Ann"}, {"id": 2, "name": "Bob"}]}
    assert store.get("is_authenticated") is True
    assert sorted(store.keys()) == ["is_authenticated", "users"]

    store.remove("is_authenticated")
    assert not store.has("is_authenticated")
    assert store.keys() == ["users"]


def test_mongo_store_returns_copies():
    store = MongoStore(FakeCollection())
    store.set("cart", [{"product_id": 1, "quantity": 1}])

    items = store.get("cart")
    items[0]["quantity"] = 99

    assert store.get("cart") == [{"product_id": 1, "quantity": 1}]


def test_mongo_backend_requires_connection_settings(monkeypatch):
    monkeypatch.setattr(config, "DATABASE_URL", None)
    monkeypatch.setattr(config, "DATABASE_NAME", "store")

    with pytest.raises(ValueError):
        create_store("mongo")


def test_create_store_rejects_unknown_backend():
    assert create_store("memory").backend == "memory"
    with pytest.raises(ValueError):
        create_store("redis")


def test_store_backends_must_implement_storage():
    class Partial(KeyValueStore):
        def keys(self):
            return []

    with pytest.raises(TypeError):
        Partial()

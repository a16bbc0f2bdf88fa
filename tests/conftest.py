import pytest
import requests
from fastapi.testclient import TestClient

from catalog import RemoteCatalog
from core import StoreCore
from database import MemoryStore
from main import app, get_core

API_URL = "http://catalog.test/api"
TIMESTAMP = "2024-01-01T00:00:00Z"


class FakeResponse:
    def __init__(self, status_code, body=None, invalid_json=False):
        self.status_code = status_code
        self._body = body
        self._invalid_json = invalid_json

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._invalid_json:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._body


class FakeCatalogAPI:
    """In-memory stand-in for the remote catalog REST API, used as the HTTP session."""

    def __init__(self):
        self.down = False
        self.fail_status = None
        self.invalid_json = False
        self.wrap_list = False
        self.records = {}
        self.calls = []

    def add(self, product_id, name, price, category=None, stock=10, **extra):
        self.records[product_id] = {
            "id": product_id,
            "name": name,
            "price": price,
            "description": extra.get("description", ""),
            "category": category,
            "image_url": extra.get("image_url"),
            "stock": stock,
            "created_at": TIMESTAMP,
            "updated_at": TIMESTAMP,
        }

    def request(self, method, url, headers=None, json=None, timeout=None):
        self.calls.append({"method": method, "url": url, "headers": headers or {}, "json": json})
        if self.down:
            raise requests.ConnectionError("connection refused")
        if self.fail_status:
            return FakeResponse(self.fail_status, {"error": "internal"})
        if self.invalid_json:
            return FakeResponse(200, invalid_json=True)

        parts = url[len(API_URL):].strip("/").split("/")
        if parts == ["products"]:
            if method == "GET":
                body = list(self.records.values())
                return FakeResponse(200, {"products": body} if self.wrap_list else body)
            if method == "POST":
                new_id = max(self.records, default=100) + 1
                self.records[new_id] = {"id": new_id, "created_at": TIMESTAMP, "updated_at": TIMESTAMP, **json}
                return FakeResponse(201, self.records[new_id])

        product_id = int(parts[1])
        if product_id not in self.records:
            return FakeResponse(404, {"error": "product not found"})
        if method == "GET":
            return FakeResponse(200, self.records[product_id])
        if method == "PUT":
            self.records[product_id].update(json)
            return FakeResponse(200, self.records[product_id])
        if method == "DELETE":
            del self.records[product_id]
            return FakeResponse(204)
        return FakeResponse(405)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def api():
    return FakeCatalogAPI()


@pytest.fixture
def core(store, api):
    return StoreCore(store, remote=RemoteCatalog(API_URL, timeout=1, http=api))


@pytest.fixture
def superuser(core):
    return core.identity.login("super@example.com", "password123")


@pytest.fixture
def admin(core):
    return core.identity.login("admin@example.com", "password123")


@pytest.fixture
def client(core):
    app.dependency_overrides[get_core] = lambda: core
    yield TestClient(app)
    app.dependency_overrides.clear()

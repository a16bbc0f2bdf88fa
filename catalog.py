"""
Product catalog with a remote-primary, local-fallback strategy.

Reads and writes go to the remote catalog API first. When the API cannot be
reached, answers with an error status, or returns a body that cannot be
decoded, the operation is served by the local cache under the ``products``
key instead. The two stores are never reconciled: a write that lands only in
the local cache is invisible to later remote reads, and the other way round.
"""
import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, TypeVar

import requests
from pydantic import ValidationError as SchemaError

import config
from database import KeyValueStore, get_documents, save_documents
from errors import RemoteUnavailable, Unauthenticated, ValidationError
from identity import SessionContext
from schemas import Product, ProductIn, ProductUpdate

logger = logging.getLogger(__name__)

PRODUCTS_KEY = "products"
PLACEHOLDER_IMAGE = "https://via.placeholder.com/150"
DEFAULT_CATEGORY = "Uncategorized"

STARTER_CATALOG = [
    {
        "name": "XYZ Pro Smartphone",
        "price": 599.99,
        "description": "Powerful smartphone with cutting-edge technology",
        "category": "Electronics",
        "stock": 15,
    },
    {
        "name": "UltraBook Laptop",
        "price": 1299.99,
        "description": "Thin and light laptop for professionals",
        "category": "Computers",
        "stock": 8,
    },
    {
        "name": "Wireless Headphones",
        "price": 149.99,
        "description": "Headphones with great sound and noise cancelling",
        "category": "Electronics",
        "stock": 25,
    },
    {
        "name": "FitTrack Smartwatch",
        "price": 249.99,
        "description": "Track your activity and health",
        "category": "Accessories",
        "stock": 12,
    },
]

T = TypeVar("T")


def validate_product(fields: Dict[str, Any], partial: bool = False) -> None:
    """Check name, price and stock. With ``partial`` only supplied fields are checked."""
    if not partial or "name" in fields:
        name = fields.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("name", "Product name is required")
    if not partial or "price" in fields:
        price = fields.get("price")
        if isinstance(price, bool) or not isinstance(price, (int, float)) or not math.isfinite(price) or price <= 0:
            raise ValidationError("price", "Price must be a positive number")
    if not partial or "stock" in fields:
        stock = fields.get("stock")
        if isinstance(stock, bool) or not isinstance(stock, int) or stock < 0:
            raise ValidationError("stock", "Stock must be a non-negative integer")


def product_from_api(record: Dict[str, Any]) -> Product:
    return Product(
        id=record["id"],
        name=record["name"],
        price=float(record["price"]),
        description=record.get("description") or "",
        image=record.get("image_url") or PLACEHOLDER_IMAGE,
        category=record.get("category"),
        stock=record.get("stock") or 0,
        created_at=record.get("created_at"),
        updated_at=record.get("updated_at"),
    )


def product_to_api(fields: Dict[str, Any]) -> Dict[str, Any]:
    payload = {k: v for k, v in fields.items() if k != "image"}
    if "image" in fields:
        payload["image_url"] = fields["image"]
    return payload


class RemoteCatalog:
    """Client for the catalog REST API. Every failure surfaces as RemoteUnavailable."""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None, http: Optional[requests.Session] = None):
        self.base_url = (base_url or config.CATALOG_API_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else config.CATALOG_TIMEOUT_SECONDS
        self.http = http or requests.Session()

    def _headers(self, token: Optional[str] = None) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _request(self, method: str, path: str, token: Optional[str] = None, payload: Optional[dict] = None) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            return self.http.request(method, url, headers=self._headers(token), json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise RemoteUnavailable(f"{method} {url} failed: {e}") from e

    def _check(self, r: requests.Response) -> None:
        if not r.ok:
            raise RemoteUnavailable(f"API error: {r.status_code}")

    def _decode(self, r: requests.Response) -> Any:
        try:
            return r.json()
        except ValueError as e:
            raise RemoteUnavailable(f"Invalid JSON from catalog API: {e}") from e

    def _to_product(self, record: Any) -> Product:
        try:
            return product_from_api(record)
        except (KeyError, TypeError, ValueError, SchemaError) as e:
            raise RemoteUnavailable(f"Malformed product record: {e}") from e

    def list_products(self) -> List[Product]:
        r = self._request("GET", "/products")
        self._check(r)
        data = self._decode(r)
        # API returns a bare list or {products: [...]} / {data: [...]}; normalize
        if isinstance(data, dict):
            data = data.get("products", data.get("data"))
        if not isinstance(data, list):
            raise RemoteUnavailable("Unexpected product list payload")
        return [self._to_product(p) for p in data]

    def get_product(self, product_id: int) -> Optional[Product]:
        r = self._request("GET", f"/products/{product_id}")
        if r.status_code == 404:
            return None
        self._check(r)
        return self._to_product(self._decode(r))

    def create_product(self, fields: Dict[str, Any], token: str) -> Product:
        r = self._request("POST", "/products", token=token, payload=product_to_api(fields))
        self._check(r)
        return self._to_product(self._decode(r))

    def update_product(self, product_id: int, fields: Dict[str, Any], token: str) -> Optional[Product]:
        r = self._request("PUT", f"/products/{product_id}", token=token, payload=product_to_api(fields))
        if r.status_code == 404:
            return None
        self._check(r)
        return self._to_product(self._decode(r))

    def delete_product(self, product_id: int, token: str) -> bool:
        r = self._request("DELETE", f"/products/{product_id}", token=token)
        if r.status_code == 404:
            return False
        self._check(r)
        return True


class LocalCatalog:
    """Product mirror kept in the key-value store, seeded with a starter catalog."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def products(self) -> List[Product]:
        if not self.store.has(PRODUCTS_KEY):
            self._seed()
        return [Product.model_validate(doc) for doc in get_documents(self.store, PRODUCTS_KEY)]

    def _save(self, products: List[Product]) -> None:
        save_documents(self.store, PRODUCTS_KEY, [p.model_dump(mode="json") for p in products])

    def _seed(self) -> None:
        now = datetime.now(timezone.utc)
        products = [
            Product(id=i, image=PLACEHOLDER_IMAGE, created_at=now, updated_at=now, **item)
            for i, item in enumerate(STARTER_CATALOG, start=1)
        ]
        self._save(products)
        logger.info(f"Seeded local catalog with {len(products)} products")

    def get(self, product_id: int) -> Optional[Product]:
        return next((p for p in self.products() if p.id == product_id), None)

    def create(self, fields: Dict[str, Any]) -> Product:
        with self.store.locked():
            products = self.products()
            now = datetime.now(timezone.utc)
            product = Product(
                id=max((p.id for p in products), default=0) + 1,
                created_at=now,
                updated_at=now,
                **fields,
            )
            products.append(product)
            self._save(products)
        return product

    def update(self, product_id: int, fields: Dict[str, Any]) -> Optional[Product]:
        with self.store.locked():
            products = self.products()
            for i, existing in enumerate(products):
                if existing.id == product_id:
                    break
            else:
                logger.error(f"Product {product_id} not found in local catalog")
                return None
            changes = {k: v for k, v in fields.items() if k not in ("id", "created_at")}
            changes["updated_at"] = datetime.now(timezone.utc)
            products[i] = existing.model_copy(update=changes)
            self._save(products)
        return products[i]

    def delete(self, product_id: int) -> bool:
        with self.store.locked():
            products = self.products()
            remaining = [p for p in products if p.id != product_id]
            if len(remaining) == len(products):
                return False
            self._save(remaining)
        return True


class CatalogService:
    def __init__(
        self,
        remote: RemoteCatalog,
        local: LocalCatalog,
        session: SessionContext,
        strict_writes: Optional[bool] = None,
    ):
        self.remote = remote
        self.local = local
        self.session = session
        self.strict_writes = config.CATALOG_STRICT_WRITES if strict_writes is None else strict_writes

    def _with_fallback(self, what: str, remote_call: Callable[[], T], local_call: Callable[[], T]) -> T:
        try:
            return remote_call()
        except RemoteUnavailable as exc:
            logger.warning(f"{what}: {exc}; falling back to local catalog")
            try:
                return local_call()
            except (OSError, ValueError) as local_exc:
                logger.error(f"{what}: local catalog failed too: {local_exc}")
                raise exc from local_exc

    def _require_token(self) -> str:
        token = self.session.token
        if not token:
            raise Unauthenticated("No authentication token found")
        return token

    def _write(self, what: str, remote_call: Callable[[], T], local_call: Callable[[], T]) -> T:
        if self.strict_writes:
            return remote_call()
        return self._with_fallback(what, remote_call, local_call)

    # Reads

    def list(self) -> List[Product]:
        return self._with_fallback("list products", self.remote.list_products, self.local.products)

    def get_by_id(self, product_id: int) -> Optional[Product]:
        return self._with_fallback(
            f"get product {product_id}",
            lambda: self.remote.get_product(product_id),
            lambda: self.local.get(product_id),
        )

    def search(self, term: str) -> List[Product]:
        products = self.list()
        if not term:
            return products
        needle = term.lower()
        return [
            p for p in products
            if needle in p.name.lower()
            or needle in p.description.lower()
            or (p.category and needle in p.category.lower())
        ]

    def filter_by_price(self, min_price: float, max_price: float) -> List[Product]:
        return [p for p in self.list() if min_price <= p.price <= max_price]

    def categories(self) -> List[str]:
        return sorted({p.category for p in self.list() if p.category})

    # Writes

    def create(self, data: ProductIn) -> Product:
        fields = data.model_dump()
        validate_product(fields)
        token = self._require_token()
        outgoing = {**fields, "category": fields.get("category") or DEFAULT_CATEGORY}
        product = self._write(
            "create product",
            lambda: self.remote.create_product(outgoing, token),
            lambda: self.local.create(fields),
        )
        logger.info(f"Created product {product.id} ({product.name})")
        return product

    def update(self, product_id: int, data: ProductUpdate) -> Optional[Product]:
        fields = data.model_dump(exclude_unset=True)
        validate_product(fields, partial=True)
        fields = {k: v for k, v in fields.items() if v is not None or k == "category"}
        token = self._require_token()
        return self._write(
            f"update product {product_id}",
            lambda: self.remote.update_product(product_id, fields, token),
            lambda: self.local.update(product_id, fields),
        )

    def delete(self, product_id: int) -> bool:
        token = self._require_token()
        return self._write(
            f"delete product {product_id}",
            lambda: self.remote.delete_product(product_id, token),
            lambda: self.local.delete(product_id),
        )

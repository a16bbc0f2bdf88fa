import logging
import math
from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Depends, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field
from pymongo.errors import PyMongoError

import config
from core import StoreCore
from database import MongoStore
from errors import RemoteUnavailable, StoreError
from identity import ADMIN_ROLES
from schemas import (
    Address,
    CartItem,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    Product,
    ProductIn,
    ProductUpdate,
    Role,
    User,
)

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Store Core API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_core = StoreCore()


def get_core() -> StoreCore:
    return _core


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


# Helpers
class UserOut(BaseModel):
    id: int
    name: str
    email: str
    role: Role
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(id=user.id, name=user.name, email=user.email, role=user.role, created_at=user.created_at)


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    user: UserOut
    access_token: str
    token_type: str = "bearer"


class RoleChange(BaseModel):
    role: Role


class PasswordChange(BaseModel):
    old_password: str
    new_password: str = Field(..., min_length=6)


class AddToCartRequest(BaseModel):
    product_id: int
    name: str
    price: float = Field(..., ge=0)
    image: str = ""
    quantity: int = 1


class QuantityUpdate(BaseModel):
    quantity: int


class CartOut(BaseModel):
    items: List[CartItem]
    total: float
    count: int


class OrderCreate(BaseModel):
    items: List[OrderItem]
    total: float
    address: Address
    payment_method: PaymentMethod


class CheckoutRequest(BaseModel):
    address: Address
    payment_method: PaymentMethod


class StatusUpdate(BaseModel):
    status: OrderStatus


def require_session(core: StoreCore = Depends(get_core)) -> User:
    user = core.identity.current_session()
    if user is None:
        raise HTTPException(status_code=401, detail="Not signed in")
    return user


def require_admin(core: StoreCore = Depends(get_core), user: User = Depends(require_session)) -> User:
    if not core.identity.has_role(ADMIN_ROLES):
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def require_self_or_admin(user_id: int, core: StoreCore, user: User) -> None:
    if user.id != user_id and not core.identity.has_role(ADMIN_ROLES):
        raise HTTPException(status_code=403, detail="Access denied")


@app.get("/")
def read_root():
    return {"message": "Store core backend is running"}


@app.get("/test")
def test_backend(core: StoreCore = Depends(get_core)):
    response = {
        "backend": "✅ Running",
        "store": core.store.backend,
        "database": "❌ Not Available",
        "database_url": "✅ Set" if config.DATABASE_URL else "❌ Not Set",
        "database_name": "✅ Set" if config.DATABASE_NAME else "❌ Not Set",
        "collections": [],
        "keys": [],
        "session_active": core.session.is_authenticated,
        "catalog_api": "❌ Not Available",
        "catalog_api_url": core.catalog.remote.base_url,
    }
    try:
        response["keys"] = core.store.keys()[:10]
        if isinstance(core.store, MongoStore):
            response["collections"] = core.store.collection.database.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
        else:
            response["database"] = "⚠️ In-memory store, nothing persisted"
    except PyMongoError as e:
        response["database"] = f"⚠️ Connected but Error: {str(e)[:80]}"
    try:
        core.catalog.remote.list_products()
        response["catalog_api"] = "✅ Reachable"
    except RemoteUnavailable as e:
        response["catalog_api"] = f"⚠️ Unavailable, serving local catalog: {str(e)[:80]}"
    return response


# Auth
@app.post("/api/register", response_model=UserOut)
def register(payload: RegisterRequest, core: StoreCore = Depends(get_core)):
    user = core.identity.register(payload.name, payload.email, payload.password)
    return UserOut.from_user(user)


@app.post("/api/login", response_model=LoginResponse)
def login(payload: LoginRequest, core: StoreCore = Depends(get_core)):
    user = core.identity.login(payload.email, payload.password)
    return LoginResponse(user=UserOut.from_user(user), access_token=core.session.token)


@app.post("/api/logout")
def logout(core: StoreCore = Depends(get_core)):
    core.identity.logout()
    return {"ok": True}


@app.get("/api/me", response_model=UserOut)
def me(current: User = Depends(require_session)):
    return UserOut.from_user(current)


# Users
@app.get("/api/users", response_model=List[UserOut])
def list_users(core: StoreCore = Depends(get_core), _: User = Depends(require_admin)):
    return [UserOut.from_user(u) for u in core.identity.list_users()]


@app.put("/api/users/{user_id}/role", response_model=UserOut)
def change_role(user_id: int, payload: RoleChange, core: StoreCore = Depends(get_core)):
    return UserOut.from_user(core.identity.change_role(user_id, payload.role))


@app.put("/api/users/{user_id}/password")
def change_password(
    user_id: int,
    payload: PasswordChange,
    core: StoreCore = Depends(get_core),
    current: User = Depends(require_session),
):
    require_self_or_admin(user_id, core, current)
    core.identity.change_password(user_id, payload.old_password, payload.new_password)
    return {"ok": True}


@app.get("/api/users/{user_id}/addresses", response_model=List[Address])
def user_addresses(user_id: int, core: StoreCore = Depends(get_core), current: User = Depends(require_session)):
    require_self_or_admin(user_id, core, current)
    return core.orders.get_addresses_for_user(user_id)


@app.get("/api/users/{user_id}/payment-methods", response_model=List[PaymentMethod])
def user_payment_methods(user_id: int, core: StoreCore = Depends(get_core), current: User = Depends(require_session)):
    require_self_or_admin(user_id, core, current)
    return core.orders.get_payment_methods_for_user(user_id)


# Cart
def _cart_out(core: StoreCore) -> CartOut:
    return CartOut(items=core.cart.items(), total=round(core.cart.total(), 2), count=core.cart.count())


@app.get("/api/cart", response_model=CartOut)
def get_cart(core: StoreCore = Depends(get_core)):
    return _cart_out(core)


@app.post("/api/cart", response_model=CartOut)
def add_to_cart(payload: AddToCartRequest, core: StoreCore = Depends(get_core)):
    core.cart.add(payload.product_id, payload.name, payload.price, payload.image, payload.quantity)
    return _cart_out(core)


@app.put("/api/cart/{product_id}", response_model=CartOut)
def update_cart_item(product_id: int, payload: QuantityUpdate, core: StoreCore = Depends(get_core)):
    core.cart.update_quantity(product_id, payload.quantity)
    return _cart_out(core)


@app.delete("/api/cart/{product_id}", response_model=CartOut)
def remove_cart_item(product_id: int, core: StoreCore = Depends(get_core)):
    core.cart.remove(product_id)
    return _cart_out(core)


@app.delete("/api/cart", response_model=CartOut)
def clear_cart(core: StoreCore = Depends(get_core)):
    core.cart.clear()
    return _cart_out(core)


# Catalog
@app.get("/api/categories", response_model=List[str])
def list_categories(core: StoreCore = Depends(get_core)):
    return core.catalog.categories()


@app.get("/api/products", response_model=List[Product])
def list_products(
    q: Optional[str] = Query(default=None, description="Search query"),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    core: StoreCore = Depends(get_core),
):
    bounded = min_price is not None or max_price is not None
    low = min_price if min_price is not None else 0
    high = max_price if max_price is not None else math.inf
    if q:
        products = core.catalog.search(q)
        if bounded:
            products = [p for p in products if low <= p.price <= high]
        return products
    if bounded:
        return core.catalog.filter_by_price(low, high)
    return core.catalog.list()


@app.get("/api/products/{product_id}", response_model=Product)
def get_product(product_id: int, core: StoreCore = Depends(get_core)):
    product = core.catalog.get_by_id(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@app.post("/api/products", response_model=Product)
def create_product(payload: ProductIn, core: StoreCore = Depends(get_core)):
    return core.catalog.create(payload)


@app.put("/api/products/{product_id}", response_model=Product)
def update_product(product_id: int, payload: ProductUpdate, core: StoreCore = Depends(get_core)):
    product = core.catalog.update(product_id, payload)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@app.delete("/api/products/{product_id}")
def delete_product(product_id: int, core: StoreCore = Depends(get_core)):
    if not core.catalog.delete(product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    return {"deleted": True}


# Orders
@app.get("/api/orders", response_model=List[Order])
def list_orders(core: StoreCore = Depends(get_core), _: User = Depends(require_admin)):
    return core.orders.get_all_orders()


@app.get("/api/orders/mine", response_model=List[Order])
def my_orders(core: StoreCore = Depends(get_core)):
    return core.orders.get_current_user_orders()


@app.get("/api/orders/{order_id}", response_model=Order)
def get_order(order_id: int, core: StoreCore = Depends(get_core), current: User = Depends(require_session)):
    order = core.orders.get_order_by_id(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    require_self_or_admin(order.user_id, core, current)
    return order


@app.post("/api/orders", response_model=Order)
def create_order(payload: OrderCreate, core: StoreCore = Depends(get_core)):
    return core.orders.create_order(payload.items, payload.total, payload.address, payload.payment_method)


@app.put("/api/orders/{order_id}/status")
def update_order_status(
    order_id: int,
    payload: StatusUpdate,
    core: StoreCore = Depends(get_core),
    _: User = Depends(require_admin),
):
    if not core.orders.update_status(order_id, payload.status):
        raise HTTPException(status_code=404, detail="Order not found")
    return {"id": order_id, "status": payload.status}


@app.post("/api/checkout", response_model=Order)
def checkout(payload: CheckoutRequest, core: StoreCore = Depends(get_core)):
    return core.checkout(payload.address, payload.payment_method)


# Seed sample data if empty
@app.post("/api/seed")
def seed(core: StoreCore = Depends(get_core)):
    return {"created": core.seed_sample_orders()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)

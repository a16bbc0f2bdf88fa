"""
Data Schemas for the Store Core

Each Pydantic model describes one document kind held in the key-value store.
Collections are stored as JSON lists under fixed keys:

- User -> "users"
- CartItem -> "cart"
- Product -> "products"
- Order -> "orders"
"""
from datetime import datetime
from typing import List, Optional, Literal

from pydantic import BaseModel, Field

Role = Literal["user", "admin", "superuser"]
OrderStatus = Literal["Processing", "Shipped", "Delivered", "Cancelled"]
PaymentType = Literal["creditCard", "paypal", "bankTransfer"]

ROLES = ("user", "admin", "superuser")
ORDER_STATUSES = ("Processing", "Shipped", "Delivered", "Cancelled")


class User(BaseModel):
    """Users collection schema"""
    id: int = Field(..., description="Sequential user id")
    name: str = Field(..., description="Full name")
    email: str = Field(..., description="Email address, unique across users")
    password_hash: str = Field(..., description="Password hash from the password context")
    role: Role = Field("user", description="Role: user, admin or superuser")
    created_at: datetime


class CartItem(BaseModel):
    product_id: int = Field(..., description="ID of the product")
    name: str
    price: float = Field(..., ge=0)
    image: str = ""
    quantity: int = Field(1, description="Quantity of the product")


class Product(BaseModel):
    """Products collection schema (local catalog cache)"""
    id: int
    name: str = Field(..., description="Product name")
    price: float = Field(..., description="Price, must be positive")
    description: str = ""
    image: str = Field("", description="Primary image URL")
    category: Optional[str] = Field(None, description="Product category")
    stock: int = Field(0, description="Units in stock")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProductIn(BaseModel):
    """Payload for creating a product. Range checks happen in the catalog service."""
    name: str
    price: float
    description: str = ""
    image: str = ""
    category: Optional[str] = None
    stock: int = 0


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    price: Optional[float] = None
    description: Optional[str] = None
    image: Optional[str] = None
    category: Optional[str] = None
    stock: Optional[int] = None


class OrderItem(BaseModel):
    product_id: int
    name: str = Field(..., description="Snapshot of name at purchase time")
    price: float = Field(..., description="Unit price at purchase time")
    quantity: int
    image_url: Optional[str] = None


class Address(BaseModel):
    street: str
    city: str
    state: str
    zip_code: str
    country: str


class PaymentMethod(BaseModel):
    type: PaymentType
    details: str = Field(..., description="Masked identifier, e.g. last 4 digits")
    name: Optional[str] = None


class Order(BaseModel):
    """Orders collection schema"""
    id: int
    user_id: int
    date: datetime
    items: List[OrderItem]
    total: float
    status: OrderStatus = Field("Processing", description="Processing | Shipped | Delivered | Cancelled")
    address: Address
    payment_method: PaymentMethod

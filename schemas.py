"""
Database Schemas

Pydantic models for the records kept in the JSON document store.
Each model maps to one collection of the document:
- User -> "users"
- Product -> "products"
- Order -> "orders"

Stored documents use camelCase keys (fullName, imageUrl, orderNumber, ...),
so every model serializes by alias.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


def timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def reject_bool(value):
    # JSON true/false would otherwise coerce to 1/0
    if isinstance(value, bool):
        raise ValueError("must be an integer")
    return value


class Role(str, Enum):
    admin = "admin"
    customer = "customer"


class OrderStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"


class Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict:
        # unset optional fields such as updatedAt stay out of the document
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class User(Record):
    id: str
    username: str = Field(..., min_length=1)
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., description="BCrypt hashed password")
    role: Role = Role.customer
    full_name: str = Field(..., description="Full name")
    created_at: str = Field(default_factory=timestamp)
    updated_at: Optional[str] = None


class Product(Record):
    id: str
    name: str
    description: str
    price: float = Field(..., ge=0, allow_inf_nan=False)
    category: str
    stock: int = Field(..., ge=0)
    image_url: str
    created_at: str = Field(default_factory=timestamp)
    updated_at: Optional[str] = None


class OrderLine(Record):
    """Snapshot of a product at purchase time; later catalog edits never touch it."""
    product_id: str
    product_name: str
    price: float
    quantity: int = Field(..., ge=1)
    subtotal: float


class Order(Record):
    id: str
    order_number: int
    user_id: str
    items: List[OrderLine]
    total_amount: float = Field(..., ge=0)
    shipping_address: str
    status: OrderStatus = OrderStatus.pending
    created_at: str = Field(default_factory=timestamp)
    updated_at: Optional[str] = None


# Request payloads

class LoginInput(Record):
    username: str
    password: str


class RegisterInput(Record):
    username: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    full_name: str = Field(..., min_length=1)


class UserUpdate(Record):
    email: Optional[EmailStr] = None
    full_name: Optional[str] = Field(None, min_length=1)
    password: Optional[str] = Field(None, min_length=6)


class ProductIn(Record):
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    price: float = Field(..., ge=0, allow_inf_nan=False)
    category: str = Field(..., min_length=1)
    stock: int = Field(..., ge=0)
    image_url: Optional[str] = None

    @field_validator("stock", mode="before")
    @classmethod
    def stock_is_integer(cls, value):
        return reject_bool(value)


class OrderItemIn(Record):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)

    @field_validator("quantity", mode="before")
    @classmethod
    def quantity_is_integer(cls, value):
        return reject_bool(value)


class PlaceOrderInput(Record):
    items: List[OrderItemIn] = Field(..., min_length=1)
    shipping_address: str = Field(..., min_length=1)


class StatusUpdate(Record):
    status: OrderStatus

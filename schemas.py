"""
Database Schemas for the aquarium storefront

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name.
"""
from datetime import datetime, timezone
from typing import List, Literal, Optional, get_args

from bson.objectid import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

OrderStatus = Literal["pending", "confirmed", "shipped", "delivered", "cancelled"]
PaymentMethod = Literal["cod", "razorpay", "upi", "card", "netbanking"]
PaymentStatus = Literal["created", "paid", "failed", "cancelled"]

ORDER_STATUSES = get_args(OrderStatus)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# bcrypt only looks at the first 72 bytes and newer releases refuse anything longer.
PASSWORD_MAX_BYTES = 72


def check_password_bytes(password: Optional[str]) -> Optional[str]:
    if password is not None and len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"must be at most {PASSWORD_MAX_BYTES} bytes")
    return password


class CamelModel(BaseModel):
    """Accepts both snake_case and camelCase keys on input."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Admin(BaseModel):
    name: str = "Admin User"
    email: EmailStr
    password_hash: str

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()


class User(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, arbitrary_types_allowed=True)

    name: str = Field(..., min_length=1, max_length=100, description="Full name")
    email: EmailStr
    password_hash: str = Field(..., description="Hashed password")
    phone: str = Field(..., pattern=r"^\d{10}$", description="10 digit phone number")
    address: str = Field(..., min_length=1, max_length=500)
    role: Literal["user", "admin"] = "user"
    is_active: bool = True
    orders: List[ObjectId] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()


class Fish(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=500)
    photo: str = Field("", description="Path or URL of the photo")
    video: Optional[str] = Field(None, max_length=1000)
    price: float = Field(..., ge=0, allow_inf_nan=False)
    type: str = Field(..., min_length=1, max_length=100)
    timestamp: datetime = Field(default_factory=_utcnow)

    @field_validator("photo")
    @classmethod
    def photo_required(cls, v: str) -> str:
        if not v:
            raise ValueError("Photo is required")
        return v


class ShippingAddress(CamelModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None


class OrderItem(BaseModel):
    """Point-in-time copy of a fish as it was when the order was placed."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    fish_id: ObjectId
    name: str
    photo: Optional[str] = None
    price: float = Field(..., ge=0, allow_inf_nan=False)
    quantity: int = Field(..., ge=1)


class Order(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    user_id: ObjectId
    items: List[OrderItem] = Field(..., min_length=1)
    total_amount: float = Field(..., ge=0, allow_inf_nan=False)
    status: OrderStatus = "pending"
    payment_method: PaymentMethod = "cod"
    shipping_address: ShippingAddress = Field(default_factory=ShippingAddress)
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    gateway_signature: Optional[str] = None
    payment_status: PaymentStatus = "created"
    order_number: str = Field(..., min_length=1)

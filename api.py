import logging
import secrets
import time
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import EmailStr, Field, ValidationError, field_validator
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from config import Settings
from database import create_document, get_db, get_documents, serialize_doc, to_object_id
from payments import GatewayError, RazorpayGateway, get_gateway, to_minor_units
from schemas import CamelModel, Order, OrderItem, PaymentMethod, ShippingAddress, User, check_password_bytes
from security import create_token, get_current_user_id, get_settings, hash_password, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


# ----------------------- Models -----------------------
class RegisterBody(CamelModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: str
    address: str

    @field_validator("password")
    @classmethod
    def password_fits_hash(cls, v: str) -> str:
        return check_password_bytes(v)


class LoginBody(CamelModel):
    email: EmailStr
    password: str


class OrderItemBody(CamelModel):
    fish_id: str
    quantity: int = Field(1, ge=1)
    # Client-side copies are accepted but the stored snapshot comes from the live fish.
    name: Optional[str] = None
    photo: Optional[str] = None
    price: Optional[float] = None


class OrderCreateBody(CamelModel):
    items: List[OrderItemBody] = Field(..., min_length=1)
    total_amount: float = Field(..., ge=0, allow_inf_nan=False)
    payment_method: PaymentMethod = "cod"
    shipping_address: ShippingAddress = Field(default_factory=ShippingAddress)
    order_number: Optional[str] = None


class PaymentIntentBody(CamelModel):
    amount: int = Field(..., gt=0, description="Amount in the smallest currency unit")
    customer: Optional[str] = None


class VerifyPaymentBody(CamelModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str
    order: OrderCreateBody


def public_user(user_id: str, user: dict) -> dict:
    return {
        "id": user_id,
        "name": user["name"],
        "email": user["email"],
        "phone": user.get("phone"),
        "address": user.get("address"),
    }


def generate_order_number() -> str:
    return f"AQU-{str(int(time.time() * 1000))[-6:]}{secrets.token_hex(2).upper()}"


# ----------------------- Health -----------------------
@router.get("")
def root():
    return {"message": "Aquarium API running"}


# ----------------------- Catalog -----------------------
@router.get("/fishes")
def list_fishes():
    fishes = get_documents("fish", sort=[("timestamp", -1)])
    return [serialize_doc(f) for f in fishes]


# ----------------------- Auth -----------------------
@router.post("/register")
def register(body: RegisterBody, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    email = body.email.lower()
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="Email already registered")

    try:
        user = User(
            name=body.name,
            email=email,
            password_hash=hash_password(body.password, settings.bcrypt_rounds),
            phone=body.phone.strip(),
            address=body.address,
        )
    except ValidationError as e:
        err = e.errors()[0]
        raise HTTPException(status_code=400, detail=f"{err['loc'][0]}: {err['msg']}")

    try:
        user_id = create_document("user", user)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Email already registered")

    logger.info("Registered user %s", user_id)
    return {
        "message": "User created successfully",
        "token": create_token(user_id, settings),
        "user": public_user(user_id, user.model_dump()),
    }


@router.post("/login")
def login(body: LoginBody, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    user = db["user"].find_one({"email": body.email.lower()})
    if not user or not verify_password(body.password, user.get("password_hash")):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    user_id = str(user["_id"])
    return {
        "message": "Login successful",
        "token": create_token(user_id, settings),
        "user": public_user(user_id, user),
    }


@router.get("/profile")
def profile(user_id: str = Depends(get_current_user_id), db: Database = Depends(get_db)):
    oid = to_object_id(user_id)
    user = db["user"].find_one({"_id": oid}, {"password_hash": 0}) if oid else None
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return serialize_doc(user)


# ----------------------- Orders -----------------------
def snapshot_items(db: Database, items: List[OrderItemBody]) -> List[OrderItem]:
    """Copy name/photo/price from the current fish records into the order."""
    snapshot = []
    for item in items:
        fish_oid = to_object_id(item.fish_id)
        fish = db["fish"].find_one({"_id": fish_oid}) if fish_oid else None
        if not fish:
            raise HTTPException(status_code=400, detail=f"Fish not found: {item.fish_id}")
        snapshot.append(
            OrderItem(
                fish_id=fish["_id"],
                name=fish["name"],
                photo=fish.get("photo"),
                price=fish["price"],
                quantity=item.quantity,
            )
        )
    return snapshot


def place_order(db: Database, user_id: str, body: OrderCreateBody, **payment) -> dict:
    user_oid = to_object_id(user_id)
    if user_oid is None or not db["user"].find_one({"_id": user_oid}, {"_id": 1}):
        raise HTTPException(status_code=401, detail="User not found")

    order = Order(
        user_id=user_oid,
        items=snapshot_items(db, body.items),
        total_amount=body.total_amount,
        payment_method=payment.pop("payment_method", body.payment_method),
        shipping_address=body.shipping_address,
        order_number=body.order_number or generate_order_number(),
        **payment,
    )
    try:
        order_id = create_document("order", order)
    except DuplicateKeyError:
        if order.gateway_order_id and db["order"].find_one({"gateway_order_id": order.gateway_order_id}, {"_id": 1}):
            raise HTTPException(status_code=400, detail="Payment already used for another order")
        raise HTTPException(status_code=400, detail="Order number already exists")

    db["user"].update_one({"_id": user_oid}, {"$push": {"orders": to_object_id(order_id)}})
    logger.info("Order %s (%s) placed by user %s", order.order_number, order_id, user_id)
    return {
        "message": "Order placed successfully!",
        "order_id": order_id,
        "order_number": order.order_number,
    }


def join_fish(db: Database, order: dict) -> dict:
    fish_ids = [item["fish_id"] for item in order.get("items", [])]
    fishes = {f["_id"]: f for f in db["fish"].find({"_id": {"$in": fish_ids}})}
    for item in order.get("items", []):
        item["fish"] = fishes.get(item["fish_id"])
    return order


@router.post("/orders")
def create_order(body: OrderCreateBody, user_id: str = Depends(get_current_user_id), db: Database = Depends(get_db)):
    return place_order(db, user_id, body)


@router.get("/orders")
def my_orders(user_id: str = Depends(get_current_user_id), db: Database = Depends(get_db)):
    oid = to_object_id(user_id)
    if oid is None:
        return []
    orders = db["order"].find({"user_id": oid}).sort("created_at", -1)
    return [serialize_doc(join_fish(db, o)) for o in orders]


# ----------------------- Payments -----------------------
@router.post("/create-payment-intent")
def create_payment_intent(
    body: PaymentIntentBody,
    gateway: RazorpayGateway = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
):
    receipt = f"rcpt_{int(time.time() * 1000)}"
    notes = {"customer": body.customer} if body.customer else {}
    try:
        gateway_order = gateway.create_order(body.amount, settings.payment_currency, receipt, notes)
    except GatewayError as e:
        raise HTTPException(status_code=502, detail=str(e))
    logger.info("Created gateway order %s for %s", gateway_order["id"], body.amount)
    return {
        "order_id": gateway_order["id"],
        "amount": gateway_order.get("amount", body.amount),
        "currency": gateway_order.get("currency", settings.payment_currency),
        "key_id": gateway.key_id,
    }


@router.post("/verify-payment")
def verify_payment(
    body: VerifyPaymentBody,
    user_id: str = Depends(get_current_user_id),
    gateway: RazorpayGateway = Depends(get_gateway),
    db: Database = Depends(get_db),
):
    if not gateway.verify_signature(body.razorpay_order_id, body.razorpay_payment_id, body.razorpay_signature):
        logger.warning("Signature mismatch for gateway order %s (user %s)", body.razorpay_order_id, user_id)
        raise HTTPException(status_code=400, detail="Payment verification failed")

    if db["order"].find_one({"gateway_order_id": body.razorpay_order_id}, {"_id": 1}):
        logger.warning("Replayed payment for gateway order %s (user %s)", body.razorpay_order_id, user_id)
        raise HTTPException(status_code=400, detail="Payment already used for another order")

    try:
        gateway_order = gateway.fetch_order(body.razorpay_order_id)
    except GatewayError as e:
        raise HTTPException(status_code=502, detail=str(e))
    if gateway_order.get("amount") != to_minor_units(body.order.total_amount):
        logger.warning(
            "Gateway order %s paid %s but order total is %s",
            body.razorpay_order_id, gateway_order.get("amount"), body.order.total_amount,
        )
        raise HTTPException(status_code=400, detail="Payment amount does not match order total")

    return place_order(
        db,
        user_id,
        body.order,
        status="confirmed",
        payment_method="razorpay",
        payment_status="paid",
        gateway_order_id=body.razorpay_order_id,
        gateway_payment_id=body.razorpay_payment_id,
        gateway_signature=body.razorpay_signature,
    )

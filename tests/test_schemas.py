import pytest
from bson.objectid import ObjectId
from pydantic import ValidationError

from api import OrderCreateBody
from schemas import Fish, Order, OrderItem, ShippingAddress, User, check_password_bytes


def make_user(**overrides):
    values = {
        "name": "  Alice  ",
        "email": "Alice@FishMail.com",
        "password_hash": "hash",
        "phone": "9876543210",
        "address": "12 Reef Road",
    }
    values.update(overrides)
    return User(**values)


def test_user_defaults_and_normalization():
    user = make_user()
    assert user.name == "Alice"
    assert user.email == "alice@fishmail.com"
    assert user.role == "user"
    assert user.is_active is True
    assert user.orders == []
    assert user.created_at is not None


@pytest.mark.parametrize("phone", ["12345", "98765432100", "98765-4321", "abcdefghij"])
def test_user_phone_must_be_ten_digits(phone):
    with pytest.raises(ValidationError):
        make_user(phone=phone)


def test_user_rejects_bad_email_and_role():
    with pytest.raises(ValidationError):
        make_user(email="not-an-email")
    with pytest.raises(ValidationError):
        make_user(role="superuser")


def test_fish_requires_photo():
    with pytest.raises(ValidationError) as exc:
        Fish(name="Ghost", price=10, type="Freshwater")
    assert exc.value.errors()[0]["loc"] == ("photo",)
    assert "Photo is required" in exc.value.errors()[0]["msg"]


def test_fish_limits():
    with pytest.raises(ValidationError):
        Fish(name="Clownfish", photo="/uploads/a.png", price=-1, type="Marine")
    for price in (float("inf"), float("nan")):
        with pytest.raises(ValidationError):
            Fish(name="Clownfish", photo="/uploads/a.png", price=price, type="Marine")
    with pytest.raises(ValidationError):
        Fish(name="x" * 501, photo="/uploads/a.png", price=1, type="Marine")
    with pytest.raises(ValidationError):
        Fish(name="Clownfish", photo="/uploads/a.png", video="v" * 1001, price=1, type="Marine")
    fish = Fish(name="Clownfish", photo="/uploads/a.png", price=0, type="Marine")
    assert fish.video is None


def make_order(**overrides):
    values = {
        "user_id": ObjectId(),
        "items": [OrderItem(fish_id=ObjectId(), name="Clownfish", price=250, quantity=1)],
        "total_amount": 250,
        "order_number": "AQU-1",
    }
    values.update(overrides)
    return Order(**values)


def test_order_defaults():
    order = make_order()
    assert order.status == "pending"
    assert order.payment_status == "created"
    assert order.payment_method == "cod"
    assert order.gateway_order_id is None
    assert isinstance(order.model_dump()["user_id"], ObjectId)


@pytest.mark.parametrize(
    "overrides",
    [
        {"total_amount": -1},
        {"total_amount": float("inf")},
        {"total_amount": float("nan")},
        {"status": "paid"},
        {"payment_method": "cheque"},
        {"payment_status": "refunded"},
        {"items": []},
    ],
)
def test_order_rejects_invalid_values(overrides):
    with pytest.raises(ValidationError):
        make_order(**overrides)


def test_order_item_quantity_at_least_one():
    with pytest.raises(ValidationError):
        OrderItem(fish_id=ObjectId(), name="Clownfish", price=250, quantity=0)


def test_order_body_accepts_camel_and_snake_case():
    fish_id = str(ObjectId())
    camel = OrderCreateBody.model_validate(
        {"items": [{"fishId": fish_id}], "totalAmount": 10, "paymentMethod": "upi", "orderNumber": "AQU-9"}
    )
    snake = OrderCreateBody.model_validate(
        {"items": [{"fish_id": fish_id}], "total_amount": 10, "payment_method": "upi", "order_number": "AQU-9"}
    )
    assert camel == snake
    assert camel.items[0].quantity == 1
    assert camel.shipping_address == ShippingAddress()


def test_password_byte_limit_counts_encoded_bytes():
    assert check_password_bytes("x" * 72) == "x" * 72
    assert check_password_bytes(None) is None
    with pytest.raises(ValueError):
        check_password_bytes("é" * 37)

from datetime import datetime, timedelta, timezone

import jwt
import mongomock
import pytest
from fastapi import HTTPException

from config import Settings
from security import create_token, decode_token, ensure_default_admin, hash_password, verify_password


@pytest.fixture
def admin_db():
    return mongomock.MongoClient()["security_test"]


def make_settings(**overrides):
    values = {"jwt_secret": "s3cret", "session_secret": "other", "bcrypt_rounds": 4}
    values.update(overrides)
    return Settings(**values)


def test_password_hash_round_trip():
    hashed = hash_password("reef-tank", rounds=4)
    assert hashed != "reef-tank"
    assert verify_password("reef-tank", hashed)
    assert not verify_password("reef-tanks", hashed)


def test_verify_password_rejects_missing_or_garbage_hash():
    assert not verify_password("anything", None)
    assert not verify_password("anything", "not-a-bcrypt-hash")


def test_token_carries_user_id_and_seven_day_expiry():
    settings = make_settings()
    payload = decode_token(create_token("abc123", settings), settings)
    assert payload["id"] == "abc123"
    expires = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
    assert timedelta(days=6, hours=23) < expires - datetime.now(timezone.utc) <= timedelta(days=7)


def test_token_signed_with_other_secret_is_rejected():
    token = create_token("abc123", make_settings(jwt_secret="elsewhere"))
    with pytest.raises(HTTPException) as exc:
        decode_token(token, make_settings())
    assert exc.value.status_code == 401
    assert exc.value.detail == "Invalid token"


def test_expired_token_is_rejected():
    settings = make_settings()
    token = jwt.encode(
        {"id": "abc123", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
        settings.jwt_secret,
        algorithm="HS256",
    )
    with pytest.raises(HTTPException) as exc:
        decode_token(token, settings)
    assert exc.value.detail == "Token expired"


def test_default_admin_is_created_once(admin_db):
    settings = make_settings(admin_email="Boss@AquaShop.in", admin_password="admin123")
    ensure_default_admin(admin_db, settings)
    first_hash = admin_db["admin"].find_one()["password_hash"]

    ensure_default_admin(admin_db, settings.model_copy(update={"admin_password": "changed"}))

    admins = list(admin_db["admin"].find())
    assert len(admins) == 1
    assert admins[0]["email"] == "boss@aquashop.in"
    assert admins[0]["password_hash"] == first_hash


def test_default_admin_leaves_other_admins_alone(admin_db):
    admin_db["admin"].insert_one({"name": "Ops", "email": "ops@aquashop.in", "password_hash": "x"})
    ensure_default_admin(admin_db, make_settings(admin_email="boss@aquashop.in", admin_password="admin123"))
    assert admin_db["admin"].count_documents({}) == 2


def test_reset_on_boot_wipes_existing_admins(admin_db):
    admin_db["admin"].insert_one({"name": "Ops", "email": "ops@aquashop.in", "password_hash": "x"})
    settings = make_settings(admin_email="boss@aquashop.in", admin_password="admin123", admin_reset_on_boot=True)
    ensure_default_admin(admin_db, settings)
    assert [a["email"] for a in admin_db["admin"].find()] == ["boss@aquashop.in"]


def test_bootstrap_skipped_without_credentials(admin_db):
    ensure_default_admin(admin_db, make_settings())
    assert admin_db["admin"].count_documents({}) == 0

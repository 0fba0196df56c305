from datetime import datetime, timedelta, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app

ADMIN_EMAIL = "admin@aquashop.in"
ADMIN_PASSWORD = "admin123"
GATEWAY_KEY_ID = "rzp_test_key"
GATEWAY_KEY_SECRET = "rzp_test_secret"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        jwt_secret="test-jwt-secret",
        session_secret="test-session-secret",
        database_name="aquarium_test",
        upload_dir=str(tmp_path / "uploads"),
        admin_email=ADMIN_EMAIL,
        admin_password=ADMIN_PASSWORD,
        razorpay_key_id=GATEWAY_KEY_ID,
        razorpay_key_secret=GATEWAY_KEY_SECRET,
        bcrypt_rounds=4,
    )


@pytest.fixture
def mongo():
    return mongomock.MongoClient()


@pytest.fixture
def client(settings, mongo):
    app = create_app(settings, mongo)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db(client, mongo, settings):
    return mongo[settings.database_name]


@pytest.fixture
def admin_client(client):
    res = client.post("/", data={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD}, follow_redirects=False)
    assert res.status_code == 303
    return client


@pytest.fixture
def register(client):
    def _register(name="Alice", email="alice@fishmail.com", password="secret123", phone="9876543210",
                  address="12 Reef Road, Kochi"):
        res = client.post(
            "/api/register",
            json={"name": name, "email": email, "password": password, "phone": phone, "address": address},
        )
        assert res.status_code == 200, res.text
        return res.json()
    return _register


@pytest.fixture
def add_fish(db):
    """Insert fish straight into the collection; each call is one minute newer than the last."""
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    counter = {"n": 0}

    def _add_fish(name="Clownfish", price=250.0, type="Marine", photo="/uploads/clown.jpg", video=None):
        counter["n"] += 1
        doc = {
            "name": name,
            "price": price,
            "type": type,
            "photo": photo,
            "video": video,
            "timestamp": base + timedelta(minutes=counter["n"]),
        }
        return str(db["fish"].insert_one(doc).inserted_id)
    return _add_fish


def auth(token):
    return {"Authorization": f"Bearer {token}"}

"""
Shared fixtures: an in-memory Mongo, seeded users and products, and a fake
Stripe client.
"""

import os
from unittest.mock import MagicMock

import mongomock
import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("SECRET_KEY", "test-secret")

from storefront.core.security import create_token  # noqa: E402
from storefront.db.documents import utcnow  # noqa: E402
from storefront.db.mongo import get_db  # noqa: E402
from storefront.main import app  # noqa: E402
from storefront.services import payments  # noqa: E402


@pytest.fixture
def db():
    return mongomock.MongoClient()["storefront_test"]


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _insert_user(db, **fields):
    now = utcnow()
    user = {
        "first_name": "Ada",
        "last_name": "Lovelace",
        "contact_number": "250-555-0101",
        "email": "ada@example.com",
        "password": "",
        "role": "customer",
        "image": "",
        "email_verified": False,
        "phone_verified": False,
        "created_at": now,
        "updated_at": now,
    }
    user.update(fields)
    user["_id"] = db.users.insert_one(user).inserted_id
    return user


def auth_headers(user):
    return {"Authorization": f"Bearer {create_token(str(user['_id']), role=user['role'])}"}


@pytest.fixture
def customer(db):
    return _insert_user(db)


@pytest.fixture
def other_customer(db):
    return _insert_user(db, first_name="Grace", last_name="Hopper", email="grace@example.com")


@pytest.fixture
def admin(db):
    return _insert_user(db, first_name="Store", last_name="Admin", email="admin@example.com", role="admin")


@pytest.fixture
def customer_headers(customer):
    return auth_headers(customer)


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def make_product(db):
    def _make(name="Silver Ring", price=20.0, stock=10, attributes=None, category="Rings", **extra):
        now = utcnow()
        doc = {
            "name": name,
            "description": f"{name} description",
            "price": price,
            "category": category,
            "images": ["https://img.example.com/a.jpg"],
            "cover_image": "https://img.example.com/a.jpg",
            "stock": stock,
            "featured": False,
            "attributes": attributes or {},
            "views": 0,
            "created_at": now,
            "updated_at": now,
        }
        doc.update(extra)
        doc["_id"] = db.products.insert_one(doc).inserted_id
        return doc
    return _make


@pytest.fixture
def fill_cart(db):
    def _fill(user, *lines):
        now = utcnow()
        items = [{"product": product["_id"], "quantity": qty} for product, qty in lines]
        db.carts.insert_one({"user": user["_id"], "items": items, "created_at": now, "updated_at": now})
    return _fill


@pytest.fixture
def fake_stripe(monkeypatch):
    fake = MagicMock(name="stripe")
    monkeypatch.setattr(payments, "get_stripe", lambda: fake)
    return fake

import os

# Tests never talk to a real server
os.environ.pop("DATABASE_URL", None)
os.environ.setdefault("JWT_SECRET", "test-secret")

import mongomock  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import accounts  # noqa: E402
import catalog  # noqa: E402
from database import ensure_indexes, get_db  # noqa: E402
from identity import issue_token  # noqa: E402

PHONE = {
    "name": "Pixel 8",
    "price": 100,
    "description": "Google phone with a very good camera",
    "brand": "Google",
    "category": "Mobile",
    "stock": 5,
}


@pytest.fixture()
def db():
    database = mongomock.MongoClient()["electronics_store_test"]
    ensure_indexes(database)
    return database


@pytest.fixture()
def client(db):
    from main import app

    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def buyer(db):
    return accounts.register(db, "Bea Buyer", "buyer@example.com", "secret1")


@pytest.fixture()
def other_buyer(db):
    return accounts.register(db, "Otto Other", "other@example.com", "secret2")


@pytest.fixture()
def seller(db):
    return accounts.register(db, "Sam Seller", "seller@example.com", "secret3", is_seller=True)


@pytest.fixture()
def make_product(db, seller):
    def _make(**overrides):
        return catalog.create_product(db, seller["id"], dict(PHONE, **overrides))

    return _make


@pytest.fixture()
def headers_for():
    def _headers(user):
        return {"Authorization": f"Bearer {issue_token(user['id'], user['email'])}"}

    return _headers

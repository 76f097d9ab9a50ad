import os

os.environ.setdefault("JWT_SECRET", "test-secret-key-for-the-sweetshop-suite")
os.environ.setdefault("REDIS_ENABLED", "false")

import fnmatch  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from sweetshop import auth, models  # noqa: E402
from sweetshop.database import Database  # noqa: E402
from sweetshop.main import create_app  # noqa: E402
from sweetshop.redis_client import RedisClient  # noqa: E402


class FakeRedis:
    """In-memory stand-in for the handful of redis commands the app uses."""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    def ping(self):
        return True

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed

    def exists(self, key):
        return int(key in self.store)

    def incr(self, key):
        self.store[key] = int(self.store.get(key, 0)) + 1
        return self.store[key]

    def expire(self, key, ttl):
        self.ttls[key] = ttl
        return True

    def scan_iter(self, match="*"):
        return [key for key in list(self.store) if fnmatch.fnmatch(key, match)]

    def close(self):
        pass


def build_client(cache: RedisClient = None):
    database = Database("sqlite://")
    app = create_app(database=database, cache=cache or RedisClient(enabled=False))
    return TestClient(app)


@pytest.fixture
def client():
    with build_client() as test_client:
        yield test_client


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cached_client(fake_redis):
    with build_client(RedisClient(client=fake_redis)) as test_client:
        yield test_client


@pytest.fixture
def db(client):
    session = client.app.state.database.SessionLocal()
    try:
        yield session
    finally:
        session.close()


def create_user(db, email="user@example.com", role=models.ROLE_CUSTOMER, name="Test User",
                password="password123"):
    user = models.User(name=name, email=email, password=auth.get_password_hash(password), role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def bearer(user_id, role):
    return {"Authorization": f"Bearer {auth.create_access_token(user_id, role)}"}


@pytest.fixture
def admin_headers(db):
    admin = create_user(db, email="admin@example.com", role=models.ROLE_ADMIN, name="Admin")
    return bearer(admin.id, admin.role)


@pytest.fixture
def customer(db):
    return create_user(db, email="customer@example.com", name="Customer")


@pytest.fixture
def customer_headers(customer):
    return bearer(customer.id, customer.role)


def make_category(client, headers, name="Sweets"):
    resp = client.post("/v1/admin/categories", json={"name": name}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def make_product(client, headers, category_id, name="Kaju Katli", price=2999, stock=10, **extra):
    body = {"name": name, "price": price, "stock_quantity": stock, "categoryId": category_id}
    body.update(extra)
    resp = client.post("/v1/admin/products", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def order_body(items, **overrides):
    body = {
        "customer_name": "Asha",
        "phone_number": "9876543210",
        "order_type": "DINE_IN",
        "items": items,
    }
    body.update(overrides)
    return body

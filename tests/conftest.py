import hashlib
import hmac
import os
import tempfile
from pathlib import Path

import pytest

# Окружение выставляется ДО импорта приложения: настройки кэшируются при импорте
_TMP = Path(tempfile.mkdtemp(prefix="mediahub-tests-"))
DB_PATH = _TMP / "test.db"

os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{DB_PATH}"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["UPLOAD_DIR"] = str(_TMP / "uploads")
os.environ["UPLOAD_PUBLIC_BASE_URL"] = "/uploads"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["LOG_LEVEL"] = "WARNING"

from fastapi.testclient import TestClient  # noqa: E402

from backend.mediahub.link_resolver import (  # noqa: E402
    LinkResolutionError,
    LinkResolver,
    ResolvedLink,
    get_link_resolver,
)
from backend.mediahub.main import app  # noqa: E402
from backend.mediahub.payments import RazorpayGateway, get_payment_gateway  # noqa: E402

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


class FakeGateway(RazorpayGateway):
    """Шлюз без сети: запоминает вызовы, подпись проверяется настоящим HMAC."""

    def __init__(self):
        super().__init__(key_id="rzp_test_key", key_secret="rzp_test_secret")
        self.customers = []
        self.orders = []

    async def create_customer(self, name, email, contact=None):
        self.customers.append({"name": name, "email": email, "contact": contact})
        return {"id": f"cust_{len(self.customers)}", "name": name, "email": email}

    async def create_order(self, amount, currency, receipt):
        order = {
            "id": f"order_{len(self.orders) + 1}",
            "amount": int(amount) * 100,
            "currency": currency,
            "receipt": receipt[:40],
            "status": "created",
        }
        self.orders.append(order)
        return order


class FakeResolver(LinkResolver):
    def __init__(self, result=None, error=None):
        super().__init__()
        self.result = result
        self.error = error
        self.calls = []

    async def _resolve(self, url):
        self.calls.append(url)
        if self.error:
            raise LinkResolutionError(self.error)
        return self.result


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def resolver():
    return FakeResolver(result=ResolvedLink(title="movie.mkv", thumbnail="https://cdn/t.jpg", download_url="https://dl/movie"))


@pytest.fixture
def client(gateway, resolver):
    DB_PATH.unlink(missing_ok=True)
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_link_resolver] = lambda: resolver
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def register_user(client, email="user@example.com", device="device-1", name="User", password="secret123"):
    r = client.post(
        "/api/users/register",
        json={"name": name, "email": email, "password": password, "deviceId": device},
    )
    assert r.status_code == 201, r.text
    return r.json()["data"]


def register_admin(client, email="admin@example.com"):
    r = client.post("/api/admin/register", json={"name": "Admin", "email": email, "password": "adminpass"})
    assert r.status_code == 201, r.text
    return r.json()["data"]


@pytest.fixture
def admin_token(client):
    return register_admin(client)["token"]


@pytest.fixture
def user(client):
    return register_user(client)


@pytest.fixture
def user_token(user):
    return user["token"]


def sign(order_id, payment_id, secret="rzp_test_secret"):
    return hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


def verify(client, token, order_id="order_1", payment_id="pay_1", signature=None):
    return client.post(
        "/api/users/subscription/verify",
        json={
            "razorpay_order_id": order_id,
            "razorpay_payment_id": payment_id,
            "razorpay_signature": signature if signature is not None else sign(order_id, payment_id),
        },
        headers=auth(token),
    )

import io
import json
from datetime import datetime, timedelta, timezone

import httpx
import jwt
import pytest
from fastapi import UploadFile

from backend.mediahub.config import get_settings
from backend.mediahub.errors import Unauthenticated, UpstreamFailure, ValidationError
from backend.mediahub.payments import RazorpayGateway, verify_payment_signature
from backend.mediahub.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)
from backend.mediahub.storage import LocalStorage, safe_filename, validate_image
from backend.mediahub.utils import add_months
from conftest import sign


def test_password_hashing():
    hashed = hash_password("s3cret")
    assert hashed != "s3cret"
    assert verify_password("s3cret", hashed)
    assert not verify_password("other", hashed)
    assert not verify_password("s3cret", "not-a-bcrypt-hash")


def test_long_passwords_are_truncated_consistently():
    base = "x" * 72
    hashed = hash_password(base + "tail-1")
    assert verify_password(base + "tail-2", hashed)


def test_token_roundtrip_and_claims():
    token = create_access_token("abc", "a@example.com")
    payload = decode_access_token(token)
    assert payload["id"] == "abc"
    assert payload["email"] == "a@example.com"
    lifetime = datetime.fromtimestamp(payload["exp"], tz=timezone.utc) - datetime.now(timezone.utc)
    assert timedelta(days=29) < lifetime <= timedelta(days=30)


def test_expired_or_foreign_token_rejected():
    s = get_settings()
    expired = jwt.encode(
        {"id": "abc", "email": "a@example.com", "exp": datetime.now(timezone.utc) - timedelta(seconds=1)},
        s.JWT_SECRET,
        algorithm="HS256",
    )
    with pytest.raises(Unauthenticated):
        decode_access_token(expired)

    foreign = jwt.encode({"id": "abc", "exp": datetime.now(timezone.utc) + timedelta(days=1)}, "other", algorithm="HS256")
    with pytest.raises(Unauthenticated):
        decode_access_token(foreign)


def test_payment_signature():
    assert verify_payment_signature("order_1", "pay_1", sign("order_1", "pay_1"), "rzp_test_secret")
    assert not verify_payment_signature("order_1", "pay_2", sign("order_1", "pay_1"), "rzp_test_secret")
    assert not verify_payment_signature("order_1", "pay_1", "", "rzp_test_secret")


@pytest.mark.asyncio
async def test_razorpay_order_payload():
    seen = {}

    def handler(request: httpx.Request):
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "order_X", **seen["body"]})

    gw = RazorpayGateway("key", "secret", api_base="https://rzp.example/v1", transport=httpx.MockTransport(handler))
    order = await gw.create_order(199, "INR", "subscription_" + "x" * 60)

    assert seen["path"] == "/v1/orders"
    assert seen["auth"].startswith("Basic ")
    assert seen["body"]["amount"] == 19900
    assert seen["body"]["payment_capture"] == 1
    assert len(seen["body"]["receipt"]) == 40
    assert order["id"] == "order_X"


@pytest.mark.asyncio
async def test_razorpay_failure_maps_to_upstream_error():
    gw = RazorpayGateway(
        "key",
        "secret",
        transport=httpx.MockTransport(lambda request: httpx.Response(401, json={"error": "bad key"})),
    )
    with pytest.raises(UpstreamFailure):
        await gw.create_customer("A", "a@example.com")


def test_image_validation_rules():
    validate_image("photo.JPEG", 10, 100)
    validate_image("anim.gif", 100, 100)
    with pytest.raises(ValidationError):
        validate_image("doc.pdf", 10, 100)
    with pytest.raises(ValidationError):
        validate_image("big.png", 101, 100)
    with pytest.raises(ValidationError):
        validate_image(None, 1, 100)


def test_safe_filename():
    assert safe_filename("../../etc/passwd.png") == "passwd.png"
    assert safe_filename("my photo (1).jpg") == "my_photo_1_.jpg"


def test_add_months_is_calendar_aware():
    assert add_months(datetime(2026, 1, 31)) == datetime(2026, 2, 28)
    assert add_months(datetime(2026, 12, 15)) == datetime(2027, 1, 15)
    assert add_months(datetime(2026, 3, 10), -6) == datetime(2025, 9, 10)


def test_non_ascii_signature_does_not_match():
    assert not verify_payment_signature("order_1", "pay_1", "подпись", "rzp_test_secret")


@pytest.mark.asyncio
async def test_oversized_upload_is_read_only_up_to_limit(tmp_path):
    storage = LocalStorage(tmp_path, "/uploads", max_bytes=10)
    upload = UploadFile(file=io.BytesIO(b"x" * 10_000), filename="big.png")

    with pytest.raises(ValidationError):
        await storage.save_images([upload], "categories")

    assert upload.file.tell() == 11
    assert not (tmp_path / "categories").exists()

# 📂 backend/mediahub/payments.py — клиент платёжного шлюза Razorpay
# -----------------------------------------------------------------------------
# Что делает:
#   • RazorpayGateway.create_customer(name, email, contact?) → POST /customers
#   • RazorpayGateway.create_order(amount, currency, receipt) → POST /orders
#       - amount передаётся в пайсах (amount * 100),
#       - payment_capture=1 (автоматический захват платежа),
#       - receipt обрезается до 40 символов (ограничение шлюза).
#   • verify_payment_signature(order_id, payment_id, signature, secret):
#       HMAC-SHA256("<order_id>|<payment_id>", key_secret) == signature.
#
# Особенности:
#   • REST-вызовы через httpx.AsyncClient c Basic-авторизацией (key_id:key_secret)
#     и таймаутом settings.RAZORPAY_TIMEOUT. Ретраев нет.
#   • Любая сетевая/HTTP-ошибка → UpstreamFailure (500) + запись в лог.
#   • get_payment_gateway() — FastAPI-зависимость; в тестах подменяется
#     через app.dependency_overrides.
# -----------------------------------------------------------------------------

from __future__ import annotations

import hashlib
import hmac
from typing import Any, Dict, Optional

import httpx

from .config import get_settings
from .errors import UpstreamFailure
from .utils import get_logger

logger = get_logger("mediahub.payments")

RECEIPT_MAX_LEN = 40


def verify_payment_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    """Сверка подписи платежа (константное время сравнения)."""
    expected = hmac.new(
        secret.encode("utf-8"),
        f"{order_id}|{payment_id}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return hmac.compare_digest(expected.encode("utf-8"), (signature or "").encode("utf-8"))


class RazorpayGateway:
    """Минимальный REST-клиент Razorpay: клиенты и заказы."""

    def __init__(
        self,
        key_id: Optional[str],
        key_secret: Optional[str],
        api_base: str = "https://api.razorpay.com/v1",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.key_id = key_id or ""
        self.key_secret = key_secret or ""
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.api_base}{path}"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                auth=(self.key_id, self.key_secret),
                transport=self._transport,
            ) as client:
                r = await client.post(url, json=payload)
                r.raise_for_status()
                return r.json()
        except httpx.HTTPStatusError as e:
            logger.error("Razorpay %s failed: HTTP %s %s", path, e.response.status_code, e.response.text[:300])
            raise UpstreamFailure("Payment gateway request failed", error=f"HTTP {e.response.status_code}")
        except httpx.HTTPError as e:
            logger.error("Razorpay %s failed: %s", path, e)
            raise UpstreamFailure("Payment gateway request failed", error=str(e))

    async def create_customer(self, name: str, email: str, contact: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"name": name, "email": email}
        if contact:
            payload["contact"] = contact
        customer = await self._post("/customers", payload)
        logger.info("Razorpay customer created: %s", customer.get("id"))
        return customer

    async def create_order(self, amount: int, currency: str, receipt: str) -> Dict[str, Any]:
        """
        Создаёт заказ. amount — в основных единицах (рупии), шлюз получает пайсы.
        """
        payload = {
            "amount": int(amount) * 100,
            "currency": currency,
            "receipt": receipt[:RECEIPT_MAX_LEN],
            "payment_capture": 1,
        }
        order = await self._post("/orders", payload)
        logger.info("Razorpay order created: %s (receipt=%s)", order.get("id"), payload["receipt"])
        return order

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        return verify_payment_signature(order_id, payment_id, signature, self.key_secret)


def get_payment_gateway() -> RazorpayGateway:
    """FastAPI-зависимость: шлюз по текущим настройкам."""
    s = get_settings()
    return RazorpayGateway(
        key_id=s.RAZORPAY_KEY_ID,
        key_secret=s.RAZORPAY_KEY_SECRET,
        api_base=s.RAZORPAY_API_BASE,
        timeout=s.RAZORPAY_TIMEOUT,
    )

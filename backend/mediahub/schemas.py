# 📂 backend/mediahub/schemas.py — Pydantic-схемы и проекции для API MediaHub
# --------------------------------------------------------
# Все контракты API (FastAPI):
# - Входные JSON-payload'ы (регистрация, вход, категории, ссылки, подписка)
# - Проекции ORM → JSON для пользователей и админов
#
# Поля входных схем опциональны: отсутствие поля — это наш 400 с понятным
# сообщением (require_fields), а не 422 от валидатора.

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from .errors import ValidationError
from .models import Admin, User
from .services.subscription import payment_view, subscription_view
from .utils import as_utc


def require_fields(message: str, *values: Any) -> None:
    """Любое пустое значение → ValidationError(message)."""
    for v in values:
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ValidationError(message)


def iso(dt) -> Optional[str]:
    dt = as_utc(dt)
    return dt.isoformat() if dt else None


# ======================
# 👤 Пользователи
# ======================
class UserRegisterIn(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    deviceId: Optional[str] = Field(None, description="Идентификатор устройства регистрации")


class UserLoginIn(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    deviceId: Optional[str] = None


class SubscriptionCreateIn(BaseModel):
    contact: Optional[str] = Field(None, description="Телефон для формы оплаты")


class SubscriptionVerifyIn(BaseModel):
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None


# ======================
# 🛡️ Админы
# ======================
class AdminRegisterIn(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class AdminLoginIn(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


# ======================
# 🗂️ Каталог / ссылки
# ======================
class MainCategoryIn(BaseModel):
    name: Optional[str] = None


class UrlIn(BaseModel):
    url: Optional[str] = None


# ======================
# 🔁 Проекции
# ======================
def normalize_email(email: str) -> str:
    return email.strip().lower()


def auth_view(user: User, token: str) -> Dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "subscription": subscription_view(user),
        "token": token,
    }


def profile_view(user: User) -> Dict[str, Any]:
    """Полный профиль без пароля."""
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "registrationDeviceId": user.registration_device_id,
        "devices": [{"deviceId": d.device_id, "lastLogin": iso(d.last_login)} for d in user.devices],
        "subscription": subscription_view(user),
        "payments": [payment_view(p) for p in user.payments],
        "createdAt": iso(user.created_at),
        "updatedAt": iso(user.updated_at),
    }


def user_list_item(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "subscription": subscription_view(user),
        "createdAt": iso(user.created_at),
    }


def admin_view(admin: Admin, token: Optional[str] = None) -> Dict[str, Any]:
    body = {"id": admin.id, "name": admin.name, "email": admin.email, "role": admin.role}
    if token is not None:
        body["token"] = token
    return body

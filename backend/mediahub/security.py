# 📂 backend/mediahub/security.py — пароли, JWT и гейты авторизации
# -----------------------------------------------------------------------------
# Что делает:
#   • hash_password / verify_password — bcrypt.
#   • create_access_token / decode_access_token — JWT (HS256) c claims
#     {id, email, exp}; срок фиксированный (settings.JWT_EXPIRES_DAYS), без
#     refresh и без отзыва — токен умирает только по exp или при смене секрета.
#   • Гейты (FastAPI Depends):
#       - get_current_identity  — любой субъект: сначала ищем в users,
#                                 затем в admins; иначе 401.
#       - get_optional_identity — то же, но без заголовка → аноним (не премиум).
#       - require_admin         — токен валиден И субъект найден в admins; иначе 403.
#   • Identity — нормализованный субъект запроса {id, email, is_admin, is_premium, kind}.
#
# Важно:
#   • Премиум у пользователя = активная подписка после ленивой проверки срока
#     (services/subscription.refresh_subscription). Админ всегда премиум.
# -----------------------------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional

import bcrypt
import jwt
from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .database import get_session
from .errors import Forbidden, NotFound, Unauthenticated
from .models import Admin, User
from .services.subscription import refresh_subscription
from .utils import utcnow

settings = get_settings()

BCRYPT_MAX_BYTES = 72


# -----------------------------------------------------------------------------
# Пароли
# -----------------------------------------------------------------------------
def _pw_bytes(password: str) -> bytes:
    # bcrypt учитывает только первые 72 байта
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(_pw_bytes(password), salt).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(_pw_bytes(password), hashed.encode("utf-8"))
    except ValueError:
        # Битый хеш в БД
        return False


# -----------------------------------------------------------------------------
# Токены
# -----------------------------------------------------------------------------
def create_access_token(subject_id: str, email: str) -> str:
    """Выдаёт Bearer-токен для пользователя или админа."""
    payload = {
        "id": subject_id,
        "email": email,
        "exp": utcnow() + timedelta(days=settings.JWT_EXPIRES_DAYS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Проверяет подпись и срок действия. Любая ошибка → Unauthenticated (401).
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError as e:
        raise Unauthenticated("Invalid token", error=str(e))
    if not payload.get("id"):
        raise Unauthenticated("Invalid token", error="Token subject is missing")
    return payload


def _extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


# -----------------------------------------------------------------------------
# Субъект запроса
# -----------------------------------------------------------------------------
@dataclass
class Identity:
    id: Optional[str]
    email: Optional[str]
    is_admin: bool = False
    is_premium: bool = False
    kind: str = "anonymous"  # 'user' | 'admin' | 'anonymous'

    @property
    def is_user(self) -> bool:
        return self.kind == "user"


ANONYMOUS = Identity(id=None, email=None)


async def resolve_identity(db: AsyncSession, token: str) -> Identity:
    """
    Разрешает токен в субъекта: users → admins. Никого не нашли — 401.
    """
    payload = decode_access_token(token)
    subject_id = str(payload["id"])

    user = (await db.execute(select(User).where(User.id == subject_id))).scalar_one_or_none()
    if user is not None:
        is_premium = await refresh_subscription(db, user)
        return Identity(id=user.id, email=user.email, is_admin=False, is_premium=is_premium, kind="user")

    admin = (await db.execute(select(Admin).where(Admin.id == subject_id))).scalar_one_or_none()
    if admin is not None:
        return Identity(id=admin.id, email=admin.email, is_admin=True, is_premium=True, kind="admin")

    raise Unauthenticated("Invalid token", error="Token subject not found")


async def get_current_identity(
    db: AsyncSession = Depends(get_session),
    authorization: Optional[str] = Header(None),
) -> Identity:
    """Гейт «любой авторизованный субъект»."""
    token = _extract_bearer(authorization)
    if not token:
        raise Unauthenticated("Authentication required")
    return await resolve_identity(db, token)


async def get_optional_identity(
    db: AsyncSession = Depends(get_session),
    authorization: Optional[str] = Header(None),
) -> Identity:
    """Публичные ручки: без заголовка — аноним, с заголовком — как get_current_identity."""
    token = _extract_bearer(authorization)
    if not token:
        return ANONYMOUS
    return await resolve_identity(db, token)


async def require_admin(
    db: AsyncSession = Depends(get_session),
    authorization: Optional[str] = Header(None),
) -> Identity:
    """
    Гейт «только администратор»:
      • нет/битый токен → 401;
      • токен валиден, но субъект не админ → 403.
    """
    token = _extract_bearer(authorization)
    if not token:
        raise Unauthenticated("Authentication required")
    payload = decode_access_token(token)

    admin = (await db.execute(select(Admin).where(Admin.id == str(payload["id"])))).scalar_one_or_none()
    if admin is None:
        raise Forbidden("Access denied. Admin privileges required.")
    return Identity(id=admin.id, email=admin.email, is_admin=True, is_premium=True, kind="admin")


async def require_user(
    db: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_current_identity),
) -> User:
    """
    Для ручек /users/*: загружает запись пользователя текущего субъекта.
    Админский токен здесь не подходит — такого пользователя нет (404).
    """
    user = None
    if identity.is_user:
        user = (await db.execute(select(User).where(User.id == identity.id))).scalar_one_or_none()
    if user is None:
        raise NotFound("User not found")
    return user

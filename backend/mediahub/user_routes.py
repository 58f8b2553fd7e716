# 📂 backend/mediahub/user_routes.py — пользовательские эндпоинты
# -----------------------------------------------------------------------------
# Что покрывает:
#   • POST   /api/users/register              — регистрация (привязка к устройству)
#   • POST   /api/users/login                 — вход + учёт устройства
#   • GET    /api/users/profile               — профиль без пароля
#   • GET    /api/users/subscription          — статус подписки + история платежей
#   • POST   /api/users/subscription/create   — заказ в Razorpay на ежемесячный план
#   • POST   /api/users/subscription/verify   — проверка подписи и активация
#
# Особенности:
#   • Пользователь идентифицируется Bearer-токеном (security.require_user).
#   • Один аккаунт на email и один на registrationDeviceId.
#   • Истечение подписки — лениво, при каждом чтении (services/subscription.py).
#   • Повторная верификация того же razorpay_payment_id — no-op.
#
# Зависимости:
#   • database.get_session — AsyncSession
#   • payments.get_payment_gateway — клиент шлюза (подменяется в тестах)
# -----------------------------------------------------------------------------

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .database import get_session
from .errors import InvalidSignature, Unauthenticated, ValidationError
from .models import User, UserDevice
from .payments import RazorpayGateway, get_payment_gateway
from .schemas import (
    SubscriptionCreateIn,
    SubscriptionVerifyIn,
    UserLoginIn,
    UserRegisterIn,
    auth_view,
    normalize_email,
    profile_view,
    require_fields,
)
from .security import create_access_token, hash_password, require_user, verify_password
from .services.subscription import (
    activate_subscription,
    payment_view,
    refresh_subscription,
    subscription_view,
)
from .utils import envelope, get_logger, utcnow

settings = get_settings()
router = APIRouter(prefix="/users", tags=["users"])
logger = get_logger("mediahub.users")


# ------------------------------------------------------------
# Регистрация / вход
# ------------------------------------------------------------

@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register_user(payload: UserRegisterIn, db: AsyncSession = Depends(get_session)):
    """
    Регистрация пользователя. Устройство регистрации фиксируется навсегда:
    с одного deviceId можно завести только один аккаунт.
    """
    require_fields(
        "Please provide all required fields including device ID",
        payload.name, payload.email, payload.password, payload.deviceId,
    )
    email = normalize_email(payload.email)
    device_id = payload.deviceId.strip()

    q = await db.execute(select(User).where(User.registration_device_id == device_id))
    if q.scalar_one_or_none() is not None:
        logger.info("Registration rejected: device %s already bound", device_id)
        raise ValidationError("This device is already registered to another account")

    q = await db.execute(select(User).where(User.email == email))
    if q.scalar_one_or_none() is not None:
        raise ValidationError("User already exists with this email")

    now = utcnow()
    user = User(
        name=payload.name.strip(),
        email=email,
        password=hash_password(payload.password),
        registration_device_id=device_id,
        created_at=now,
        updated_at=now,
    )
    user.devices.append(UserDevice(device_id=device_id, last_login=now))
    db.add(user)
    await db.commit()

    logger.info("User registered: %s", user.id)
    token = create_access_token(user.id, user.email)
    return envelope(auth_view(user, token), message="User registered successfully")


@router.post("/login")
async def login_user(payload: UserLoginIn, db: AsyncSession = Depends(get_session)):
    """Вход по email/паролю; lastLogin устройства обновляется или устройство добавляется."""
    require_fields("Please provide email, password and device ID", payload.email, payload.password, payload.deviceId)
    email = normalize_email(payload.email)
    device_id = payload.deviceId.strip()

    user = (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()
    if user is None or not verify_password(payload.password, user.password):
        logger.warning("Failed login for %s", email)
        raise Unauthenticated("Invalid email or password")

    now = utcnow()
    device = next((d for d in user.devices if d.device_id == device_id), None)
    if device is not None:
        device.last_login = now
    else:
        user.devices.append(UserDevice(device_id=device_id, last_login=now))
    user.updated_at = now
    await db.commit()

    await refresh_subscription(db, user)
    token = create_access_token(user.id, user.email)
    return envelope(auth_view(user, token), message="Login successful")


# ------------------------------------------------------------
# Профиль
# ------------------------------------------------------------

@router.get("/profile")
async def get_profile(user: User = Depends(require_user), db: AsyncSession = Depends(get_session)):
    await refresh_subscription(db, user)
    return envelope(profile_view(user))


# ------------------------------------------------------------
# Подписка
# ------------------------------------------------------------

@router.get("/subscription")
async def get_subscription(user: User = Depends(require_user), db: AsyncSession = Depends(get_session)):
    """
    Статус подписки. Если срок вышел — флаг выключается и сохраняется
    до формирования ответа (повторный вызов ничего не меняет).
    """
    await refresh_subscription(db, user)
    return envelope({
        "subscription": subscription_view(user),
        "payments": [payment_view(p) for p in user.payments],
    })


@router.post("/subscription/create")
async def create_subscription_order(
    payload: Optional[SubscriptionCreateIn] = None,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
):
    """
    Создаёт заказ на ежемесячный план.
    Клиент в шлюзе создаётся один раз и кэшируется в subscription_customer_id.
    Шаги не откатываются: если заказ упал, клиент в шлюзе уже создан.
    """
    plan = settings.subscription_plan()
    contact = payload.contact if payload else None

    if not user.subscription_customer_id:
        customer = await gateway.create_customer(user.name, user.email, contact)
        user.subscription_customer_id = customer.get("id")
        user.updated_at = utcnow()
        await db.commit()

    order = await gateway.create_order(plan["amount"], plan["currency"], f"subscription_{user.id}")

    return envelope(
        {
            "order": order,
            "key_id": gateway.key_id,
            "user_info": {"name": user.name, "email": user.email, "contact": contact or ""},
            "subscription": {
                "plan": plan["name"],
                "amount": plan["amount"],
                "currency": plan["currency"],
                "description": plan["description"],
            },
        },
        message="Subscription order created",
    )


@router.post("/subscription/verify")
async def verify_subscription_payment(
    payload: SubscriptionVerifyIn,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
):
    """
    Проверяет подпись платежа и активирует подписку на календарный месяц.
    Неверная подпись → 400, состояние не меняется.
    """
    require_fields(
        "Please provide razorpay_order_id, razorpay_payment_id and razorpay_signature",
        payload.razorpay_order_id, payload.razorpay_payment_id, payload.razorpay_signature,
    )
    if not gateway.verify_signature(payload.razorpay_order_id, payload.razorpay_payment_id, payload.razorpay_signature):
        logger.warning("Invalid payment signature from user %s (order %s)", user.id, payload.razorpay_order_id)
        raise InvalidSignature()

    payment, created = await activate_subscription(
        db,
        user,
        order_id=payload.razorpay_order_id,
        payment_id=payload.razorpay_payment_id,
        signature=payload.razorpay_signature,
        amount=settings.SUBSCRIPTION_PLAN_AMOUNT,
    )
    if not created:
        await refresh_subscription(db, user)

    message = (
        "Payment verified. Subscription activated successfully" if created else "Payment already verified"
    )
    return envelope({"subscription": subscription_view(user), "payment": payment_view(payment)}, message=message)

# 📂 backend/mediahub/services/subscription.py — журнал подписок пользователей
# =============================================================================
# Назначение:
#   Состояния подписки пользователя:
#     NoSubscription → PendingOrder → Active → Expired
#   • NoSubscription → PendingOrder: заказ в шлюзе (user_routes, payments.py),
#     локально меняется только кэш subscription_customer_id.
#   • PendingOrder → Active: activate_subscription() после проверки подписи.
#     Идемпотентно по gateway_payment_id: повтор того же платежа ничего не меняет.
#   • Active → Expired: лениво, refresh_subscription() при каждом чтении статуса.
#     Фонового «подметальщика» нет.
#
# Примечания:
#   • Окно подписки — календарный месяц от момента верификации.
#   • Платёж добавляется со статусом 'captured' (в заказе payment_capture=1).
# =============================================================================

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import ValidationError
from ..models import Payment, User
from ..utils import add_months, as_utc, get_logger, utcnow

logger = get_logger("mediahub.subscription")

PLAN_MONTHLY = "monthly"


def _iso(dt) -> Optional[str]:
    dt = as_utc(dt)
    return dt.isoformat() if dt else None


def is_expired(user: User, now=None) -> bool:
    end = as_utc(user.subscription_end_date)
    return end is not None and end < (now or utcnow())


async def refresh_subscription(db: AsyncSession, user: User) -> bool:
    """
    Ленивая проверка срока: если подписка активна, но end_date в прошлом —
    выключаем и сохраняем. Возвращает итоговый флаг is_active.
    Повторный вызов ничего не меняет.
    """
    if user.subscription_is_active and is_expired(user):
        user.subscription_is_active = False
        await db.commit()
        logger.info("Subscription expired for user %s", user.id)
    return bool(user.subscription_is_active)


def subscription_view(user: User) -> Dict[str, Any]:
    return {
        "isActive": bool(user.subscription_is_active),
        "plan": user.subscription_plan,
        "startDate": _iso(user.subscription_start_date),
        "endDate": _iso(user.subscription_end_date),
        "externalCustomerId": user.subscription_customer_id,
    }


def payment_view(p: Payment) -> Dict[str, Any]:
    return {
        "id": p.id,
        "gatewayPaymentId": p.gateway_payment_id,
        "gatewayOrderId": p.gateway_order_id,
        "gatewaySignature": p.gateway_signature,
        "amount": p.amount,
        "status": p.status,
        "createdAt": _iso(p.created_at),
    }


async def activate_subscription(
    db: AsyncSession,
    user: User,
    order_id: str,
    payment_id: str,
    signature: str,
    amount: int,
) -> Tuple[Payment, bool]:
    """
    Переводит подписку в Active после успешной проверки подписи.

    Возвращает (payment, created):
      • created=True  — новый платёж записан, окно подписки выставлено заново;
      • created=False — этот payment_id уже был верифицирован, ничего не меняли.
    """
    existing = (
        await db.execute(select(Payment).where(Payment.gateway_payment_id == payment_id))
    ).scalar_one_or_none()
    if existing is not None:
        if existing.user_id != user.id:
            raise ValidationError("Payment belongs to another account")
        logger.info("Duplicate verify for payment %s (user %s) ignored", payment_id, user.id)
        return existing, False

    now = utcnow()
    user.subscription_is_active = True
    user.subscription_plan = PLAN_MONTHLY
    user.subscription_start_date = now
    user.subscription_end_date = add_months(now, 1)

    payment = Payment(
        gateway_payment_id=payment_id,
        gateway_order_id=order_id,
        gateway_signature=signature,
        amount=amount,
        status="captured",
        created_at=now,
    )
    user.payments.append(payment)
    await db.commit()

    logger.info("Subscription activated for user %s until %s", user.id, user.subscription_end_date.isoformat())
    return payment, True

# 📂 backend/mediahub/admin_routes.py — админ-модуль MediaHub
# -----------------------------------------------------------------------------
# Назначение:
#   • Аккаунты администраторов (регистрация/вход) — тот же формат Bearer-токена,
#     что и у пользователей, но отдельная таблица admins.
#   • Панель управления: количество пользователей, активные подписки,
#     выручка и число транзакций за текущий месяц, последние подписки.
#   • Просмотр пользователей (пагинация, новые первыми) и карточки пользователя.
#   • Статистика подписок: помесячный тренд за последние 6 месяцев.
#
# Проверка прав:
#   • security.require_admin — токен валиден И субъект найден в admins, иначе 403.
#
# Примечание:
#   • Агрегации считаются переносимо (PostgreSQL и SQLite): суммы — в SQL,
#     группировка тренда по YYYY-MM — в Python.
#   • Выручка тренда = количество подписок × цена плана (фиксированная цена).
# -----------------------------------------------------------------------------

from __future__ import annotations

import math
from collections import OrderedDict
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .database import get_session
from .errors import NotFound, Unauthenticated, ValidationError
from .models import Admin, Payment, User
from .schemas import (
    AdminLoginIn,
    AdminRegisterIn,
    admin_view,
    normalize_email,
    profile_view,
    require_fields,
    user_list_item,
)
from .security import Identity, create_access_token, hash_password, require_admin, verify_password
from .services.subscription import subscription_view
from .utils import add_months, as_utc, envelope, first_day_of_month, get_logger, utcnow

# -----------------------------------------------------------------------------
# Глобальные настройки и инициализация роутера
# -----------------------------------------------------------------------------
settings = get_settings()
router = APIRouter(prefix="/admin", tags=["admin"])
logger = get_logger("mediahub.admin")

TREND_MONTHS = 6
RECENT_SUBSCRIPTIONS_LIMIT = 10


# -----------------------------------------------------------------------------
# Аккаунты администраторов
# -----------------------------------------------------------------------------
@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register_admin(payload: AdminRegisterIn, db: AsyncSession = Depends(get_session)):
    """
    Регистрация администратора.
    Эндпоинт публичный, как и в исходной админке; ограничивать доступ — задача
    периметра (reverse-proxy / allowlist).
    """
    require_fields("Please provide all required fields", payload.name, payload.email, payload.password)
    email = normalize_email(payload.email)

    exists = (await db.execute(select(Admin).where(Admin.email == email))).scalar_one_or_none()
    if exists is not None:
        raise ValidationError("Admin already exists with this email")

    admin = Admin(name=payload.name.strip(), email=email, password=hash_password(payload.password))
    db.add(admin)
    await db.commit()

    logger.info("Admin registered: %s", admin.id)
    token = create_access_token(admin.id, admin.email)
    return envelope(admin_view(admin, token), message="Admin registered successfully")


@router.post("/login")
async def login_admin(payload: AdminLoginIn, db: AsyncSession = Depends(get_session)):
    require_fields("Please provide email and password", payload.email, payload.password)
    email = normalize_email(payload.email)

    admin = (await db.execute(select(Admin).where(Admin.email == email))).scalar_one_or_none()
    if admin is None or not verify_password(payload.password, admin.password):
        logger.warning("Failed admin login for %s", email)
        raise Unauthenticated("Invalid email or password")

    token = create_access_token(admin.id, admin.email)
    return envelope(admin_view(admin, token), message="Login successful")


# -----------------------------------------------------------------------------
# Панель управления
# -----------------------------------------------------------------------------
async def _count_users(db: AsyncSession, *where) -> int:
    q = await db.execute(select(func.count()).select_from(User).where(*where))
    return int(q.scalar() or 0)


@router.get("/dashboard")
async def admin_dashboard(
    db: AsyncSession = Depends(get_session),
    admin: Identity = Depends(require_admin),
):
    """
    Сводка для главного экрана админки.
    Выручка месяца — сумма захваченных платежей с 1-го числа текущего месяца.
    """
    total_users = await _count_users(db)
    active_subscriptions = await _count_users(db, User.subscription_is_active.is_(True))

    month_start = first_day_of_month(utcnow())
    q = await db.execute(
        select(func.coalesce(func.sum(Payment.amount), 0), func.count(Payment.id)).where(
            Payment.created_at >= month_start,
            Payment.status == "captured",
        )
    )
    monthly_revenue, monthly_transactions = q.one()

    q = await db.execute(
        select(User)
        .where(User.subscription_is_active.is_(True))
        .order_by(desc(User.subscription_start_date))
        .limit(RECENT_SUBSCRIPTIONS_LIMIT)
    )
    recent = [
        {"id": u.id, "name": u.name, "email": u.email, "subscription": subscription_view(u)}
        for u in q.scalars().all()
    ]

    return envelope({
        "totalUsers": total_users,
        "activeSubscriptions": active_subscriptions,
        "monthlyRevenue": int(monthly_revenue or 0),
        "monthlyTransactions": int(monthly_transactions or 0),
        "recentSubscriptions": recent,
    })


# -----------------------------------------------------------------------------
# Пользователи
# -----------------------------------------------------------------------------
@router.get("/users")
async def admin_list_users(
    page: int = Query(1, description="Номер страницы (с 1)"),
    limit: int = Query(10, description="Размер страницы"),
    db: AsyncSession = Depends(get_session),
    admin: Identity = Depends(require_admin),
):
    page = max(page, 1)
    limit = max(limit, 1)

    total = await _count_users(db)
    q = await db.execute(
        select(User).order_by(desc(User.created_at)).offset((page - 1) * limit).limit(limit)
    )
    users = [user_list_item(u) for u in q.scalars().all()]

    return envelope({
        "users": users,
        "pagination": {
            "total": total,
            "page": page,
            "pages": math.ceil(total / limit),
            "limit": limit,
        },
    })


@router.get("/users/{user_id}")
async def admin_get_user(
    user_id: str = Path(..., description="ID пользователя"),
    db: AsyncSession = Depends(get_session),
    admin: Identity = Depends(require_admin),
):
    user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if user is None:
        raise NotFound("User not found")
    return envelope(profile_view(user))


# -----------------------------------------------------------------------------
# Статистика подписок
# -----------------------------------------------------------------------------
def build_subscription_trend(start_dates: List[Any], price: int) -> List[Dict[str, Any]]:
    """
    Группирует даты старта подписок по месяцам YYYY-MM (по возрастанию).
    """
    buckets: "OrderedDict[str, int]" = OrderedDict()
    for dt in sorted(as_utc(d) for d in start_dates if d is not None):
        key = f"{dt.year}-{dt.month:02d}"
        buckets[key] = buckets.get(key, 0) + 1
    return [
        {"month": month, "subscriptions": count, "revenue": count * price}
        for month, count in buckets.items()
    ]


@router.get("/subscriptions")
async def admin_subscription_stats(
    db: AsyncSession = Depends(get_session),
    admin: Identity = Depends(require_admin),
):
    since = add_months(utcnow(), -TREND_MONTHS)
    q = await db.execute(select(User.subscription_start_date).where(User.subscription_start_date >= since))
    trend = build_subscription_trend(list(q.scalars().all()), settings.SUBSCRIPTION_PLAN_AMOUNT)

    active_subscriptions = await _count_users(db, User.subscription_is_active.is_(True))
    return envelope({
        "subscriptionTrend": trend,
        "activeSubscriptions": active_subscriptions,
        "totalRevenue": sum(item["revenue"] for item in trend),
    })

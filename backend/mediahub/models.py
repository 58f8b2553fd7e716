# 📂 backend/mediahub/models.py — SQLAlchemy ORM-модели
# -----------------------------------------------------------------------------
# Назначение:
#   • Пользователи приложения (User) с устройствами (UserDevice) и историей
#     платежей (Payment) — дочерние таблицы живут ровно столько же, сколько аккаунт.
#   • Администраторы (Admin) — отдельное пространство идентификаторов,
#     но тот же формат Bearer-токена.
#   • Каталог: двухуровневое дерево Category (главная → подкатегории).
#   • Синглтоны: Home (обложка + премиум-баннеры) и ExternalLink (ссылка
#     на телеграм-канал).
#
# Бизнес-правила:
#   • Все первичные ключи — строковые UUID4, поэтому id пользователя и админа
#     не пересекаются и один токен {id, email} однозначно указывает на субъект.
#   • Один аккаунт на email и один на registration_device_id (UNIQUE).
#   • Подписка хранится плоскими колонками subscription_* у User; истечение
#     проверяется лениво при чтении (см. services/subscription.py).
#   • Удаление главной категории каскадно удаляет подкатегории — это делает
#     сервисный слой явным DELETE (связь parent — слабая ссылка).
#   • ExternalLink.slot UNIQUE с единственным значением 'default' —
#     в таблице физически не может быть двух записей.
# -----------------------------------------------------------------------------

from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship

from .utils import gen_uuid, utcnow

Base = declarative_base()

PAYMENT_STATUSES = ("created", "authorized", "captured", "refunded", "failed")
EXTERNAL_LINK_SLOT = "default"


# =============================================================================
# Пользователи и связанные сущности
# =============================================================================
class User(Base):
    """
    Пользователь приложения. Регистрация привязана к устройству:
    registration_device_id задаётся один раз и не меняется.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password = Column(String(255), nullable=False)  # bcrypt-хеш
    registration_device_id = Column(String(255), nullable=False, unique=True, index=True)

    subscription_is_active = Column(Boolean, nullable=False, default=False)
    subscription_plan = Column(String(32), nullable=False, default="free")
    subscription_start_date = Column(DateTime(timezone=True), nullable=True)
    subscription_end_date = Column(DateTime(timezone=True), nullable=True)
    subscription_customer_id = Column(String(64), nullable=True)  # id клиента в Razorpay

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    devices = relationship(
        "UserDevice",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="UserDevice.id",
    )
    payments = relationship(
        "Payment",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Payment.created_at",
    )


class UserDevice(Base):
    """Устройство, с которого пользователь входил (обновляется при каждом логине)."""
    __tablename__ = "user_devices"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    device_id = Column(String(255), nullable=False)
    last_login = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    user = relationship("User", back_populates="devices")


class Payment(Base):
    """
    Платёж по подписке (append-only).
    gateway_payment_id уникален: повторная верификация того же платежа — no-op.
    """
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    gateway_payment_id = Column(String(64), nullable=True, unique=True)
    gateway_order_id = Column(String(64), nullable=True)
    gateway_signature = Column(String(128), nullable=True)
    amount = Column(Integer, nullable=False, default=0)
    status = Column(String(16), nullable=False, default="created")  # см. PAYMENT_STATUSES
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    user = relationship("User", back_populates="payments")


class Admin(Base):
    """Администратор панели управления."""
    __tablename__ = "admins"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password = Column(String(255), nullable=False)
    role = Column(String(32), nullable=False, default="admin")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


# =============================================================================
# Каталог
# =============================================================================
class Category(Base):
    """
    Узел каталога.
      - is_main_category=True: только name.
      - подкатегория: title, image_url, telegram_url обязательны,
        parent_category_id указывает на главную категорию.
    """
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    name = Column(String(255), nullable=False)
    is_main_category = Column(Boolean, nullable=False, default=False)
    parent_category_id = Column(String(36), ForeignKey("categories.id"), nullable=True, index=True)
    title = Column(String(255), nullable=True)
    image_url = Column(Text, nullable=True)
    telegram_url = Column(Text, nullable=True)
    is_premium = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


# =============================================================================
# Синглтоны
# =============================================================================
class Home(Base):
    """
    Контент главного экрана. Читается и пишется всегда «первая активная запись».
    premium_banners — JSON-список [{"path": ..., "url": ...}].
    """
    __tablename__ = "home"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    thumbnail_path = Column(Text, nullable=False, default="")
    thumbnail_url = Column(Text, nullable=False, default="")
    premium_banners = Column(JSON, nullable=False, default=list)
    searchable_url = Column(Text, nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class ExternalLink(Base):
    """Единственная внешняя ссылка (телеграм), атрибутированная последнему редактору-пользователю."""
    __tablename__ = "external_links"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    slot = Column(String(16), nullable=False, unique=True, default=EXTERNAL_LINK_SLOT)
    url = Column(Text, nullable=False)
    created_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    created_by = relationship("User", lazy="selectin")

# 📂 backend/mediahub/utils.py — общие утилиты (UUID, время, логгеры, ответы API)
# -----------------------------------------------------------------------------
# Здесь:
# - генерация ID (UUID) для всех записей,
# - работа со временем в UTC (aware), прибавление календарного месяца,
# - фабрика именованных логгеров с единым форматом,
# - конверт ответа API {success, message?, data?}.

from __future__ import annotations

import calendar
import logging
import sys
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .config import get_settings

# =========================
# 🆔 UUID
# =========================
def gen_uuid() -> str:
    """Генерация строкового UUID4 (первичные ключи всех таблиц)."""
    return str(uuid.uuid4())

# =========================
# 🕒 Время
# =========================
def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Приводит datetime к aware-UTC.
    Некоторые драйверы (SQLite) возвращают naive-значения — считаем их UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def add_months(dt: datetime, months: int = 1) -> datetime:
    """
    Календарное прибавление месяцев: 31 янв + 1 мес → 28/29 фев.
    """
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def first_day_of_month(dt: datetime) -> datetime:
    return dt.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

# =========================
# 📝 Логирование
# =========================
LOG_FORMAT = "[%(asctime)s][%(levelname)s] %(name)s: %(message)s"


def get_logger(name: str) -> logging.Logger:
    """
    Именованный логгер вида "mediahub.<area>" с выводом в stdout.
    Хендлер навешивается один раз на логгер, уровень — из settings.LOG_LEVEL.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(h)
        logger.propagate = False
    logger.setLevel(get_settings().LOG_LEVEL.upper())
    return logger

# =========================
# 📦 Конверт ответа
# =========================
def envelope(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    """Единый формат ответа: {success: True, message?, data?}."""
    body: Dict[str, Any] = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


def parse_bool(v: Any) -> bool:
    """Булевы поля multipart-форм приходят строками: 'true'/'false'."""
    if isinstance(v, bool):
        return v
    return str(v).strip().lower() in ("true", "1", "yes", "on")

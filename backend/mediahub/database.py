# 📂 backend/mediahub/database.py — подключение к БД, пул, сессии, создание таблиц
# -----------------------------------------------------------------------------
# Этот модуль отвечает за:
#   • Создание асинхронного движка SQLAlchemy (PostgreSQL + asyncpg в проде;
#     подойдёт любой async-DSN, например sqlite+aiosqlite для тестов).
#   • Настройку пула соединений (pool_size, max_overflow, pre_ping) — только
#     для серверных СУБД, у SQLite свой пул.
#   • Предоставление фабрики сессий и зависимостей для FastAPI:
#       - get_session() — Depends для роутов.
#   • Startup/Shutdown hooks: on_startup_init_db(), on_shutdown_dispose().
#
# Взаимосвязи:
#   • config.py — источник: DATABASE_URL, пул, DB_ECHO.
#   • models.py — декларативные модели (Base.metadata → create_all).
#   • main.py — вызывает on_startup_init_db()/on_shutdown_dispose() в lifespan.
#
# ПРИМЕЧАНИЯ:
#   • Версионированных миграций нет: таблицы создаются create_all при старте.
# -----------------------------------------------------------------------------

from __future__ import annotations

from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    create_async_engine,
)
from sqlalchemy.orm import sessionmaker

from .config import get_settings
from .utils import get_logger

logger = get_logger("mediahub.db")

# -----------------------------------------------------------------------------
# Глобальные синглтоны (создаются один раз на процесс/воркер)
# -----------------------------------------------------------------------------
_engine: Optional[AsyncEngine] = None
_SessionFactory: Optional[sessionmaker] = None


def _engine_kwargs(url: str) -> dict:
    """
    Параметры движка в зависимости от диалекта.
    SQLite не принимает pool_size/max_overflow — для него оставляем дефолтный пул.
    """
    s = get_settings()
    kwargs = {"echo": s.DB_ECHO}
    if not url.startswith("sqlite"):
        kwargs.update(
            pool_pre_ping=True,   # оживляет соединения после долгих простоев
            pool_size=s.DB_POOL_SIZE,
            max_overflow=s.DB_MAX_OVERFLOW,
        )
    return kwargs


def get_engine() -> AsyncEngine:
    """
    Ленивая инициализация AsyncEngine + фабрики сессий.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        return _engine

    db_url = get_settings().DATABASE_URL
    if not db_url:
        raise RuntimeError("DATABASE_URL is empty and DATABASE_URL_LOCAL is not provided in settings.")

    _engine = create_async_engine(db_url, **_engine_kwargs(db_url))

    # autoflush=False — ручной контроль flush; expire_on_commit=False — объекты живы после commit
    _SessionFactory = sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )
    return _engine


def _new_session() -> AsyncSession:
    if _SessionFactory is None:
        get_engine()
    assert _SessionFactory is not None, "Session factory is not initialized"
    return _SessionFactory()


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI-зависимость: новая сессия на каждый запрос (commit/rollback/close).
    Роуты, которые пишут, всё равно делают явный commit до формирования ответа.
    """
    session = _new_session()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def create_tables(engine: Optional[AsyncEngine] = None) -> None:
    """Создаёт таблицы моделей, если их ещё нет (idempotent)."""
    from .models import Base

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def check_db_connection(engine: Optional[AsyncEngine] = None) -> bool:
    """
    Простой health-check (SELECT 1). Возвращает True, если соединение установлено.
    """
    engine = engine or get_engine()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning("DB health check failed: %s", e)
        return False


async def on_startup_init_db() -> None:
    """
    Вызывается из lifespan при старте приложения:
      1) Ленивая инициализация движка/фабрики сессий.
      2) Создание таблиц (idempotent).
      3) Проверка соединения — при неуспехе бросаем исключение.
    """
    engine = get_engine()
    await create_tables(engine)
    ok = await check_db_connection(engine)
    if not ok:
        # Платформа перезапустит инстанс
        raise RuntimeError("Database connection failed during startup.")


async def on_shutdown_dispose() -> None:
    """Корректное закрытие движка при остановке приложения."""
    global _engine, _SessionFactory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
    _SessionFactory = None

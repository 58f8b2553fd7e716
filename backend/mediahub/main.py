# 📂 backend/mediahub/main.py — запуск FastAPI-приложения MediaHub
# -----------------------------------------------------------------------------
# Что делает:
#   1) Создаёт и конфигурирует FastAPI-приложение.
#   2) Подключает CORS (для мобильного/веб-клиента и админки).
#   3) Регистрирует обработчики ошибок: любые ошибки → {"success": false, ...}.
#   4) Регистрирует API-роуты (с префиксом settings.API_V1_STR):
#        users, admin, categories, home, telegram-links.
#   5) Раздаёт загруженные картинки из settings.UPLOAD_DIR по
#      settings.UPLOAD_PUBLIC_BASE_URL (StaticFiles).
#   6) Lifespan: на старте — таблицы + health-check БД, на остановке — dispose.
#   7) Информационные эндпоинты: GET / (root), GET /healthz.
#
# Где используется:
#   - uvicorn backend.mediahub.main:app (локально, Render/VPS).
# -----------------------------------------------------------------------------

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from .admin_routes import router as admin_router
from .category_routes import router as category_router
from .config import get_settings
from .database import check_db_connection, on_shutdown_dispose, on_startup_init_db
from .errors import register_exception_handlers
from .home_routes import router as home_router
from .telegram_link_routes import router as telegram_link_router
from .user_routes import router as user_router
from .utils import get_logger

settings = get_settings()
logger = get_logger("mediahub.main")


# -----------------------------------------------------------------------------
# Жизненный цикл (startup/shutdown)
# -----------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Запуск:
      1) Инициализируем БД (create_all + health-check). Нет БД — падаем,
         платформа перезапустит инстанс.
    Остановка:
      - Закрываем движок БД.
    """
    logger.info("Starting up %s (env=%s)...", settings.PROJECT_NAME, settings.ENV)
    await on_startup_init_db()
    logger.info("Database initialized")
    yield
    logger.info("Shutting down...")
    await on_shutdown_dispose()
    logger.info("Shutdown complete")


# -----------------------------------------------------------------------------
# Создание FastAPI приложения
# -----------------------------------------------------------------------------
def create_app() -> FastAPI:
    """
    Создаёт и конфигурирует FastAPI приложение.

    - Инициализирует CORS.
    - Подключает роутеры с префиксом из settings.API_V1_STR.
    - Монтирует каталог загрузок.
    - Добавляет корневые и healthcheck эндпоинты.
    """
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version="1.0.0",
        description="MediaHub Backend API (FastAPI + PostgreSQL + Razorpay)",
        lifespan=lifespan,
    )

    # -------------------
    # CORS
    # -------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.effective_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -------------------
    # Ошибки
    # -------------------
    register_exception_handlers(app)

    # -------------------
    # Роуты API
    # -------------------
    for router in (user_router, admin_router, category_router, home_router, telegram_link_router):
        app.include_router(router, prefix=settings.API_V1_STR)

    # -------------------
    # Загруженные файлы
    # -------------------
    # Монтируем только локальный путь; абсолютный URL означает, что файлы отдаёт CDN
    if settings.UPLOAD_PUBLIC_BASE_URL.startswith("/"):
        Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
        app.mount(
            settings.UPLOAD_PUBLIC_BASE_URL.rstrip("/"),
            StaticFiles(directory=settings.UPLOAD_DIR),
            name="uploads",
        )

    # -------------------
    # Инфо и Healthcheck
    # -------------------
    @app.get("/")
    async def root():
        """
        Простой диагностический эндпоинт — базовая информация по приложению.
        """
        return {
            "name": settings.PROJECT_NAME,
            "env": settings.ENV,
            "api_prefix": settings.API_V1_STR,
            "uploads": settings.UPLOAD_PUBLIC_BASE_URL,
            "link_resolver": settings.LINK_RESOLVER_STRATEGY,
        }

    @app.get("/healthz")
    async def healthz():
        """Healthcheck для оркестраторов/балансировщиков: пинг БД."""
        if await check_db_connection():
            return {"status": "ok", "db": "ok"}
        return JSONResponse(status_code=503, content={"status": "degraded", "db": "unreachable"})

    return app


app = create_app()


# -----------------------------------------------------------------------------
# Локальный запуск через uvicorn (для отладки)
# -----------------------------------------------------------------------------
if __name__ == "__main__":
    # Пример: python -m backend.mediahub.main
    uvicorn.run("backend.mediahub.main:app", host="0.0.0.0", port=8000, reload=True)

# 📂 backend/mediahub/home_routes.py — контент главного экрана (синглтон)
# -----------------------------------------------------------------------------
# Что покрывает:
#   • POST /api/home/thumbnail       — обложка (admin, multipart: thumbnail, url?, searchableUrl?)
#   • POST /api/home/premium-banner  — премиум-баннеры (admin, multipart: banners[1..5], urls[]?)
#   • GET  /api/home                 — публичное чтение (нет записи → пустая заготовка)
#   • GET  /api/home/admin           — чтение для админки (нет записи → 404)
#
# Синглтон:
#   • Все операции работают с «первой активной записью»; нет — создаётся.
#   • Баннеры только добавляются к списку, никогда не заменяются.
#   • Read-modify-write без блокировок: два одновременных добавления баннеров
#     могут потерять одно из них (last-write-wins) — известное ограничение.
# -----------------------------------------------------------------------------

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .database import get_session
from .errors import NotFound, ValidationError
from .models import Home
from .schemas import iso
from .security import Identity, require_admin
from .storage import LocalStorage, get_storage
from .utils import envelope, get_logger, utcnow

settings = get_settings()
router = APIRouter(prefix="/home", tags=["home"])
logger = get_logger("mediahub.home")


def placeholder_view() -> Dict[str, Any]:
    """Форма ответа, когда контент ещё не заводили."""
    return {"thumbnail": {"path": "", "url": ""}, "premiumBanners": [], "searchableUrl": ""}


async def get_active_home(db: AsyncSession) -> Optional[Home]:
    q = await db.execute(
        select(Home).where(Home.is_active.is_(True)).order_by(Home.created_at.asc()).limit(1)
    )
    return q.scalar_one_or_none()


async def get_or_create_home(db: AsyncSession) -> Home:
    home = await get_active_home(db)
    if home is None:
        now = utcnow()
        home = Home(premium_banners=[], created_at=now, updated_at=now)
        db.add(home)
    return home


def home_view(home: Home) -> Dict[str, Any]:
    return {
        "thumbnail": {"path": home.thumbnail_path or "", "url": home.thumbnail_url or ""},
        "premiumBanners": list(home.premium_banners or []),
        "searchableUrl": home.searchable_url or "",
    }


# ------------------------------------------------------------
# Запись (админ)
# ------------------------------------------------------------

@router.post("/thumbnail", status_code=status.HTTP_201_CREATED)
async def upload_thumbnail(
    thumbnail: Optional[UploadFile] = File(None),
    url: Optional[str] = Form(None),
    searchableUrl: Optional[str] = Form(None),
    db: AsyncSession = Depends(get_session),
    storage: LocalStorage = Depends(get_storage),
    admin: Identity = Depends(require_admin),
):
    """
    Загружает/заменяет обложку.
    path — публичный URL сохранённого файла, url — необязательная ссылка для клика.
    """
    if thumbnail is None or not thumbnail.filename:
        raise ValidationError("Thumbnail image is required")

    stored = await storage.save_image(thumbnail, "home/thumbnail")

    home = await get_or_create_home(db)
    home.thumbnail_path = stored.url
    home.thumbnail_url = (url or "").strip()
    if searchableUrl is not None:
        home.searchable_url = searchableUrl.strip()
    home.updated_at = utcnow()
    await db.commit()

    logger.info("Home thumbnail updated: %s", stored.key)
    view = home_view(home)
    return envelope(
        {"thumbnail": view["thumbnail"], "searchableUrl": view["searchableUrl"]},
        message="Thumbnail uploaded successfully",
    )


@router.post("/premium-banner", status_code=status.HTTP_201_CREATED)
async def upload_premium_banners(
    banners: Optional[List[UploadFile]] = File(None),
    urls: Optional[List[str]] = Form(None),
    db: AsyncSession = Depends(get_session),
    storage: LocalStorage = Depends(get_storage),
    admin: Identity = Depends(require_admin),
):
    """
    Добавляет 1..N баннеров (N = HOME_BANNERS_PER_UPLOAD). urls[i] — ссылка
    для i-го баннера (если передана).
    """
    files = [f for f in (banners or []) if f is not None and f.filename]
    if not files:
        raise ValidationError("Premium banner images are required")
    limit = settings.HOME_BANNERS_PER_UPLOAD
    if len(files) > limit:
        raise ValidationError(f"You can upload at most {limit} premium banners at once")

    stored = await storage.save_images(files, "home/banners")
    urls = urls or []
    new_items = [
        {"path": s.url, "url": (urls[i].strip() if i < len(urls) and urls[i] else "")}
        for i, s in enumerate(stored)
    ]

    home = await get_or_create_home(db)
    # JSON-колонку переприсваиваем целиком, иначе ORM не увидит изменение
    home.premium_banners = list(home.premium_banners or []) + new_items
    home.updated_at = utcnow()
    await db.commit()

    logger.info("Home premium banners appended: +%d (total %d)", len(new_items), len(home.premium_banners))
    return envelope(
        {
            "premiumBanners": list(home.premium_banners),
            "uploaded": len(new_items),
            "totalCount": len(home.premium_banners),
        },
        message="Premium banners uploaded successfully",
    )


# ------------------------------------------------------------
# Чтение
# ------------------------------------------------------------

@router.get("")
async def get_home(db: AsyncSession = Depends(get_session)):
    home = await get_active_home(db)
    if home is None:
        return envelope(placeholder_view())
    return envelope(home_view(home))


@router.get("/admin")
async def get_home_admin(
    db: AsyncSession = Depends(get_session),
    admin: Identity = Depends(require_admin),
):
    home = await get_active_home(db)
    if home is None:
        raise NotFound("Home content not found")
    data = home_view(home)
    data.update({"id": home.id, "createdAt": iso(home.created_at), "updatedAt": iso(home.updated_at)})
    return envelope(data)

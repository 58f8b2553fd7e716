# 📂 backend/mediahub/telegram_link_routes.py — внешняя (телеграм) ссылка + резолвер
# -----------------------------------------------------------------------------
# Что покрывает:
#   • POST /api/telegram-links/create        — создать или обновить ссылку (любой субъект)
#   • GET  /api/telegram-links/get           — публичное чтение
#   • POST /api/telegram-links/update        — обновить (любой субъект)
#   • POST /api/telegram-links/delete        — удалить (любой субъект)
#   • GET  /api/telegram-links/admin/get     — чтение + автор (admin)
#   • POST /api/telegram-links/admin/update  — обновить, автора не трогаем (admin)
#   • POST /api/telegram-links/admin/delete  — удалить (admin)
#   • POST|GET /api/telegram-links/terbox/url/fetcher — share-ссылка → прямая загрузка
#
# Синглтон:
#   • Строка с slot='default' (UNIQUE) — вторую запись БД не примет.
#   • createdBy выставляется, только если вызывающий — пользователь.
# -----------------------------------------------------------------------------

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .database import get_session
from .errors import NotFound, UpstreamFailure, ValidationError
from .link_resolver import LinkResolutionError, LinkResolver, get_link_resolver
from .models import EXTERNAL_LINK_SLOT, ExternalLink
from .schemas import UrlIn, iso
from .security import Identity, get_current_identity, require_admin
from .utils import envelope, get_logger, utcnow

router = APIRouter(prefix="/telegram-links", tags=["telegram-links"])
logger = get_logger("mediahub.telegram_links")


# ------------------------------------------------------------
# Хелперы
# ------------------------------------------------------------

async def get_link(db: AsyncSession) -> Optional[ExternalLink]:
    q = await db.execute(select(ExternalLink).where(ExternalLink.slot == EXTERNAL_LINK_SLOT))
    return q.scalar_one_or_none()


def link_view(link: ExternalLink) -> Dict[str, Any]:
    return {
        "id": link.id,
        "url": link.url,
        "createdAt": iso(link.created_at),
        "updatedAt": iso(link.updated_at),
    }


def link_admin_view(link: ExternalLink) -> Dict[str, Any]:
    data = link_view(link)
    author = link.created_by
    data["createdBy"] = (
        {"id": author.id, "name": author.name, "email": author.email} if author is not None else None
    )
    return data


def _require_url(url: Optional[str]) -> str:
    if not url or not url.strip():
        raise ValidationError("URL is required")
    return url.strip()


async def _update_existing(db: AsyncSession, url: str, editor: Optional[Identity]) -> ExternalLink:
    link = await get_link(db)
    if link is None:
        raise NotFound("No telegram link found to update")
    link.url = url
    if editor is not None and editor.is_user:
        link.created_by_id = editor.id
    link.updated_at = utcnow()
    await db.commit()
    await db.refresh(link, attribute_names=["created_by"])
    return link


async def _delete_existing(db: AsyncSession) -> None:
    link = await get_link(db)
    if link is None:
        raise NotFound("No telegram link found to delete")
    await db.delete(link)
    await db.commit()


# ------------------------------------------------------------
# Пользовательские ручки
# ------------------------------------------------------------

@router.post("/create")
async def create_or_update_link(
    payload: UrlIn,
    response: Response,
    db: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_current_identity),
):
    """Создаёт ссылку (201) или обновляет единственную существующую (200)."""
    url = _require_url(payload.url)
    author_id = identity.id if identity.is_user else None

    link = await get_link(db)
    if link is not None:
        link.url = url
        if author_id:
            link.created_by_id = author_id
        link.updated_at = utcnow()
        await db.commit()
        response.status_code = status.HTTP_200_OK
        return envelope(link_view(link), message="Telegram link updated successfully")

    now = utcnow()
    link = ExternalLink(slot=EXTERNAL_LINK_SLOT, url=url, created_by_id=author_id, created_at=now, updated_at=now)
    db.add(link)
    await db.commit()
    logger.info("Telegram link created by %s", identity.id)
    response.status_code = status.HTTP_201_CREATED
    return envelope(link_view(link), message="Telegram link created successfully")


@router.get("/get")
async def get_telegram_link(db: AsyncSession = Depends(get_session)):
    link = await get_link(db)
    if link is None:
        raise NotFound("No telegram link found")
    return envelope(link_view(link))


@router.post("/update")
async def update_telegram_link(
    payload: UrlIn,
    db: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_current_identity),
):
    link = await _update_existing(db, _require_url(payload.url), identity)
    return envelope(link_view(link), message="Telegram link updated successfully")


@router.post("/delete")
async def delete_telegram_link(
    db: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_current_identity),
):
    await _delete_existing(db)
    logger.info("Telegram link deleted by %s", identity.id)
    return envelope(message="Telegram link deleted successfully")


# ------------------------------------------------------------
# Админские варианты
# ------------------------------------------------------------

@router.get("/admin/get")
async def admin_get_telegram_link(
    db: AsyncSession = Depends(get_session),
    admin: Identity = Depends(require_admin),
):
    link = await get_link(db)
    if link is None:
        raise NotFound("No telegram link found")
    return envelope(link_admin_view(link))


@router.post("/admin/update")
async def admin_update_telegram_link(
    payload: UrlIn,
    db: AsyncSession = Depends(get_session),
    admin: Identity = Depends(require_admin),
):
    link = await _update_existing(db, _require_url(payload.url), editor=None)
    return envelope(link_admin_view(link), message="Telegram link updated successfully")


@router.post("/admin/delete")
async def admin_delete_telegram_link(
    db: AsyncSession = Depends(get_session),
    admin: Identity = Depends(require_admin),
):
    await _delete_existing(db)
    logger.info("Telegram link deleted by admin %s", admin.id)
    return envelope(message="Telegram link deleted successfully")


# ------------------------------------------------------------
# Резолвер share-ссылок файлообменника
# ------------------------------------------------------------

async def _fetch(url: Optional[str], resolver: LinkResolver):
    if not url or not url.strip():
        raise ValidationError("URL is required")
    try:
        resolved = await resolver.resolve(url.strip())
    except LinkResolutionError as e:
        raise UpstreamFailure("Failed to fetch link details", error=str(e))
    return envelope(resolved.as_dict())


@router.post("/terbox/url/fetcher")
async def fetch_link_details(payload: UrlIn, resolver: LinkResolver = Depends(get_link_resolver)):
    return await _fetch(payload.url, resolver)


@router.get("/terbox/url/fetcher")
async def fetch_link_details_get(
    url: Optional[str] = Query(None, description="Share-ссылка"),
    resolver: LinkResolver = Depends(get_link_resolver),
):
    return await _fetch(url, resolver)

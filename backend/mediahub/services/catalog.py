# 📂 backend/mediahub/services/catalog.py — бизнес-логика каталога категорий
# =============================================================================
# Назначение:
#   Двухуровневое дерево: главная категория → подкатегории.
#     • Главная: только name.
#     • Подкатегория: name, title, image_url, telegram_url, is_premium,
#       parent_category_id → обязательно главная категория.
#
# Политика премиума (одна для всех ручек списка/деталей):
#   • Вызывающий без премиума видит только is_premium=False.
#   • Прямой запрос премиум-подкатегории без премиума → Forbidden.
#
# Каскад:
#   • Удаление главной категории сначала удаляет все её подкатегории,
#     затем саму запись. Без общей транзакции через шаги не откатываем.
# =============================================================================

from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import Forbidden, NotFound, ValidationError
from ..models import Category
from ..utils import utcnow


# =============================================================================
# Проекции для ответов API
# =============================================================================

def main_view(c: Category) -> Dict[str, Any]:
    return {"categoryId": c.id, "name": c.name}


def sub_view(c: Category) -> Dict[str, Any]:
    return {
        "categoryId": c.id,
        "name": c.name,
        "title": c.title,
        "imageUrl": c.image_url,
        "telegramUrl": c.telegram_url,
        "isPremium": bool(c.is_premium),
    }


def detail_view(c: Category, subcategories: List[Category]) -> Dict[str, Any]:
    return {
        "categoryId": c.id,
        "name": c.name,
        "isMainCategory": bool(c.is_main_category),
        "parentCategoryId": c.parent_category_id,
        "title": c.title,
        "imageUrl": c.image_url,
        "telegramUrl": c.telegram_url,
        "isPremium": bool(c.is_premium),
        "subcategories": [sub_view(s) for s in subcategories],
    }


# =============================================================================
# Чтение
# =============================================================================

async def get_category(db: AsyncSession, category_id: str) -> Category:
    """Категория по id или NotFound."""
    row = (await db.execute(select(Category).where(Category.id == category_id))).scalar_one_or_none()
    if row is None:
        raise NotFound("Category not found")
    return row


async def find_main_category(db: AsyncSession, category_id: Optional[str]) -> Optional[Category]:
    if not category_id:
        return None
    q = await db.execute(
        select(Category).where(Category.id == category_id, Category.is_main_category.is_(True))
    )
    return q.scalar_one_or_none()


async def list_main_categories(db: AsyncSession) -> List[Category]:
    q = await db.execute(
        select(Category).where(Category.is_main_category.is_(True)).order_by(Category.name.asc())
    )
    return list(q.scalars().all())


async def list_subcategories(db: AsyncSession, parent_id: str, include_premium: bool) -> List[Category]:
    """
    Подкатегории родителя, по имени. include_premium=False — только бесплатные.
    """
    stmt = select(Category).where(
        Category.parent_category_id == parent_id,
        Category.is_main_category.is_(False),
    )
    if not include_premium:
        stmt = stmt.where(Category.is_premium.is_(False))
    q = await db.execute(stmt.order_by(Category.name.asc()))
    return list(q.scalars().all())


async def category_detail(db: AsyncSession, category_id: str, is_premium_caller: bool) -> Dict[str, Any]:
    """
    Категория + её подкатегории.
    Премиум-подкатегория без премиума → Forbidden.
    """
    category = await get_category(db, category_id)
    if not category.is_main_category and category.is_premium and not is_premium_caller:
        raise Forbidden("Premium content access required")
    subs = await list_subcategories(db, category.id, include_premium=is_premium_caller)
    return detail_view(category, subs)


# =============================================================================
# Запись
# =============================================================================

async def create_main_category(db: AsyncSession, name: Optional[str]) -> Category:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Category name is required")
    category = Category(name=name, is_main_category=True)
    db.add(category)
    await db.commit()
    return category


async def create_subcategory(
    db: AsyncSession,
    parent: Category,
    name: str,
    title: str,
    image_url: str,
    telegram_url: str,
    is_premium: bool,
) -> Category:
    """
    Создаёт подкатегорию. Родитель уже проверен вызывающим кодом
    (find_main_category), картинка уже загружена.
    """
    category = Category(
        name=name.strip(),
        is_main_category=False,
        parent_category_id=parent.id,
        title=title.strip(),
        image_url=image_url,
        telegram_url=telegram_url.strip(),
        is_premium=is_premium,
    )
    db.add(category)
    await db.commit()
    return category


async def update_category(
    db: AsyncSession,
    category: Category,
    name: Optional[str] = None,
    title: Optional[str] = None,
    telegram_url: Optional[str] = None,
    is_premium: Optional[bool] = None,
    image_url: Optional[str] = None,
) -> Category:
    """
    name — для любой категории; title/telegram_url/is_premium/image_url —
    только если цель подкатегория (главной они не нужны).
    """
    if name is not None and name.strip():
        category.name = name.strip()

    if not category.is_main_category:
        if title is not None and title.strip():
            category.title = title.strip()
        if telegram_url is not None and telegram_url.strip():
            category.telegram_url = telegram_url.strip()
        if is_premium is not None:
            category.is_premium = is_premium
        if image_url:
            category.image_url = image_url

    category.updated_at = utcnow()
    await db.commit()
    return category


async def delete_category(db: AsyncSession, category: Category) -> int:
    """
    Удаляет категорию. Для главной — сначала все подкатегории.
    Возвращает число удалённых подкатегорий.
    """
    removed = 0
    if category.is_main_category:
        res = await db.execute(delete(Category).where(Category.parent_category_id == category.id))
        removed = int(res.rowcount or 0)
    await db.delete(category)
    await db.commit()
    return removed

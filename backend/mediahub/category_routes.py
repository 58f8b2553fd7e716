# 📂 backend/mediahub/category_routes.py — каталог категорий
# -----------------------------------------------------------------------------
# Что покрывает:
#   • POST   /api/categories/main                 — главная категория (admin, JSON {name})
#   • POST   /api/categories/sub                  — подкатегория (admin, multipart + image)
#   • GET    /api/categories/main                 — главные категории (любой субъект)
#   • GET    /api/categories/users/main           — то же, публично
#   • GET    /api/categories/sub/{parentId}       — подкатегории (любой субъект)
#   • GET    /api/categories/users/sub/{parentId} — то же, публично (аноним = без премиума)
#   • GET    /api/categories/{id}                 — категория + подкатегории
#   • PUT    /api/categories/{id}                 — обновление (admin, multipart)
#   • DELETE /api/categories/{id}                 — удаление (admin; главная — каскадно)
#   • POST   /api/categories/update[-main|-sub]/{id}, /delete[-main|-sub]/{id}
#            — POST-алиасы для клиентов без PUT/DELETE; -main/-sub требуют
#              совпадения типа цели, иначе 404.
#
# Премиум:
#   • Без премиума видны только подкатегории is_premium=False — во всех списках.
#   • Премиум-подкатегория по id без премиума → 403.
# -----------------------------------------------------------------------------

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Path, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from .database import get_session
from .errors import NotFound, ValidationError
from .models import Category
from .schemas import MainCategoryIn
from .security import Identity, get_current_identity, get_optional_identity, require_admin
from .services import catalog
from .storage import LocalStorage, get_storage
from .utils import envelope, get_logger, parse_bool

router = APIRouter(prefix="/categories", tags=["categories"])
logger = get_logger("mediahub.categories")

IMAGE_FOLDER = "categories"


# ------------------------------------------------------------
# Создание
# ------------------------------------------------------------

@router.post("/main", status_code=status.HTTP_201_CREATED)
async def create_main_category(
    payload: MainCategoryIn,
    db: AsyncSession = Depends(get_session),
    admin: Identity = Depends(require_admin),
):
    category = await catalog.create_main_category(db, payload.name)
    logger.info("Main category created: %s (%s)", category.id, category.name)
    return envelope(
        {"categoryId": category.id, "name": category.name, "isMainCategory": True},
        message="Main category created successfully",
    )


@router.post("/sub", status_code=status.HTTP_201_CREATED)
async def create_subcategory(
    name: Optional[str] = Form(None),
    parentCategoryId: Optional[str] = Form(None),
    title: Optional[str] = Form(None),
    telegramUrl: Optional[str] = Form(None),
    isPremium: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_session),
    storage: LocalStorage = Depends(get_storage),
    admin: Identity = Depends(require_admin),
):
    """
    Порядок проверок: картинка → обязательные поля → родитель.
    Файл сохраняется только после всех проверок, поэтому при 400 ничего не пишется.
    """
    if image is None or not image.filename:
        raise ValidationError("Image is required")
    if not all(v and v.strip() for v in (name, title, telegramUrl)):
        raise ValidationError("Name, title and telegramUrl are required")

    parent = await catalog.find_main_category(db, parentCategoryId)
    if parent is None:
        raise ValidationError("Invalid parent category or not a main category")

    stored = await storage.save_image(image, IMAGE_FOLDER)
    category = await catalog.create_subcategory(
        db,
        parent,
        name=name,
        title=title,
        image_url=stored.url,
        telegram_url=telegramUrl,
        is_premium=parse_bool(isPremium) if isPremium is not None else False,
    )
    logger.info("Subcategory created: %s under %s", category.id, parent.id)
    return envelope(
        {
            "categoryId": category.id,
            "name": category.name,
            "parentCategoryId": category.parent_category_id,
            "title": category.title,
            "imageUrl": category.image_url,
            "telegramUrl": category.telegram_url,
            "isPremium": bool(category.is_premium),
        },
        message="Subcategory created successfully",
    )


# ------------------------------------------------------------
# Чтение
# ------------------------------------------------------------

@router.get("/main")
async def list_main_categories(
    db: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_current_identity),
):
    rows = await catalog.list_main_categories(db)
    return envelope([catalog.main_view(c) for c in rows])


@router.get("/users/main")
async def list_main_categories_public(db: AsyncSession = Depends(get_session)):
    rows = await catalog.list_main_categories(db)
    return envelope([catalog.main_view(c) for c in rows])


@router.get("/sub/{parent_id}")
async def list_subcategories(
    parent_id: str = Path(..., description="ID главной категории"),
    db: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_current_identity),
):
    rows = await catalog.list_subcategories(db, parent_id, include_premium=identity.is_premium)
    return envelope([catalog.sub_view(c) for c in rows])


@router.get("/users/sub/{parent_id}")
async def list_subcategories_public(
    parent_id: str = Path(..., description="ID главной категории"),
    db: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_optional_identity),
):
    rows = await catalog.list_subcategories(db, parent_id, include_premium=identity.is_premium)
    return envelope([catalog.sub_view(c) for c in rows])


@router.get("/{category_id}")
async def get_category(
    category_id: str = Path(..., description="ID категории"),
    db: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_current_identity),
):
    return envelope(await catalog.category_detail(db, category_id, identity.is_premium))


# ------------------------------------------------------------
# Обновление / удаление
# ------------------------------------------------------------

def _check_kind(category: Category, kind: Optional[str]) -> None:
    # Для алиасов -main / -sub цель другого типа считается ненайденной
    if kind == "main" and not category.is_main_category:
        raise NotFound("Category not found")
    if kind == "sub" and category.is_main_category:
        raise NotFound("Category not found")


async def _update(
    db: AsyncSession,
    storage: LocalStorage,
    category_id: str,
    kind: Optional[str],
    name: Optional[str],
    title: Optional[str],
    telegram_url: Optional[str],
    is_premium: Optional[str],
    image: Optional[UploadFile],
):
    category = await catalog.get_category(db, category_id)
    _check_kind(category, kind)

    image_url = None
    if image is not None and image.filename and not category.is_main_category:
        image_url = (await storage.save_image(image, IMAGE_FOLDER)).url

    category = await catalog.update_category(
        db,
        category,
        name=name,
        title=title,
        telegram_url=telegram_url,
        is_premium=parse_bool(is_premium) if is_premium not in (None, "") else None,
        image_url=image_url,
    )
    subs = []
    if category.is_main_category:
        subs = await catalog.list_subcategories(db, category.id, include_premium=True)
    logger.info("Category updated: %s", category.id)
    return envelope(catalog.detail_view(category, subs), message="Category updated successfully")


async def _delete(db: AsyncSession, category_id: str, kind: Optional[str]):
    category = await catalog.get_category(db, category_id)
    _check_kind(category, kind)
    removed = await catalog.delete_category(db, category)
    logger.info("Category deleted: %s (+%d subcategories)", category_id, removed)
    return envelope(message="Category deleted successfully")


@router.put("/{category_id}")
async def update_category(
    category_id: str = Path(..., description="ID категории"),
    name: Optional[str] = Form(None),
    title: Optional[str] = Form(None),
    telegramUrl: Optional[str] = Form(None),
    isPremium: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_session),
    storage: LocalStorage = Depends(get_storage),
    admin: Identity = Depends(require_admin),
):
    return await _update(db, storage, category_id, None, name, title, telegramUrl, isPremium, image)


@router.delete("/{category_id}")
async def delete_category(
    category_id: str = Path(..., description="ID категории"),
    db: AsyncSession = Depends(get_session),
    admin: Identity = Depends(require_admin),
):
    return await _delete(db, category_id, None)


def _register_update_alias(path: str, kind: Optional[str]) -> None:
    @router.post(path)
    async def update_alias(
        category_id: str = Path(..., description="ID категории"),
        name: Optional[str] = Form(None),
        title: Optional[str] = Form(None),
        telegramUrl: Optional[str] = Form(None),
        isPremium: Optional[str] = Form(None),
        image: Optional[UploadFile] = File(None),
        db: AsyncSession = Depends(get_session),
        storage: LocalStorage = Depends(get_storage),
        admin: Identity = Depends(require_admin),
    ):
        return await _update(db, storage, category_id, kind, name, title, telegramUrl, isPremium, image)


def _register_delete_alias(path: str, kind: Optional[str]) -> None:
    @router.post(path)
    async def delete_alias(
        category_id: str = Path(..., description="ID категории"),
        db: AsyncSession = Depends(get_session),
        admin: Identity = Depends(require_admin),
    ):
        return await _delete(db, category_id, kind)


for _kind, _suffix in ((None, ""), ("main", "-main"), ("sub", "-sub")):
    _register_update_alias(f"/update{_suffix}/{{category_id}}", _kind)
    _register_delete_alias(f"/delete{_suffix}/{{category_id}}", _kind)

# 📂 backend/mediahub/storage.py — хранилище загружаемых картинок
# -----------------------------------------------------------------------------
# Что делает:
#   • Проверяет загрузку: расширение .jpg/.jpeg/.png/.gif/.webp (без учёта
#     регистра) и размер не больше settings.UPLOAD_MAX_BYTES.
#   • Сохраняет файл под settings.UPLOAD_DIR с ключом
#       <folder>/<epoch_ms>-<rand>-<filename>
#   • Отдаёт публичный URL: settings.UPLOAD_PUBLIC_BASE_URL/<key>
#     (каталог смонтирован в main.py через StaticFiles).
#
# Важно:
#   • Проверка делается ДО записи на диск: при 400 ничего не сохраняется.
#   • Удаление старых файлов при замене картинки не выполняется.
# -----------------------------------------------------------------------------

from __future__ import annotations

import re
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from fastapi import UploadFile

from .config import get_settings
from .errors import ValidationError
from .utils import get_logger

logger = get_logger("mediahub.storage")

ALLOWED_IMAGE_RE = re.compile(r"\.(jpe?g|png|gif|webp)$", re.IGNORECASE)
_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class StoredFile:
    key: str   # путь внутри хранилища
    url: str   # публичный URL


def safe_filename(filename: str) -> str:
    name = Path(filename or "").name
    name = _UNSAFE_CHARS_RE.sub("_", name).strip("._")
    return name or "file"


def validate_image(filename: Optional[str], size: int, max_bytes: int) -> None:
    if not filename or not ALLOWED_IMAGE_RE.search(filename):
        raise ValidationError("Only image files are allowed!")
    if size > max_bytes:
        raise ValidationError(f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB")


class LocalStorage:
    """Файловое хранилище на локальном диске."""

    def __init__(self, root: str, public_base_url: str, max_bytes: int):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")
        self.max_bytes = max_bytes

    def make_key(self, folder: str, filename: str) -> str:
        stamp = int(time.time() * 1000)
        rand = secrets.randbelow(10**9)
        return f"{folder.strip('/')}/{stamp}-{rand}-{safe_filename(filename)}"

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    async def save_image(self, upload: UploadFile, folder: str) -> StoredFile:
        """
        Читает загрузку, валидирует и кладёт на диск.
        Ошибки формата/размера → ValidationError (400), файл не пишется.
        """
        stored = await self.save_images([upload], folder)
        return stored[0]

    async def save_images(self, uploads: List[UploadFile], folder: str) -> List[StoredFile]:
        """
        Пакетная загрузка: сначала валидируются ВСЕ файлы, затем пишутся.
        Один неподходящий файл → 400, на диск не попадает ни один.
        """
        contents = []
        for upload in uploads:
            # читаем не больше лимита + 1 байт
            content = await upload.read(self.max_bytes + 1)
            validate_image(upload.filename, len(content), self.max_bytes)
            contents.append((upload.filename, content))

        stored: List[StoredFile] = []
        for filename, content in contents:
            key = self.make_key(folder, filename)
            target = self.root / key
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
            logger.info("Stored upload %s (%d bytes)", key, len(content))
            stored.append(StoredFile(key=key, url=self.public_url(key)))
        return stored


def get_storage() -> LocalStorage:
    """FastAPI-зависимость: хранилище по текущим настройкам."""
    s = get_settings()
    return LocalStorage(s.UPLOAD_DIR, s.UPLOAD_PUBLIC_BASE_URL, s.UPLOAD_MAX_BYTES)

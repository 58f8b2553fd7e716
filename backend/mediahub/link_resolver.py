# 📂 backend/mediahub/link_resolver.py — разрешение share-ссылок файлообменника
# -----------------------------------------------------------------------------
# Назначение:
#   Превращает публичную share-ссылку в метаданные прямой загрузки:
#       ResolvedLink(title, thumbnail, download_url)
#
# Стратегии (выбор — settings.LINK_RESOLVER_STRATEGY):
#   • worker    — WorkerApiResolver: один GET к воркеру  <WORKER_URL>?url=<link>.
#                 Разные версии воркера отдают разные ключи — см. *_KEYS ниже.
#   • generate  — GenerateLinkResolver: два вызова
#                   POST <API_BASE>/generate_file {link}
#                   POST <API_BASE>/generate_link {shareid, uk, sign, timestamp, fs_id}
#   • opengraph — OpenGraphResolver: GET страницы и чтение og:* meta-тегов.
#
# Ошибки:
#   • Любая проблема (сеть, HTTP-статус, не-JSON, нет нужных полей) →
#     LinkResolutionError. Роут превращает её в UpstreamFailure (500).
#   • Один таймаут (LINK_RESOLVER_TIMEOUT), без ретраев.
# -----------------------------------------------------------------------------

from __future__ import annotations

import html
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

import httpx

from .config import Settings, get_settings
from .utils import get_logger

logger = get_logger("mediahub.link_resolver")

TITLE_KEYS = ("title", "file_name", "filename", "name")
THUMBNAIL_KEYS = ("thumbnail", "thumb", "thumbs.url3")
DOWNLOAD_KEYS = ("download_url", "direct_link", "downloadLink", "dlink", "link")


class LinkResolutionError(Exception):
    """Не удалось разрешить ссылку через upstream."""


@dataclass
class ResolvedLink:
    title: str
    thumbnail: Optional[str]
    download_url: str

    def as_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "thumbnail": self.thumbnail, "downloadUrl": self.download_url}


def _dig(data: Any, dotted: str) -> Any:
    cur = data
    for part in dotted.split("."):
        if isinstance(cur, list):
            cur = cur[0] if cur else None
        if not isinstance(cur, dict):
            return None
        cur = cur.get(part)
    return cur


def pick(data: Dict[str, Any], keys: Iterable[str]) -> Optional[Any]:
    """Первое непустое значение по списку возможных ключей (поддерживает a.b)."""
    for key in keys:
        value = _dig(data, key)
        if value not in (None, ""):
            return value
    return None


def _unwrap(data: Any) -> Dict[str, Any]:
    # Некоторые API заворачивают ответ: {"data": {...}} / {"list": [{...}]} / [{...}]
    if isinstance(data, list):
        data = data[0] if data else {}
    if isinstance(data, dict):
        for wrapper in ("data", "result"):
            inner = data.get(wrapper)
            if isinstance(inner, (dict, list)):
                return _unwrap(inner)
        lst = data.get("list")
        if isinstance(lst, list) and lst and isinstance(lst[0], dict):
            merged = dict(data)
            merged.update(lst[0])
            return merged
        return data
    raise LinkResolutionError("Unexpected upstream response shape")


class LinkResolver(ABC):
    """Базовый резолвер: общий HTTP-клиент и маппинг ответа."""

    def __init__(self, timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport, follow_redirects=True)

    async def resolve(self, url: str) -> ResolvedLink:
        try:
            return await self._resolve(url)
        except httpx.HTTPError as e:
            logger.warning("Link resolution failed for %s: %s", url, e)
            raise LinkResolutionError(str(e)) from e
        except ValueError as e:
            # r.json() на не-JSON теле
            logger.warning("Link resolution returned malformed body for %s: %s", url, e)
            raise LinkResolutionError(f"Malformed upstream response: {e}") from e

    @abstractmethod
    async def _resolve(self, url: str) -> ResolvedLink:
        """Один проход к апстриму; реализуется каждой стратегией."""

    @staticmethod
    def _build(data: Dict[str, Any]) -> ResolvedLink:
        title = pick(data, TITLE_KEYS)
        download_url = pick(data, DOWNLOAD_KEYS)
        if not title or not download_url:
            raise LinkResolutionError("Upstream response is missing title or download link")
        thumbnail = pick(data, THUMBNAIL_KEYS)
        return ResolvedLink(title=str(title), thumbnail=str(thumbnail) if thumbnail else None, download_url=str(download_url))


class WorkerApiResolver(LinkResolver):
    """GET <worker>?url=<link> → JSON с метаданными файла."""

    def __init__(self, worker_url: str, **kwargs):
        super().__init__(**kwargs)
        self.worker_url = worker_url

    async def _resolve(self, url: str) -> ResolvedLink:
        async with self._client() as client:
            r = await client.get(self.worker_url, params={"url": url})
            r.raise_for_status()
            data = r.json()
        return self._build(_unwrap(data))


class GenerateLinkResolver(LinkResolver):
    """
    Двухшаговый API:
      1) generate_file — по share-ссылке получаем shareid/uk/sign/timestamp и fs_id файла;
      2) generate_link — по этим параметрам получаем прямую ссылку.
    """

    def __init__(self, api_base: str, **kwargs):
        super().__init__(**kwargs)
        self.api_base = api_base.rstrip("/")

    async def _resolve(self, url: str) -> ResolvedLink:
        async with self._client() as client:
            r = await client.post(f"{self.api_base}/generate_file", json={"link": url})
            r.raise_for_status()
            info = r.json()
            if not isinstance(info, dict):
                raise LinkResolutionError("Unexpected generate_file response")

            files = info.get("list")
            if not isinstance(files, list):
                files = []
            first = files[0] if files and isinstance(files[0], dict) else {}
            fs_id = first.get("fs_id") or info.get("fs_id")
            params = {
                "shareid": info.get("shareid"),
                "uk": info.get("uk"),
                "sign": info.get("sign"),
                "timestamp": info.get("timestamp"),
                "fs_id": fs_id,
            }
            missing = [k for k, v in params.items() if v in (None, "")]
            if missing:
                raise LinkResolutionError(f"generate_file response is missing: {', '.join(missing)}")

            r = await client.post(f"{self.api_base}/generate_link", json=params)
            r.raise_for_status()
            link_data = r.json()

        merged: Dict[str, Any] = {}
        merged.update(first)
        if isinstance(link_data, dict):
            merged.update(link_data)
            # {"download_link": {"url_1": ...}} — одна из известных форм
            dl = link_data.get("download_link")
            if isinstance(dl, dict):
                merged.setdefault("download_url", dl.get("url_1") or dl.get("url_2"))
            elif isinstance(dl, str):
                merged.setdefault("download_url", dl)
        return self._build(merged)


_META_RE = re.compile(r"<meta\s+[^>]*>", re.IGNORECASE)
_ATTR_RE = re.compile(r'(property|name|content)\s*=\s*(["\'])(.*?)\2', re.IGNORECASE | re.DOTALL)


def parse_og_tags(page: str) -> Dict[str, str]:
    """Собирает og:* meta-теги страницы (первое вхождение побеждает, сущности раскодированы)."""
    tags: Dict[str, str] = {}
    for m in _META_RE.finditer(page):
        attrs = {k.lower(): html.unescape(v) for k, _q, v in _ATTR_RE.findall(m.group(0))}
        key = attrs.get("property") or attrs.get("name")
        if key and key.lower().startswith("og:") and "content" in attrs:
            tags.setdefault(key.lower(), attrs["content"])
    return tags


class OpenGraphResolver(LinkResolver):
    """Скрапинг share-страницы: og:title, og:image, og:video / og:url."""

    async def _resolve(self, url: str) -> ResolvedLink:
        async with self._client() as client:
            r = await client.get(url, headers={"User-Agent": "Mozilla/5.0"})
            r.raise_for_status()
            page = r.text
        og = parse_og_tags(page)
        data = {
            "title": og.get("og:title"),
            "thumbnail": og.get("og:image"),
            "download_url": og.get("og:video") or og.get("og:video:url") or og.get("og:url"),
        }
        return self._build(data)


def build_link_resolver(settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> LinkResolver:
    timeout = settings.LINK_RESOLVER_TIMEOUT
    strategy = settings.LINK_RESOLVER_STRATEGY
    if strategy == "generate":
        return GenerateLinkResolver(settings.LINK_RESOLVER_API_BASE, timeout=timeout, transport=transport)
    if strategy == "opengraph":
        return OpenGraphResolver(timeout=timeout, transport=transport)
    return WorkerApiResolver(settings.LINK_RESOLVER_WORKER_URL, timeout=timeout, transport=transport)


def get_link_resolver() -> LinkResolver:
    """FastAPI-зависимость; в тестах подменяется через app.dependency_overrides."""
    return build_link_resolver(get_settings())

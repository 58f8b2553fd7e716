import json

import httpx
import pytest

from backend.mediahub.config import Settings
from backend.mediahub.link_resolver import (
    GenerateLinkResolver,
    LinkResolutionError,
    LinkResolver,
    OpenGraphResolver,
    WorkerApiResolver,
    build_link_resolver,
    parse_og_tags,
    pick,
)

SHARE = "https://share.example/s/1abc"


@pytest.mark.asyncio
async def test_worker_resolver_maps_alternative_keys():
    seen = {}

    def handler(request: httpx.Request):
        seen["url"] = request.url.params.get("url")
        return httpx.Response(
            200,
            json={"file_name": "clip.mp4", "thumbs": {"url3": "https://cdn/thumb.jpg"}, "direct_link": "https://dl/clip"},
        )

    resolver = WorkerApiResolver("https://worker.example/api", transport=httpx.MockTransport(handler))
    result = await resolver.resolve(SHARE)

    assert seen["url"] == SHARE
    assert result.as_dict() == {
        "title": "clip.mp4",
        "thumbnail": "https://cdn/thumb.jpg",
        "downloadUrl": "https://dl/clip",
    }


@pytest.mark.asyncio
async def test_worker_resolver_unwraps_data_envelope():
    def handler(request):
        return httpx.Response(200, json={"ok": True, "data": {"title": "a.mkv", "dlink": "https://dl/a"}})

    resolver = WorkerApiResolver("https://worker.example/api", transport=httpx.MockTransport(handler))
    result = await resolver.resolve(SHARE)
    assert result.title == "a.mkv"
    assert result.thumbnail is None
    assert result.download_url == "https://dl/a"


@pytest.mark.asyncio
async def test_worker_resolver_errors():
    resolver = WorkerApiResolver(
        "https://worker.example/api",
        transport=httpx.MockTransport(lambda request: httpx.Response(502, text="bad gateway")),
    )
    with pytest.raises(LinkResolutionError):
        await resolver.resolve(SHARE)

    resolver = WorkerApiResolver(
        "https://worker.example/api",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"title": "no link"})),
    )
    with pytest.raises(LinkResolutionError):
        await resolver.resolve(SHARE)

    resolver = WorkerApiResolver(
        "https://worker.example/api",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>oops</html>")),
    )
    with pytest.raises(LinkResolutionError):
        await resolver.resolve(SHARE)


@pytest.mark.asyncio
async def test_generate_link_two_step_flow():
    calls = []

    def handler(request: httpx.Request):
        body = json.loads(request.content)
        calls.append((request.url.path, body))
        if request.url.path.endswith("/generate_file"):
            return httpx.Response(
                200,
                json={
                    "shareid": 11,
                    "uk": 22,
                    "sign": "s",
                    "timestamp": 33,
                    "list": [{"fs_id": "44", "filename": "movie.mp4", "thumbs": {"url3": "https://cdn/m.jpg"}}],
                },
            )
        return httpx.Response(200, json={"download_link": {"url_1": "https://dl/movie"}})

    resolver = GenerateLinkResolver("https://api.example", transport=httpx.MockTransport(handler))
    result = await resolver.resolve(SHARE)

    assert calls[0] == ("/generate_file", {"link": SHARE})
    assert calls[1] == ("/generate_link", {"shareid": 11, "uk": 22, "sign": "s", "timestamp": 33, "fs_id": "44"})
    assert result.title == "movie.mp4"
    assert result.thumbnail == "https://cdn/m.jpg"
    assert result.download_url == "https://dl/movie"


@pytest.mark.asyncio
async def test_generate_link_missing_params():
    resolver = GenerateLinkResolver(
        "https://api.example",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"shareid": 1})),
    )
    with pytest.raises(LinkResolutionError):
        await resolver.resolve(SHARE)


@pytest.mark.asyncio
async def test_opengraph_resolver():
    html = """
    <html><head>
      <meta property="og:title" content="Trailer">
      <meta content="https://cdn/og.jpg" property="og:image" />
      <meta property="og:url" content="https://share.example/s/1abc">
      <meta property="og:video" content="https://dl/trailer.mp4">
    </head></html>
    """
    resolver = OpenGraphResolver(transport=httpx.MockTransport(lambda request: httpx.Response(200, text=html)))
    result = await resolver.resolve(SHARE)
    assert result.as_dict() == {"title": "Trailer", "thumbnail": "https://cdn/og.jpg", "downloadUrl": "https://dl/trailer.mp4"}


def test_parse_og_tags_ignores_other_meta():
    tags = parse_og_tags('<meta name="description" content="x"><meta property="OG:Title" content="T">')
    assert tags == {"og:title": "T"}


def test_pick_prefers_first_present_key():
    assert pick({"name": "b", "title": "a"}, ("title", "name")) == "a"
    assert pick({"title": "", "name": "b"}, ("title", "name")) == "b"
    assert pick({}, ("title",)) is None


def test_build_link_resolver_by_strategy():
    assert isinstance(build_link_resolver(Settings(LINK_RESOLVER_STRATEGY="worker")), WorkerApiResolver)
    assert isinstance(build_link_resolver(Settings(LINK_RESOLVER_STRATEGY="generate")), GenerateLinkResolver)
    assert isinstance(build_link_resolver(Settings(LINK_RESOLVER_STRATEGY="opengraph")), OpenGraphResolver)


def test_parse_og_tags_keeps_inner_quotes_and_decodes_entities():
    page = (
        '<meta property="og:title" content="Bob\'s Movie">'
        "<meta property='og:description' content='Say \"hi\"'>"
        '<meta property="og:image" content="https://cdn/img?w=1&amp;h=2">'
    )
    tags = parse_og_tags(page)
    assert tags["og:title"] == "Bob's Movie"
    assert tags["og:description"] == 'Say "hi"'
    assert tags["og:image"] == "https://cdn/img?w=1&h=2"


@pytest.mark.asyncio
async def test_generate_link_rejects_non_list_file_listing():
    resolver = GenerateLinkResolver(
        "https://api.example",
        transport=httpx.MockTransport(
            lambda request: httpx.Response(
                200, json={"shareid": 1, "uk": 2, "sign": "s", "timestamp": 3, "list": {"fs_id": "4"}}
            )
        ),
    )
    with pytest.raises(LinkResolutionError):
        await resolver.resolve(SHARE)


def test_resolver_without_strategy_cannot_be_built():
    class Incomplete(LinkResolver):
        pass

    with pytest.raises(TypeError):
        Incomplete()

"""Unit tests for the WordPress REST client."""

from __future__ import annotations

import json

import httpx
import pytest

from app.core.exceptions import (
    ConfigurationError,
    ExternalAPIError,
    RateLimitExceededError,
    StoreAuthenticationError,
)
from app.integrations.wordpress import WordPressClient
from app.services.optimizer.collaborators import PreservationFlags

SITE = "https://blog.example.com"
API = f"{SITE}/wp-json/wp/v2"


def _client(handler) -> WordPressClient:
    return WordPressClient(
        base_url=SITE,
        username="admin",
        password="app-password",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


def test_missing_credentials_are_rejected() -> None:
    with pytest.raises(ConfigurationError):
        WordPressClient(base_url=SITE, username="admin", password="", transport=httpx.MockTransport(lambda r: None))


@pytest.mark.asyncio
async def test_resolve_entity_prefers_exact_link_match() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        assert request.headers["Authorization"].startswith("Basic ")
        return httpx.Response(200, json=[
            {"id": 7, "link": f"{SITE}/2019/best-shoes/", "slug": "best-shoes"},
            {"id": 9, "link": f"{SITE}/best-shoes/", "slug": "best-shoes"},
        ])

    async with _client(handler) as client:
        entity_id = await client.resolve_entity(f"{SITE}/best-shoes/")

    assert entity_id == 9
    assert requests[0].url.path == "/wp-json/wp/v2/posts"
    assert requests[0].url.params["slug"] == "best-shoes"
    assert requests[0].url.params["status"] == "any"


@pytest.mark.asyncio
async def test_resolve_entity_falls_back_to_pages_then_none() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, json=[])

    async with _client(handler) as client:
        assert await client.resolve_entity(f"{SITE}/missing/") is None

    assert seen == ["/wp-json/wp/v2/posts", "/wp-json/wp/v2/pages"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status_code", "error_type"),
    [(401, StoreAuthenticationError), (403, StoreAuthenticationError), (429, RateLimitExceededError), (500, ExternalAPIError)],
)
async def test_http_errors_map_to_taxonomy(status_code: int, error_type: type[Exception]) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json={"message": "nope"})

    async with _client(handler) as client:
        with pytest.raises(error_type):
            await client.resolve_entity(f"{SITE}/any-post/")


@pytest.mark.asyncio
async def test_network_error_is_external_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(ExternalAPIError, match="connection refused"):
            await client.resolve_entity(f"{SITE}/any-post/")


@pytest.mark.asyncio
async def test_fetch_entity_with_assets_strips_title_markup() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/wp-json/wp/v2/posts":
            return httpx.Response(200, json=[{"id": 12, "link": f"{SITE}/post/", "slug": "post"}])
        assert request.url.path == "/wp-json/wp/v2/posts/12"
        assert request.url.params["context"] == "edit"
        return httpx.Response(200, json={
            "id": 12,
            "title": {"raw": "Best <em>Shoes</em> &amp; Socks"},
            "content": {"raw": "<p>Body</p>", "rendered": "<p>Rendered</p>"},
            "categories": [3, 4],
            "tags": [9],
            "featured_media": 55,
            "link": f"{SITE}/post/",
            "slug": "post",
        })

    async with _client(handler) as client:
        entity_id = await client.resolve_entity(f"{SITE}/post/")
        entity = await client.fetch_entity_with_assets(entity_id)

    assert entity.title == "Best Shoes & Socks"
    assert entity.body == "<p>Body</p>"
    assert entity.categories == (3, 4)
    assert entity.tags == (9,)
    assert entity.featured_media_id == 55


@pytest.mark.asyncio
async def test_update_entity_respects_preservation_flags() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json={"id": 12})
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"id": 12, "link": f"{SITE}/post/"})

    payload = {
        "title": "New",
        "content": "<p>x</p>",
        "slug": "new-slug",
        "categories": [3],
        "tags": [9],
        "featured_media": 55,
    }
    flags = PreservationFlags(preserve_slug=True, preserve_tags=False)

    async with _client(handler) as client:
        published = await client.update_entity(12, payload, flags)

    assert published.id == 12
    assert published.link == f"{SITE}/post/"
    assert "slug" not in bodies[0]
    assert "tags" not in bodies[0]
    assert bodies[0]["categories"] == [3]
    assert bodies[0]["featured_media"] == 55


@pytest.mark.asyncio
async def test_create_and_metadata_write_seo_fields() -> None:
    calls: list[tuple[str, dict]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((request.url.path, json.loads(request.content)))
        return httpx.Response(201, json={"id": 88, "link": f"{SITE}/fresh/"})

    async with _client(handler) as client:
        published = await client.create_entity({"title": "Fresh", "slug": "fresh", "status": "draft"})
        await client.update_entity_metadata(
            published.id,
            title="Fresh",
            description="A fresh post",
            focus_keyword="fresh post",
        )

    assert published.id == 88
    assert calls[0][0] == "/wp-json/wp/v2/posts"
    path, body = calls[1]
    assert path == "/wp-json/wp/v2/posts/88"
    assert body["meta"]["rank_math_focus_keyword"] == "fresh post"
    assert body["meta"]["_yoast_wpseo_metadesc"] == "A fresh post"

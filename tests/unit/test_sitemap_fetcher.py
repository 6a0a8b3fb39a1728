"""Unit tests for sitemap crawling."""

from __future__ import annotations

import httpx
import pytest
from lxml import etree

from app.integrations.sitemap_fetcher import SitemapFetcher, is_content_url

URLSET = b"""<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url><loc>https://blog.example.com/best-running-shoes/</loc><lastmod>2024-05-01</lastmod></url>
  <url><loc>https://blog.example.com/best-running-shoes/</loc></url>
  <url><loc>https://blog.example.com/wp-content/uploads/shoe.jpg</loc></url>
  <url><loc>https://blog.example.com/?p=12</loc></url>
  <url><loc>https://blog.example.com/marathon-training-plan/</loc></url>
</urlset>
"""

INDEX = b"""<?xml version="1.0" encoding="UTF-8"?>
<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <sitemap><loc>https://blog.example.com/post-sitemap.xml</loc></sitemap>
  <sitemap><loc>https://blog.example.com/broken-sitemap.xml</loc></sitemap>
</sitemapindex>
"""


def test_is_content_url_excludes_assets_and_admin_paths() -> None:
    assert is_content_url("https://blog.example.com/a-post/")
    for url in (
        "https://blog.example.com/?p=1",
        "https://blog.example.com/page-sitemap.xml",
        "https://blog.example.com/wp-admin/edit.php",
        "https://blog.example.com/wp-json/wp/v2/posts",
        "https://blog.example.com/feed/",
        "https://blog.example.com/guide.PDF",
        "https://blog.example.com/image.png",
    ):
        assert not is_content_url(url)


@pytest.mark.asyncio
async def test_fetch_entries_filters_and_dedupes() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=URLSET)

    async with SitemapFetcher(transport=httpx.MockTransport(handler)) as fetcher:
        entries = await fetcher.fetch_entries("https://blog.example.com/sitemap.xml")

    assert [entry.url for entry in entries] == [
        "https://blog.example.com/best-running-shoes/",
        "https://blog.example.com/marathon-training-plan/",
    ]
    assert entries[0].lastmod == "2024-05-01"


@pytest.mark.asyncio
async def test_sitemap_index_is_followed_and_broken_children_skipped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/sitemap_index.xml":
            return httpx.Response(200, content=INDEX)
        if request.url.path == "/post-sitemap.xml":
            return httpx.Response(200, content=URLSET)
        return httpx.Response(404)

    async with SitemapFetcher(transport=httpx.MockTransport(handler)) as fetcher:
        entries = await fetcher.fetch_entries("blog.example.com")

    assert len(entries) == 2


@pytest.mark.asyncio
async def test_max_urls_caps_results() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=URLSET)

    async with SitemapFetcher(max_urls=1, transport=httpx.MockTransport(handler)) as fetcher:
        entries = await fetcher.fetch_entries("https://blog.example.com/sitemap.xml")

    assert len(entries) == 1


@pytest.mark.asyncio
async def test_invalid_xml_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>not a sitemap")

    async with SitemapFetcher(transport=httpx.MockTransport(handler)) as fetcher:
        with pytest.raises(etree.XMLSyntaxError):
            await fetcher.fetch_entries("https://blog.example.com/sitemap.xml")

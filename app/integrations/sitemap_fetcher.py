"""Sitemap crawl feeding the item catalogue."""

import asyncio
import logging
from dataclasses import dataclass
from urllib.parse import urlparse

import httpx
from lxml import etree

logger = logging.getLogger(__name__)

SITEMAP_NAMESPACE = {"ns": "http://www.sitemaps.org/schemas/sitemap/0.9"}

# URL fragments that never denote an optimizable content page
EXCLUDED_URL_FRAGMENTS = (
    "?",
    ".xml",
    "/wp-admin",
    "/wp-content",
    "/wp-json",
    "/feed/",
    ".pdf",
    ".jpg",
    ".png",
)


@dataclass
class SitemapEntry:
    """A single <url> entry of a sitemap."""

    url: str
    lastmod: str | None = None


def is_content_url(url: str) -> bool:
    """Whether a sitemap URL looks like a content page."""
    lowered = url.lower()
    return not any(fragment in lowered for fragment in EXCLUDED_URL_FRAGMENTS)


class SitemapFetcher:
    """Fetch a sitemap (or sitemap index) and list content page URLs."""

    def __init__(
        self,
        timeout: float = 30.0,
        max_urls: int = 1000,
        max_sitemaps: int = 10,
        user_agent: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self.max_urls = max_urls
        self.max_sitemaps = max_sitemaps
        self.user_agent = user_agent or "Mozilla/5.0 (compatible; WPOptimizer/27.0)"
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "SitemapFetcher":
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers={
                "User-Agent": self.user_agent,
                "Accept": "application/xml, text/xml, */*",
            },
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args) -> None:
        if self._client:
            await self._client.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("SitemapFetcher must be used as async context manager")
        return self._client

    async def fetch_entries(self, source: str) -> list[SitemapEntry]:
        """Return unique content URLs from a sitemap URL or a bare site.

        A bare site (no ``.xml`` path) is probed at ``/sitemap.xml`` and
        ``/sitemap_index.xml``.

        Raises:
            httpx.HTTPError: If no candidate sitemap could be fetched.
            etree.XMLSyntaxError: If the sitemap is not valid XML.
        """
        source = source.strip()
        if not source.startswith(("http://", "https://")):
            source = f"https://{source}"

        if urlparse(source).path.lower().endswith(".xml"):
            candidates = [source]
        else:
            base = source.rstrip("/")
            candidates = [f"{base}/sitemap.xml", f"{base}/sitemap_index.xml"]

        last_error: Exception | None = None
        for sitemap_url in candidates:
            try:
                entries = await self._fetch_and_parse(sitemap_url)
            except (httpx.HTTPError, etree.XMLSyntaxError) as e:
                last_error = e
                logger.debug(
                    "Sitemap candidate failed",
                    extra={"url": sitemap_url, "error": str(e)},
                )
                continue
            unique = self._filter_entries(entries)
            logger.info(
                "Sitemap crawled",
                extra={"url": sitemap_url, "found": len(entries), "kept": len(unique)},
            )
            return unique

        if last_error is not None:
            raise last_error
        return []

    def _filter_entries(self, entries: list[SitemapEntry]) -> list[SitemapEntry]:
        seen: set[str] = set()
        kept: list[SitemapEntry] = []
        for entry in entries:
            if entry.url in seen or not is_content_url(entry.url):
                continue
            seen.add(entry.url)
            kept.append(entry)
            if len(kept) >= self.max_urls:
                break
        return kept

    async def _fetch_and_parse(self, sitemap_url: str) -> list[SitemapEntry]:
        response = await self.client.get(sitemap_url)
        response.raise_for_status()

        root = etree.fromstring(response.content)
        child_locs = root.xpath("//ns:sitemap/ns:loc", namespaces=SITEMAP_NAMESPACE)
        if child_locs:
            return await self._parse_index(child_locs)
        return self._parse_urlset(root)

    async def _parse_index(self, child_locs: list) -> list[SitemapEntry]:
        child_urls = [loc.text.strip() for loc in child_locs if loc.text][:self.max_sitemaps]
        logger.info(
            "Found sitemap index",
            extra={"total_sitemaps": len(child_locs), "fetching": len(child_urls)},
        )

        results = await asyncio.gather(
            *(self._fetch_and_parse(url) for url in child_urls),
            return_exceptions=True,
        )

        entries: list[SitemapEntry] = []
        for child_url, result in zip(child_urls, results):
            if isinstance(result, list):
                entries.extend(result)
            else:
                logger.warning(
                    "Failed to fetch child sitemap",
                    extra={"url": child_url, "error": str(result)},
                )
        return entries

    def _parse_urlset(self, root: etree._Element) -> list[SitemapEntry]:
        entries: list[SitemapEntry] = []
        for url_elem in root.xpath("//ns:url", namespaces=SITEMAP_NAMESPACE):
            loc_elem = url_elem.find("ns:loc", namespaces=SITEMAP_NAMESPACE)
            if loc_elem is None or not loc_elem.text:
                continue
            lastmod_elem = url_elem.find("ns:lastmod", namespaces=SITEMAP_NAMESPACE)
            lastmod = None
            if lastmod_elem is not None and lastmod_elem.text:
                lastmod = lastmod_elem.text.strip()
            entries.append(SitemapEntry(url=loc_elem.text.strip(), lastmod=lastmod))
        return entries

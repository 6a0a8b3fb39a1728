"""WordPress REST API integration used as the remote content store."""

import base64
import logging
from typing import Any
from urllib.parse import unquote, urlparse

import httpx
from bs4 import BeautifulSoup

from app.config import settings
from app.core.exceptions import (
    ConfigurationError,
    EntityNotFoundError,
    ExternalAPIError,
    RateLimitExceededError,
    StoreAuthenticationError,
)
from app.services.optimizer.collaborators import (
    PreservationFlags,
    PublishedEntity,
    RemoteEntity,
)

logger = logging.getLogger(__name__)

API_NAME = "WordPress"
ENTITY_TYPES = ("posts", "pages")


def _rendered(field: Any) -> str:
    """Prefer the raw value of a WP content field, fall back to rendered."""
    if isinstance(field, dict):
        return str(field.get("raw") or field.get("rendered") or "")
    return str(field or "")


def _normalize_link(url: str | None) -> str:
    return (url or "").strip().rstrip("/").lower()


class WordPressClient:
    """Client for the WordPress REST API (``/wp-json/wp/v2``).

    Provides methods for:
    - Resolving a public URL to a post/page id
    - Fetching a post with its taxonomy and featured media
    - Creating and updating posts
    - Writing RankMath / Yoast SEO meta fields
    """

    def __init__(
        self,
        base_url: str | None = None,
        username: str | None = None,
        password: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.wordpress_url or "").rstrip("/")
        self.username = username or settings.wordpress_username
        self.password = password or settings.wordpress_password
        self.timeout = timeout if timeout is not None else settings.wordpress_timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        # Entity id -> REST collection it was found in
        self._entity_types: dict[int, str] = {}

        if not self.base_url:
            raise ConfigurationError("WordPress URL not configured")
        if not self.username or not self.password:
            raise ConfigurationError("WordPress credentials not configured")

    @property
    def api_url(self) -> str:
        return f"{self.base_url}/wp-json/wp/v2"

    @property
    def _auth_header(self) -> str:
        """Generate Basic Auth header (application password)."""
        credentials = f"{self.username}:{self.password}"
        encoded = base64.b64encode(credentials.encode()).decode()
        return f"Basic {encoded}"

    async def __aenter__(self) -> "WordPressClient":
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers={
                "Authorization": self._auth_header,
                "Content-Type": "application/json",
            },
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Client must be used as async context manager")
        return self._client

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        """Send one REST call and map HTTP failures onto the error taxonomy."""
        url = f"{self.api_url}/{endpoint}"
        logger.debug("WordPress API request", extra={"method": method, "endpoint": endpoint})

        try:
            response = await self.client.request(method, url, params=params, json=json)
        except httpx.HTTPError as e:
            logger.warning("WordPress HTTP error", extra={"endpoint": endpoint, "error": str(e)})
            raise ExternalAPIError(API_NAME, str(e)) from e

        status = response.status_code
        if status in (401, 403):
            logger.warning("WordPress authentication failed", extra={"endpoint": endpoint, "status": status})
            raise StoreAuthenticationError(API_NAME, status)
        if status == 404:
            raise EntityNotFoundError(API_NAME, endpoint)
        if status == 429:
            logger.warning("WordPress rate limit hit", extra={"endpoint": endpoint})
            raise RateLimitExceededError(API_NAME)
        if status >= 400:
            try:
                message = response.json().get("message") or response.text
            except ValueError:
                message = response.text
            raise ExternalAPIError(API_NAME, f"HTTP {status}: {message[:200]}", status_code=status)

        try:
            return response.json()
        except ValueError as e:
            raise ExternalAPIError(API_NAME, "Invalid JSON response", status_code=status) from e

    async def resolve_entity(self, target_url: str) -> int | None:
        """Find the post or page id behind a public URL.

        Looks the last path segment up as a slug in posts, then pages. An
        entry whose ``link`` equals the URL wins over other slug matches.

        Returns:
            The entity id, or ``None`` when nothing matches.
        """
        segments = [part for part in urlparse(target_url).path.split("/") if part]
        if not segments:
            return None
        slug = unquote(segments[-1])
        wanted = _normalize_link(target_url)

        for entity_type in ENTITY_TYPES:
            results = await self._request(
                "GET",
                entity_type,
                params={"slug": slug, "status": "any", "_fields": "id,link,slug"},
            )
            if not isinstance(results, list) or not results:
                continue
            match = next(
                (item for item in results if _normalize_link(item.get("link")) == wanted),
                results[0],
            )
            entity_id = int(match["id"])
            self._entity_types[entity_id] = entity_type
            logger.info(
                "WordPress entity resolved",
                extra={"target_id": target_url, "entity_id": entity_id, "type": entity_type},
            )
            return entity_id

        logger.info("WordPress entity not found", extra={"target_id": target_url, "slug": slug})
        return None

    async def _collection_for(self, entity_id: int) -> str:
        known = self._entity_types.get(entity_id)
        if known:
            return known
        for entity_type in ENTITY_TYPES:
            try:
                await self._request("GET", f"{entity_type}/{entity_id}", params={"_fields": "id"})
            except EntityNotFoundError:
                continue
            self._entity_types[entity_id] = entity_type
            return entity_type
        raise EntityNotFoundError(API_NAME, f"entity {entity_id}")

    async def fetch_entity_with_assets(self, entity_id: int) -> RemoteEntity:
        """Fetch an entity with the metadata an update must preserve."""
        entity_type = await self._collection_for(entity_id)
        data = await self._request("GET", f"{entity_type}/{entity_id}", params={"context": "edit"})

        title_html = _rendered(data.get("title"))
        featured = data.get("featured_media") or None
        return RemoteEntity(
            id=int(data["id"]),
            title=BeautifulSoup(title_html, "html.parser").get_text(" ", strip=True),
            body=_rendered(data.get("content")),
            categories=tuple(int(value) for value in data.get("categories") or ()),
            tags=tuple(int(value) for value in data.get("tags") or ()),
            featured_media_id=int(featured) if featured else None,
            link=data.get("link"),
            slug=data.get("slug"),
        )

    async def create_entity(self, payload: dict[str, Any]) -> PublishedEntity:
        data = await self._request("POST", "posts", json=payload)
        entity_id = int(data["id"])
        self._entity_types[entity_id] = "posts"
        logger.info("WordPress post created", extra={"entity_id": entity_id, "status": payload.get("status")})
        return PublishedEntity(id=entity_id, link=data.get("link") or "")

    async def update_entity(
        self,
        entity_id: int,
        payload: dict[str, Any],
        flags: PreservationFlags,
    ) -> PublishedEntity:
        """Update an entity, leaving preserved fields as they are remotely."""
        body = dict(payload)
        if flags.preserve_slug:
            body.pop("slug", None)
        if not flags.preserve_categories:
            body.pop("categories", None)
        if not flags.preserve_tags:
            body.pop("tags", None)
        if not flags.preserve_featured_image:
            body.pop("featured_media", None)

        entity_type = await self._collection_for(entity_id)
        data = await self._request("POST", f"{entity_type}/{entity_id}", json=body)
        logger.info("WordPress entity updated", extra={"entity_id": entity_id, "fields": sorted(body)})
        return PublishedEntity(id=int(data.get("id", entity_id)), link=data.get("link") or "")

    async def update_entity_metadata(
        self,
        entity_id: int,
        *,
        title: str,
        description: str,
        focus_keyword: str,
    ) -> None:
        """Write SEO title/description/keyword for RankMath and Yoast."""
        meta = {
            "rank_math_title": title,
            "rank_math_description": description,
            "rank_math_focus_keyword": focus_keyword,
            "_yoast_wpseo_title": title,
            "_yoast_wpseo_metadesc": description,
            "_yoast_wpseo_focuskw": focus_keyword,
        }
        entity_type = await self._collection_for(entity_id)
        await self._request("POST", f"{entity_type}/{entity_id}", json={"meta": meta})
        logger.info("WordPress SEO meta updated", extra={"entity_id": entity_id})

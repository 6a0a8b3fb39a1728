"""Contracts for the external services the orchestrator drives."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Any, Protocol

StageProgressCallback = Callable[[str, Mapping[str, int]], None]


@dataclass(frozen=True, slots=True)
class RemoteEntity:
    """Existing post fetched from the content store."""

    id: int
    title: str
    body: str
    categories: tuple[int, ...] = ()
    tags: tuple[int, ...] = ()
    featured_media_id: int | None = None
    link: str | None = None
    slug: str | None = None


@dataclass(frozen=True, slots=True)
class PublishedEntity:
    """Result of a create/update call."""

    id: int
    link: str


@dataclass(frozen=True, slots=True)
class PreservationFlags:
    """Which existing fields an update must leave untouched or reapply."""

    preserve_featured_image: bool = True
    preserve_slug: bool = True
    preserve_categories: bool = True
    preserve_tags: bool = True


@dataclass(frozen=True, slots=True)
class InternalLinkTarget:
    url: str
    title: str
    slug: str


@dataclass(slots=True)
class SynthesisRequest:
    """Everything the synthesis engine needs to write one article."""

    topic: str
    prompt: str
    mode: str
    model: str
    provider: str
    site_context: dict[str, Any]
    target_keyword: str
    target_words: int
    internal_links: list[InternalLinkTarget] = field(default_factory=list)
    entity_gap_data: dict[str, Any] | None = None
    neuron_data: dict[str, Any] | None = None
    existing_analysis: dict[str, Any] | None = None
    validated_references: list[Any] | None = None


@dataclass(slots=True)
class SynthesisResult:
    content: str
    excerpt: str
    title: str
    slug: str
    meta_description: str = ""
    youtube_video: dict[str, Any] | None = None
    references: list[Any] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class QAResult:
    score: int
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class SeoMetrics:
    word_count: int
    aeo_score: int
    content_depth: int
    heading_structure: int

    def to_dict(self) -> dict[str, int]:
        return {
            "word_count": self.word_count,
            "aeo_score": self.aeo_score,
            "content_depth": self.content_depth,
            "heading_structure": self.heading_structure,
        }


class ContentStore(Protocol):
    """Remote content-management endpoint (resolve/fetch/create/update)."""

    async def resolve_entity(self, target_url: str) -> int | None: ...

    async def fetch_entity_with_assets(self, entity_id: int) -> RemoteEntity: ...

    async def create_entity(self, payload: dict[str, Any]) -> PublishedEntity: ...

    async def update_entity(
        self,
        entity_id: int,
        payload: dict[str, Any],
        flags: PreservationFlags,
    ) -> PublishedEntity: ...

    async def update_entity_metadata(
        self,
        entity_id: int,
        *,
        title: str,
        description: str,
        focus_keyword: str,
    ) -> None: ...


ContentStoreFactory = Callable[[], AbstractAsyncContextManager[ContentStore]]


class ContentSynthesizer(Protocol):
    async def synthesize(
        self,
        request: SynthesisRequest,
        on_stage_progress: StageProgressCallback,
    ) -> SynthesisResult: ...


class EntityGapAnalyzer(Protocol):
    async def analyze(
        self,
        topic: str,
        *,
        api_key: str,
        existing_content: str | None = None,
    ) -> dict[str, Any]: ...


class NeuronAnalyzer(Protocol):
    async def analyze(
        self,
        topic: str,
        *,
        api_key: str,
        project_id: str,
    ) -> dict[str, Any] | None: ...


class ContentScorer(Protocol):
    def score_content(self, content: str, signals: dict[str, Any]) -> QAResult: ...

    def compute_metrics(self, content: str, title: str, slug: str) -> SeoMetrics: ...


@dataclass(slots=True)
class Collaborators:
    """Bundle of external services injected into the orchestrator."""

    content_store: ContentStoreFactory
    synthesizer: ContentSynthesizer
    scorer: ContentScorer
    entity_gap_analyzer: EntityGapAnalyzer | None = None
    neuron_analyzer: NeuronAnalyzer | None = None

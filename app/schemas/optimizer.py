"""Optimizer API schemas."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from app.services.optimizer.phases import Phase


class JobRunRequest(BaseModel):
    """Schema for starting an interactive optimization job."""

    target_url: str | None = None
    keyword_override: str | None = None
    preserve_featured_image: bool | None = None
    preserve_categories: bool | None = None
    preserve_tags: bool | None = None
    publish_mode: Literal["draft", "autopublish"] | None = None
    optimization_mode: Literal["surgical", "writer"] | None = None


class JobResultResponse(BaseModel):
    """Terminal result of a job run."""

    model_config = ConfigDict(from_attributes=True)

    success: bool
    score: int
    word_count: int
    error: str | None = None


class CancelRequest(BaseModel):
    reason: str = "User cancelled"


class CancelResponse(BaseModel):
    cancelled: bool


class PreservationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    original_slug: str | None = None
    original_link: str | None = None
    categories: list[int] = Field(default_factory=list)
    tags: list[int] = Field(default_factory=list)
    featured_media_id: int | None = None


class JobStateResponse(BaseModel):
    """Schema for job state response."""

    model_config = ConfigDict(from_attributes=True)

    target_id: str
    status: str
    phase: Phase
    attempts: int
    start_time: float | None = None
    processing_time: float | None = None
    error: str | None = None
    score: int | None = None
    word_count: int | None = None
    entity_id: int | None = None
    preservation: PreservationResponse | None = None
    qa_details: dict[str, Any] | None = None
    warnings: list[str] = Field(default_factory=list)
    logs: list[str] = Field(default_factory=list)


class ProgressResponse(BaseModel):
    """Snapshot of the interactive run with derived percent and ETA."""

    running: bool
    phase: Phase
    label: str
    step: int
    total_steps: int
    percent: int
    current_url: str
    start_time: float | None = None
    sections_completed: int | None = None
    total_sections: int | None = None
    word_count: int | None = None
    elapsed_seconds: float
    eta: str


class BulkRunRequest(BaseModel):
    """Schema for starting a bulk batch."""

    urls: list[str] | str
    concurrency: int | None = None


class BulkJobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    url: str
    status: str
    score: int | None = None
    word_count: int | None = None
    error: str | None = None
    start_time: float | None = None
    end_time: float | None = None


class BatchSummaryResponse(BaseModel):
    """Aggregates of a finished (or aborted) bulk batch."""

    model_config = ConfigDict(from_attributes=True)

    total: int
    concurrency: int
    completed: int
    failed: int
    total_words: int
    avg_score: int
    total_time: float
    aborted: bool
    jobs: list[BulkJobResponse]


class BulkAbortResponse(BaseModel):
    aborted: bool


class ImprovementEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    timestamp: float
    score: int
    word_count: int
    qa_score: int
    action: str


class PageResponse(BaseModel):
    """Catalogue entry."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    slug: str
    last_mod: str | None = None
    word_count: int | None = None
    health_score: int | None = None
    status: str
    target_keyword: str | None = None
    improvement_history: list[ImprovementEntryResponse] = Field(default_factory=list)
    wp_post_id: int | None = None
    last_published_at: float | None = None


class SitemapCrawlRequest(BaseModel):
    sitemap_url: str = Field(min_length=1)


class SitemapCrawlResponse(BaseModel):
    added: int
    total: int


class StatsResponse(BaseModel):
    """Global aggregate counters."""

    model_config = ConfigDict(from_attributes=True)

    total_processed: int
    total_words_generated: int
    total_improved: int
    last_run_time: float | None = None

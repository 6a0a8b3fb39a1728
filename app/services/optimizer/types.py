"""Domain types for the optimization core."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from app.config import Settings
from app.services.optimizer.phases import Phase

JobStatus = Literal["idle", "running", "completed", "failed"]
PageStatus = Literal["idle", "analyzing", "analyzed", "error"]
BulkJobStatus = Literal["queued", "running", "completed", "failed"]


@dataclass(frozen=True, slots=True)
class PreservationRecord:
    """Remote metadata captured before regeneration, reapplied on publish."""

    original_slug: str | None = None
    original_link: str | None = None
    categories: tuple[int, ...] = ()
    tags: tuple[int, ...] = ()
    featured_media_id: int | None = None


@dataclass(frozen=True, slots=True)
class ImprovementEntry:
    """One completed optimization recorded on an item."""

    timestamp: float
    score: int
    word_count: int
    qa_score: int
    action: str


@dataclass(frozen=True, slots=True)
class PageRecord:
    """A known content item in the catalogue, keyed by URL."""

    id: str
    title: str
    slug: str
    last_mod: str | None = None
    word_count: int | None = None
    health_score: int | None = None
    status: PageStatus = "idle"
    target_keyword: str | None = None
    improvement_history: tuple[ImprovementEntry, ...] = ()
    wp_post_id: int | None = None
    last_published_at: float | None = None


@dataclass(frozen=True, slots=True)
class JobState:
    """Job state for one target. Instances handed out by the store are copies."""

    target_id: str
    status: JobStatus = "idle"
    phase: Phase = Phase.IDLE
    attempts: int = 0
    start_time: float | None = None
    processing_time: float | None = None
    error: str | None = None
    score: int | None = None
    word_count: int | None = None
    entity_id: int | None = None
    preservation: PreservationRecord | None = None
    entity_gap_data: dict[str, Any] | None = None
    neuron_data: dict[str, Any] | None = None
    qa_details: dict[str, Any] | None = None
    warnings: tuple[str, ...] = ()
    logs: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class GlobalStats:
    """Process-wide aggregate counters over completed jobs."""

    total_processed: int = 0
    total_words_generated: int = 0
    total_improved: int = 0
    last_run_time: float | None = None


@dataclass(frozen=True, slots=True)
class JobResult:
    """Terminal outcome of one orchestrator run."""

    success: bool
    score: int
    word_count: int
    error: str | None = None

    @classmethod
    def failure(cls, error: str) -> "JobResult":
        return cls(success=False, score=0, word_count=0, error=error)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "score": self.score,
            "word_count": self.word_count,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True, slots=True)
class JobOptions:
    """Per-run overrides; unset values fall back to settings."""

    keyword_override: str | None = None
    preserve_featured_image: bool = True
    preserve_categories: bool = True
    preserve_tags: bool = True
    publish_mode: Literal["draft", "autopublish"] = "draft"
    optimization_mode: Literal["surgical", "writer"] = "surgical"

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "JobOptions":
        values: dict[str, Any] = {
            "preserve_featured_image": settings.preserve_featured_image,
            "preserve_categories": settings.preserve_categories,
            "preserve_tags": settings.preserve_tags,
            "publish_mode": settings.publish_mode,
            "optimization_mode": settings.optimization_mode,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)


@dataclass(slots=True)
class BulkJob:
    """One slot of a bulk batch."""

    id: str
    url: str
    status: BulkJobStatus = "queued"
    score: int | None = None
    word_count: int | None = None
    error: str | None = None
    start_time: float | None = None
    end_time: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "status": self.status,
            "score": self.score,
            "word_count": self.word_count,
            "error": self.error,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }


@dataclass(slots=True)
class BatchSummary:
    """Aggregates reported when a bulk batch finishes or is aborted."""

    total: int
    concurrency: int
    completed: int = 0
    failed: int = 0
    total_words: int = 0
    avg_score: int = 0
    total_time: float = 0.0
    aborted: bool = False
    jobs: list[BulkJob] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "concurrency": self.concurrency,
            "completed": self.completed,
            "failed": self.failed,
            "total_words": self.total_words,
            "avg_score": self.avg_score,
            "total_time": self.total_time,
            "aborted": self.aborted,
            "jobs": [job.to_dict() for job in self.jobs],
        }

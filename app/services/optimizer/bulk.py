"""Concurrency-bounded batch runner over many target URLs."""

from __future__ import annotations

import asyncio
import logging
import re
import time
import uuid
from collections.abc import Awaitable, Callable, Iterable
from urllib.parse import urlparse

from app.config import Settings
from app.core.exceptions import (
    InvalidPhaseTransitionError,
    JobAlreadyRunningError,
    JobTimeoutError,
    ValidationError,
)
from app.services.optimizer.state_store import JobStateStore
from app.services.optimizer.types import BatchSummary, BulkJob, JobResult

logger = logging.getLogger(__name__)

QUALITY_CHECK_FAILED = "Quality check failed"
_URL_SEPARATORS = re.compile(r"[\n,\s]+")

JobRunner = Callable[[str], Awaitable[JobResult]]


def is_absolute_url(value: str) -> bool:
    """Whether ``value`` is an http(s) URL with a host and no inner whitespace."""
    if not value or any(char.isspace() for char in value):
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def parse_bulk_urls(raw: str | Iterable[str]) -> list[str]:
    """Trim, keep valid absolute URLs and drop exact duplicates (first wins)."""
    if isinstance(raw, str):
        candidates: Iterable[str] = _URL_SEPARATORS.split(raw)
    else:
        candidates = raw

    seen: set[str] = set()
    urls: list[str] = []
    for candidate in candidates:
        url = str(candidate).strip()
        if not is_absolute_url(url) or url in seen:
            continue
        seen.add(url)
        urls.append(url)
    return urls


class BulkScheduler:
    """Runs jobs in consecutive waves of at most ``concurrency`` jobs.

    A wave is awaited in full before the next starts, with a cooldown in
    between. Each job is bounded by a wall-clock timeout that cancels the
    underlying run. Failures are isolated to their own slot. ``abort`` stops
    new waves and jobs from starting; jobs already running finish.
    """

    def __init__(
        self,
        *,
        run_job: JobRunner,
        settings: Settings,
        store: JobStateStore | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._run_job = run_job
        self.settings = settings
        self.store = store
        self._sleep = sleep
        self._abort_requested = False
        self._running = False
        self._active_jobs = 0
        self._score_total = 0
        self.peak_running = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def active_jobs(self) -> int:
        return self._active_jobs

    def abort(self) -> bool:
        """Stop starting new waves/jobs. Returns False when idle."""
        if not self._running:
            return False
        self._abort_requested = True
        logger.warning("Bulk abort requested")
        return True

    def resolve_concurrency(self, concurrency: int | None) -> int:
        requested = concurrency if concurrency is not None else self.settings.bulk_default_concurrency
        return max(1, min(int(requested), max(1, self.settings.bulk_max_concurrency)))

    async def run(
        self,
        urls: str | Iterable[str],
        concurrency: int | None = None,
    ) -> BatchSummary:
        """Run a batch to completion (or abort) and return its aggregates.

        Raises:
            ValidationError: If no valid URL survives normalization.
            JobAlreadyRunningError: If a batch is already in progress.
        """
        targets = parse_bulk_urls(urls)
        if not targets:
            raise ValidationError("No valid URLs provided")
        if self._running:
            raise JobAlreadyRunningError("bulk batch")

        wave_size = self.resolve_concurrency(concurrency)
        batch_id = uuid.uuid4().hex[:12]
        summary = BatchSummary(
            total=len(targets),
            concurrency=wave_size,
            jobs=[
                BulkJob(id=f"bulk-{batch_id}-{index}", url=url)
                for index, url in enumerate(targets)
            ],
        )

        self._running = True
        self._abort_requested = False
        self._active_jobs = 0
        self._score_total = 0
        self.peak_running = 0
        started = time.monotonic()
        logger.info(
            "Bulk optimization started",
            extra={"batch_id": batch_id, "urls": len(targets), "concurrency": wave_size},
        )

        try:
            for offset in range(0, len(summary.jobs), wave_size):
                if self._abort_requested:
                    break
                wave = summary.jobs[offset:offset + wave_size]
                await asyncio.gather(*(self._process(job, summary) for job in wave))

                has_more = offset + wave_size < len(summary.jobs)
                if has_more and not self._abort_requested:
                    await self._sleep(self.settings.bulk_wave_cooldown_seconds)
        finally:
            summary.total_time = time.monotonic() - started
            summary.aborted = self._abort_requested
            self._running = False

        logger.info(
            "Bulk optimization finished",
            extra={
                "batch_id": batch_id,
                "completed": summary.completed,
                "failed": summary.failed,
                "total_words": summary.total_words,
                "avg_score": summary.avg_score,
                "total_time": round(summary.total_time, 2),
                "aborted": summary.aborted,
            },
        )
        return summary

    async def _process(self, job: BulkJob, summary: BatchSummary) -> None:
        if self._abort_requested:
            return

        job.status = "running"
        job.start_time = time.time()
        self._active_jobs += 1
        self.peak_running = max(self.peak_running, self._active_jobs)
        timeout = self.settings.bulk_job_timeout_seconds

        try:
            try:
                result = await asyncio.wait_for(self._run_job(job.url), timeout=timeout)
            except asyncio.TimeoutError as exc:
                timeout_error = JobTimeoutError(timeout)
                self._record_timeout(job.url, str(timeout_error), time.time() - job.start_time)
                raise timeout_error from exc

            if result.success and result.score >= self.settings.bulk_quality_threshold:
                self._record_success(job, summary, result)
            else:
                self._record_failure(job, summary, result.error or QUALITY_CHECK_FAILED)
        except Exception as exc:
            self._record_failure(job, summary, str(exc) or exc.__class__.__name__)
        finally:
            self._active_jobs -= 1
            job.end_time = time.time()

    def _record_success(self, job: BulkJob, summary: BatchSummary, result: JobResult) -> None:
        job.status = "completed"
        job.score = result.score
        job.word_count = result.word_count
        summary.completed += 1
        summary.total_words += result.word_count
        self._score_total += result.score
        summary.avg_score = round(self._score_total / summary.completed)
        logger.info(
            "Bulk job completed",
            extra={"target_id": job.url, "score": result.score, "words": result.word_count},
        )

    def _record_failure(self, job: BulkJob, summary: BatchSummary, error: str) -> None:
        job.status = "failed"
        job.error = error
        summary.failed += 1
        logger.warning("Bulk job failed", extra={"target_id": job.url, "error": error})

    def _record_timeout(self, target_id: str, message: str, elapsed: float) -> None:
        if self.store is None:
            return
        try:
            self.store.fail(target_id, message, processing_time=elapsed)
        except InvalidPhaseTransitionError:
            logger.warning(
                "Timed out job already terminal",
                extra={"target_id": target_id},
            )

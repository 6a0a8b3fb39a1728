"""In-memory keyed store for job state, the item catalogue and global stats."""

from __future__ import annotations

import copy
import logging
import re
import threading
import time
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any
from urllib.parse import unquote, urlparse

from app.core.exceptions import JobAlreadyRunningError
from app.services.optimizer.phases import Phase, resolve_transition
from app.services.optimizer.types import (
    GlobalStats,
    ImprovementEntry,
    JobState,
    PageRecord,
)

logger = logging.getLogger(__name__)

MAX_JOB_LOG_LINES = 200
_SLUG_INVALID = re.compile(r"[^a-z0-9-]+")
_SLUG_DASHES = re.compile(r"-{2,}")


def sanitize_slug(value: str) -> str:
    """Lowercase, dash-separated slug with no leading/trailing dashes."""
    lowered = unquote(str(value)).strip().lower().replace("_", "-").replace(" ", "-")
    cleaned = _SLUG_DASHES.sub("-", _SLUG_INVALID.sub("", lowered))
    return cleaned.strip("-")


def slug_from_url(url: str) -> str:
    """Slug of the last non-empty path segment of a URL."""
    try:
        segments = [part for part in urlparse(url).path.split("/") if part]
    except ValueError:
        return ""
    return sanitize_slug(segments[-1]) if segments else ""


def title_from_url(url: str) -> str:
    """Human title derived from the last URL path segment."""
    try:
        segments = [part for part in urlparse(url).path.split("/") if part]
    except ValueError:
        return ""
    if not segments:
        return ""
    words = unquote(segments[-1]).replace("-", " ").split()
    return " ".join(word[:1].upper() + word[1:] for word in words)


def page_from_url(url: str, *, last_mod: str | None = None) -> PageRecord:
    """Build a fresh catalogue entry for a URL."""
    return PageRecord(
        id=url,
        title=title_from_url(url) or "New Page",
        slug=slug_from_url(url),
        last_mod=last_mod or datetime.now(timezone.utc).isoformat(),
    )


class JobStateStore:
    """Keyed job-state and catalogue store with per-key locking.

    Values handed out are frozen dataclasses (deep-copied on the way out), so
    callers never hold a reference into the store. Every write is a
    copy-then-commit under the lock for that key only; writes to different
    targets never contend.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, JobState] = {}
        self._pages: dict[str, PageRecord] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._stats = GlobalStats()
        self._stats_lock = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    # Catalogue

    def add_pages(self, pages: Iterable[PageRecord]) -> int:
        """Insert pages whose ids are not yet known. Returns the number added."""
        added = 0
        for page in pages:
            with self._lock_for(page.id):
                if page.id in self._pages:
                    continue
                self._pages[page.id] = page
                added += 1
        return added

    def ensure_page(self, url: str) -> PageRecord:
        """Return the catalogue entry for ``url``, creating it if unseen."""
        with self._lock_for(url):
            page = self._pages.get(url)
            if page is None:
                page = page_from_url(url)
                self._pages[url] = page
                logger.info("Catalogue entry created", extra={"target_id": url})
            return page

    def get_page(self, page_id: str) -> PageRecord | None:
        return self._pages.get(page_id)

    def list_pages(self) -> list[PageRecord]:
        return list(self._pages.values())

    def update_page(self, page_id: str, **changes: Any) -> PageRecord:
        """Copy-then-commit update of one catalogue entry."""
        with self._lock_for(page_id):
            current = self._pages.get(page_id)
            if current is None:
                raise KeyError(page_id)
            updated = replace(current, **changes)
            self._pages[page_id] = updated
            return updated

    def record_improvement(self, page_id: str, entry: ImprovementEntry, **changes: Any) -> PageRecord:
        """Append a history entry and apply page changes atomically."""
        with self._lock_for(page_id):
            current = self._pages.get(page_id)
            if current is None:
                raise KeyError(page_id)
            updated = replace(
                current,
                improvement_history=(*current.improvement_history, entry),
                **changes,
            )
            self._pages[page_id] = updated
            return updated

    def select_candidate(self) -> str | None:
        """Lowest-health item not currently running (unscored items count as 0)."""
        candidates = [
            page
            for page in self._pages.values()
            if self._job_status(page.id) != "running"
        ]
        if not candidates:
            return None
        best = min(candidates, key=lambda page: page.health_score or 0)
        return best.id

    # Jobs

    def get_job(self, target_id: str) -> JobState | None:
        state = self._jobs.get(target_id)
        return copy.deepcopy(state) if state is not None else None

    def _job_status(self, target_id: str) -> str | None:
        state = self._jobs.get(target_id)
        return state.status if state is not None else None

    def claim(self, target_id: str, *, start_time: float | None = None) -> JobState:
        """Atomically move a target into a new running attempt.

        Raises:
            JobAlreadyRunningError: If another run currently owns the target.
        """
        with self._lock_for(target_id):
            current = self._jobs.get(target_id) or JobState(target_id=target_id)
            if current.status == "running":
                raise JobAlreadyRunningError(target_id)
            claimed = replace(
                current,
                status="running",
                phase=Phase.INITIALIZING,
                attempts=current.attempts + 1,
                start_time=start_time if start_time is not None else time.time(),
                processing_time=None,
                error=None,
                score=None,
                word_count=None,
                warnings=(),
            )
            self._jobs[target_id] = claimed
            return copy.deepcopy(claimed)

    def advance_phase(self, target_id: str, phase: Phase) -> JobState:
        """Record a non-terminal phase report for a running job."""
        with self._lock_for(target_id):
            current = self._jobs.get(target_id) or JobState(target_id=target_id)
            next_phase = resolve_transition(current.phase, phase)
            updated = replace(current, phase=next_phase)
            self._jobs[target_id] = updated
            return copy.deepcopy(updated)

    def update_job(self, target_id: str, **changes: Any) -> JobState:
        """Copy-then-commit update of job fields other than phase/status."""
        if "phase" in changes or "status" in changes:
            raise ValueError("Use advance_phase/complete/fail to change phase or status")
        with self._lock_for(target_id):
            current = self._jobs.get(target_id) or JobState(target_id=target_id)
            updated = replace(current, **copy.deepcopy(changes))
            self._jobs[target_id] = updated
            return copy.deepcopy(updated)

    def add_warning(self, target_id: str, message: str) -> None:
        with self._lock_for(target_id):
            current = self._jobs.get(target_id) or JobState(target_id=target_id)
            self._jobs[target_id] = replace(current, warnings=(*current.warnings, message))

    def append_log(self, target_id: str, line: str) -> None:
        with self._lock_for(target_id):
            current = self._jobs.get(target_id) or JobState(target_id=target_id)
            logs = (*current.logs, line)[-MAX_JOB_LOG_LINES:]
            self._jobs[target_id] = replace(current, logs=logs)

    def complete(
        self,
        target_id: str,
        *,
        score: int,
        word_count: int,
        processing_time: float,
    ) -> JobState:
        with self._lock_for(target_id):
            current = self._jobs.get(target_id) or JobState(target_id=target_id)
            updated = replace(
                current,
                status="completed",
                phase=resolve_transition(current.phase, Phase.COMPLETED),
                score=score,
                word_count=word_count,
                processing_time=processing_time,
                error=None,
            )
            self._jobs[target_id] = updated
            return copy.deepcopy(updated)

    def fail(
        self,
        target_id: str,
        error: str,
        *,
        processing_time: float | None = None,
    ) -> JobState:
        with self._lock_for(target_id):
            current = self._jobs.get(target_id) or JobState(target_id=target_id)
            updated = replace(
                current,
                status="failed",
                phase=resolve_transition(current.phase, Phase.FAILED),
                error=error,
                processing_time=(
                    processing_time if processing_time is not None else current.processing_time
                ),
            )
            self._jobs[target_id] = updated
            return copy.deepcopy(updated)

    # Stats

    def get_stats(self) -> GlobalStats:
        return self._stats

    def record_completion(
        self,
        *,
        word_count: int,
        processing_time: float,
        improved: bool,
    ) -> GlobalStats:
        with self._stats_lock:
            self._stats = replace(
                self._stats,
                total_processed=self._stats.total_processed + 1,
                total_words_generated=self._stats.total_words_generated + word_count,
                total_improved=self._stats.total_improved + (1 if improved else 0),
                last_run_time=processing_time,
            )
            return self._stats

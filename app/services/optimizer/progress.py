"""Progress snapshots for the interactive single-job run."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, replace
from typing import Any

from app.services.optimizer.phases import (
    PHASE_LABELS,
    TOTAL_STEPS,
    Phase,
    progress_percent,
)

logger = logging.getLogger(__name__)

ETA_UNKNOWN = "--:--"


def format_clock(seconds: float) -> str:
    """Render seconds as ``m:ss``."""
    whole = max(int(seconds), 0)
    minutes, secs = divmod(whole, 60)
    return f"{minutes}:{secs:02d}"


@dataclass(frozen=True, slots=True)
class ProgressSnapshot:
    """Immutable progress view of the active run."""

    running: bool = False
    phase: Phase = Phase.IDLE
    step: int = 0
    current_url: str = ""
    start_time: float | None = None
    sections_completed: int | None = None
    total_sections: int | None = None
    word_count: int | None = None

    @property
    def percent(self) -> int:
        return progress_percent(self.step)

    def merge(self, **patch: Any) -> "ProgressSnapshot":
        """Apply a partial update; ``None`` values keep the last known field."""
        changes = {key: value for key, value in patch.items() if value is not None}
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "phase": self.phase.value,
            "label": PHASE_LABELS[self.phase],
            "step": self.step,
            "total_steps": TOTAL_STEPS,
            "percent": self.percent,
            "current_url": self.current_url,
            "start_time": self.start_time,
            "sections_completed": self.sections_completed,
            "total_sections": self.total_sections,
            "word_count": self.word_count,
        }


class ProgressReporter:
    """Holds the single progress snapshot and fans updates out to subscribers.

    The step index never decreases during a run: a phase reported with a
    lower ordinal than one already reached keeps the higher step while the
    phase label follows the report. Once a run is finished or cancelled, late
    updates from it are dropped until the next ``start``.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        queue_size: int = 100,
    ) -> None:
        self._clock = clock
        self._queue_size = max(1, queue_size)
        self._snapshot = ProgressSnapshot()
        self._closed = True
        self._subscribers: set[asyncio.Queue[ProgressSnapshot]] = set()

    @property
    def snapshot(self) -> ProgressSnapshot:
        return self._snapshot

    def start(self, current_url: str = "", *, start_time: float | None = None) -> ProgressSnapshot:
        """Reset the snapshot for a new run."""
        self._closed = False
        self._snapshot = ProgressSnapshot(
            running=True,
            phase=Phase.INITIALIZING,
            step=Phase.INITIALIZING.step,
            current_url=current_url,
            start_time=start_time if start_time is not None else self._clock(),
            sections_completed=0,
            total_sections=0,
            word_count=0,
        )
        self._publish()
        return self._snapshot

    def update(self, phase: Phase | None = None, **fields: Any) -> ProgressSnapshot:
        """Merge a partial update onto the current snapshot."""
        if self._closed:
            return self._snapshot
        patch: dict[str, Any] = dict(fields)
        if phase is not None:
            patch["phase"] = phase
            patch["step"] = self._next_step(phase)
        self._snapshot = self._snapshot.merge(**patch)
        self._publish()
        return self._snapshot

    def finish(self, phase: Phase, **fields: Any) -> ProgressSnapshot:
        """Close the run on a terminal phase."""
        if self._closed:
            return self._snapshot
        self._snapshot = self._snapshot.merge(
            phase=phase,
            step=self._next_step(phase),
            **fields,
        )
        self._snapshot = replace(self._snapshot, running=False)
        self._closed = True
        self._publish()
        return self._snapshot

    def force_failed(self) -> ProgressSnapshot:
        """Immediately show the active run as stopped and failed."""
        self._snapshot = replace(
            self._snapshot,
            running=False,
            phase=Phase.FAILED,
            step=Phase.FAILED.step,
        )
        self._closed = True
        self._publish()
        return self._snapshot

    def _next_step(self, phase: Phase) -> int:
        if phase == Phase.FAILED:
            return phase.step
        return max(self._snapshot.step, phase.step)

    def elapsed(self, now: float | None = None) -> float:
        start = self._snapshot.start_time
        if start is None:
            return 0.0
        current = now if now is not None else self._clock()
        return max(current - start, 0.0)

    def eta(self, now: float | None = None) -> str:
        """Linear remaining-time estimate from average time per step."""
        step = self._snapshot.step
        if step == 0:
            return ETA_UNKNOWN
        remaining = (self.elapsed(now) / step) * (TOTAL_STEPS - step)
        return format_clock(remaining)

    async def subscribe(self) -> AsyncIterator[ProgressSnapshot]:
        """Yield the current snapshot, then every subsequent one."""
        queue: asyncio.Queue[ProgressSnapshot] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.add(queue)
        try:
            yield self._snapshot
            while True:
                yield await queue.get()
        finally:
            self._subscribers.discard(queue)

    def _publish(self) -> None:
        for queue in self._subscribers:
            if queue.full():
                # Slow consumer: drop the oldest snapshot
                queue.get_nowait()
            queue.put_nowait(self._snapshot)

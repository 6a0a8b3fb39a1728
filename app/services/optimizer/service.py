"""Facade over the optimization core used by the HTTP layer and embedders."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable

from app.config import Settings
from app.core.exceptions import (
    CancellationError,
    ConfigurationError,
    JobAlreadyRunningError,
)
from app.integrations.sitemap_fetcher import SitemapFetcher
from app.integrations.wordpress import WordPressClient
from app.services.content_quality import ContentQualityScorer
from app.services.optimizer.bulk import BulkScheduler
from app.services.optimizer.cancellation import CancellationToken
from app.services.optimizer.collaborators import (
    Collaborators,
    ContentSynthesizer,
    EntityGapAnalyzer,
    NeuronAnalyzer,
)
from app.services.optimizer.orchestrator import PhaseOrchestrator
from app.services.optimizer.progress import ProgressReporter, ProgressSnapshot
from app.services.optimizer.state_store import JobStateStore, page_from_url
from app.services.optimizer.types import (
    BatchSummary,
    GlobalStats,
    JobOptions,
    JobResult,
    JobState,
    PageRecord,
)

logger = logging.getLogger(__name__)

INTERACTIVE_SLOT = "interactive"


def build_collaborators(
    settings: Settings,
    synthesizer: ContentSynthesizer,
    *,
    entity_gap_analyzer: EntityGapAnalyzer | None = None,
    neuron_analyzer: NeuronAnalyzer | None = None,
) -> Collaborators:
    """Wire the WordPress store and default scorer around an injected synthesizer."""

    def open_store() -> WordPressClient:
        return WordPressClient(
            base_url=settings.wordpress_url,
            username=settings.wordpress_username,
            password=settings.wordpress_password,
            timeout=settings.wordpress_timeout_seconds,
        )

    return Collaborators(
        content_store=open_store,
        synthesizer=synthesizer,
        scorer=ContentQualityScorer(target_word_count=settings.target_word_count),
        entity_gap_analyzer=entity_gap_analyzer,
        neuron_analyzer=neuron_analyzer,
    )


class OptimizerService:
    """Owns the shared store and reporter and wires runs together.

    At most one interactive job runs at a time; it is the only run that
    reports progress and can be cancelled. Bulk batches run silent
    orchestrator instances against the same store.
    """

    def __init__(
        self,
        settings: Settings,
        collaborators: Collaborators,
        *,
        store: JobStateStore | None = None,
        reporter: ProgressReporter | None = None,
    ) -> None:
        self.settings = settings
        self.collaborators = collaborators
        self.store = store or JobStateStore()
        self.reporter = reporter or ProgressReporter(
            queue_size=settings.progress_subscriber_queue_size
        )
        self.bulk = BulkScheduler(
            run_job=self._run_bulk_job,
            settings=settings,
            store=self.store,
        )
        self._active_task: asyncio.Task | None = None
        self._token: CancellationToken | None = None

    @property
    def is_job_running(self) -> bool:
        return self._active_task is not None and not self._active_task.done()

    def _orchestrator(
        self,
        *,
        reporter: ProgressReporter | None = None,
        token: CancellationToken | None = None,
    ) -> PhaseOrchestrator:
        return PhaseOrchestrator(
            settings=self.settings,
            store=self.store,
            collaborators=self.collaborators,
            reporter=reporter,
            token=token,
        )

    async def run_single_job(
        self,
        target_override: str | None = None,
        *,
        silent: bool = False,
        options: JobOptions | None = None,
    ) -> JobResult:
        """Run one interactive job to its terminal result.

        Raises:
            JobAlreadyRunningError: If an interactive job is already active.
        """
        if self.is_job_running:
            raise JobAlreadyRunningError(INTERACTIVE_SLOT)

        token = CancellationToken()
        token.add_listener(lambda _reason: self.reporter.force_failed())
        orchestrator = self._orchestrator(reporter=self.reporter, token=token)
        task = asyncio.create_task(
            orchestrator.run(target_override, silent=silent, options=options)
        )
        token.bind_task(task)
        self._active_task = task
        self._token = token

        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            caller_cancelled = current is not None and current.cancelling() > 0
            # Cancelled before the run got to handle it itself
            if token.cancelled and not caller_cancelled:
                return JobResult.failure(str(CancellationError(token.reason or "User cancelled")))
            raise
        finally:
            if self._active_task is task:
                self._active_task = None
                self._token = None

    def request_cancellation(self, reason: str = "User cancelled") -> bool:
        """Cancel the active interactive job. Returns False if none is running."""
        if self._token is None or not self.is_job_running:
            return False
        return self._token.cancel(reason)

    def progress(self) -> ProgressSnapshot:
        return self.reporter.snapshot

    def subscribe_progress(self) -> AsyncIterator[ProgressSnapshot]:
        return self.reporter.subscribe()

    async def run_bulk_batch(
        self,
        urls: str | Iterable[str],
        concurrency: int | None = None,
    ) -> BatchSummary:
        """Run a bulk batch over ``urls``.

        Raises:
            ConfigurationError: If no content-generation key is configured.
            ValidationError: If no valid URL was supplied.
            JobAlreadyRunningError: If another batch is in progress.
        """
        if not self.settings.has_ai_credentials:
            raise ConfigurationError("No AI API key configured")
        return await self.bulk.run(urls, concurrency)

    async def _run_bulk_job(self, url: str) -> JobResult:
        return await self._orchestrator().run(url, silent=True)

    def abort_bulk(self) -> bool:
        return self.bulk.abort()

    def get_job(self, target_id: str) -> JobState | None:
        return self.store.get_job(target_id)

    def list_pages(self) -> list[PageRecord]:
        return self.store.list_pages()

    def get_stats(self) -> GlobalStats:
        return self.store.get_stats()

    async def crawl_sitemap(self, sitemap_url: str) -> int:
        """Add every content URL of a sitemap to the catalogue.

        Returns the number of items that were not known before.
        """
        async with SitemapFetcher(
            timeout=self.settings.sitemap_timeout_seconds,
            max_urls=self.settings.sitemap_max_urls,
        ) as fetcher:
            entries = await fetcher.fetch_entries(sitemap_url)

        added = self.store.add_pages(
            page_from_url(entry.url, last_mod=entry.lastmod) for entry in entries
        )
        logger.info(
            "Catalogue updated from sitemap",
            extra={"sitemap_url": sitemap_url, "found": len(entries), "added": added},
        )
        return added

"""Unit tests for the optimizer service facade."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from optimizer_fakes import (
    TARGET_URL,
    FakeContentStore,
    FakeSynthesizer,
    build_collaborators,
    existing_entity,
    make_settings,
)

from app.core.exceptions import ConfigurationError, JobAlreadyRunningError
from app.integrations.sitemap_fetcher import SitemapEntry
from app.integrations.wordpress import WordPressClient
from app.services.content_quality import ContentQualityScorer
from app.services.optimizer.phases import Phase
from app.services.optimizer.service import OptimizerService
from app.services.optimizer.service import build_collaborators as default_collaborators


@pytest.mark.asyncio
async def test_single_job_runs_and_reports_progress() -> None:
    service = OptimizerService(make_settings(), build_collaborators())

    result = await service.run_single_job(TARGET_URL)

    assert result.success is True
    assert service.progress().phase == Phase.COMPLETED
    assert service.is_job_running is False
    assert service.get_job(TARGET_URL).status == "completed"


@pytest.mark.asyncio
async def test_second_interactive_job_is_rejected_while_running() -> None:
    gate = asyncio.Event()
    synthesizer = FakeSynthesizer(gate=gate)
    service = OptimizerService(make_settings(), build_collaborators(synthesizer=synthesizer))

    first = asyncio.create_task(service.run_single_job(TARGET_URL))
    await asyncio.wait_for(synthesizer.started.wait(), timeout=1)

    with pytest.raises(JobAlreadyRunningError):
        await service.run_single_job("https://blog.example.com/other-post/")

    gate.set()
    assert (await first).success is True


@pytest.mark.asyncio
async def test_request_cancellation_stops_run_immediately() -> None:
    synthesizer = FakeSynthesizer(gate=asyncio.Event())
    content_store = FakeContentStore(existing=existing_entity())
    service = OptimizerService(make_settings(), build_collaborators(content_store, synthesizer))

    run = asyncio.create_task(service.run_single_job(TARGET_URL))
    await asyncio.wait_for(synthesizer.started.wait(), timeout=1)

    assert service.request_cancellation("Stopped by editor") is True
    # Visible before the run itself has settled
    assert service.progress().running is False
    assert service.progress().phase == Phase.FAILED

    result = await run
    assert result.success is False
    assert result.error == "Cancelled: Stopped by editor"
    assert content_store.updated == []
    assert service.request_cancellation() is False


@pytest.mark.asyncio
async def test_run_bulk_batch_requires_ai_key() -> None:
    service = OptimizerService(make_settings(google_api_key=None), build_collaborators())

    with pytest.raises(ConfigurationError, match="No AI API key configured"):
        await service.run_bulk_batch(["https://blog.example.com/a-post/"])


@pytest.mark.asyncio
async def test_run_bulk_batch_uses_silent_runs_against_shared_store() -> None:
    service = OptimizerService(make_settings(), build_collaborators())

    summary = await service.run_bulk_batch(
        "https://blog.example.com/first-post/\nhttps://blog.example.com/second-post/",
        concurrency=2,
    )

    assert summary.completed == 2
    assert service.get_job("https://blog.example.com/first-post/").status == "completed"
    # Bulk runs never drive the interactive progress snapshot
    assert service.progress().running is False
    assert service.progress().phase == Phase.IDLE
    assert service.get_stats().total_processed == 2


@pytest.mark.asyncio
async def test_crawl_sitemap_adds_new_catalogue_items(monkeypatch: Any) -> None:
    class _FakeFetcher:
        def __init__(self, **kwargs: Any) -> None:
            self.kwargs = kwargs

        async def __aenter__(self) -> "_FakeFetcher":
            return self

        async def __aexit__(self, *args: Any) -> None:
            return None

        async def fetch_entries(self, source: str) -> list[SitemapEntry]:
            return [
                SitemapEntry(url="https://blog.example.com/trail-running-tips/", lastmod="2024-05-01"),
                SitemapEntry(url=TARGET_URL),
            ]

    monkeypatch.setattr("app.services.optimizer.service.SitemapFetcher", _FakeFetcher)
    service = OptimizerService(make_settings(), build_collaborators())
    service.store.ensure_page(TARGET_URL)

    added = await service.crawl_sitemap("https://blog.example.com/sitemap.xml")

    assert added == 1
    page = service.store.get_page("https://blog.example.com/trail-running-tips/")
    assert page.title == "Trail Running Tips"
    assert page.last_mod == "2024-05-01"
    assert len(service.list_pages()) == 2


def test_abort_bulk_without_batch_returns_false() -> None:
    service = OptimizerService(make_settings(), build_collaborators())

    assert service.abort_bulk() is False
    assert service.get_job("https://blog.example.com/unknown/") is None
    assert service.get_stats().total_processed == 0


def test_default_collaborators_wire_wordpress_and_scorer() -> None:
    settings = make_settings(target_word_count=2500)

    collaborators = default_collaborators(settings, FakeSynthesizer())
    content_store = collaborators.content_store()

    assert isinstance(content_store, WordPressClient)
    assert content_store.api_url == "https://blog.example.com/wp-json/wp/v2"
    assert isinstance(collaborators.scorer, ContentQualityScorer)
    assert collaborators.scorer.target_word_count == 2500

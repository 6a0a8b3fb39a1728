"""Optimizer API endpoints."""

import json
from collections.abc import AsyncIterator
from typing import Annotated

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse
from lxml import etree

from app.api.v1.optimizer.constants import (
    JOB_NOT_FOUND_DETAIL,
    PROGRESS_STREAM_MEDIA_TYPE,
    SERVICE_NOT_CONFIGURED_DETAIL,
    SITEMAP_FETCH_FAILED_DETAIL,
)
from app.core.exceptions import (
    ConfigurationError,
    JobAlreadyRunningError,
    ValidationError,
)
from app.schemas.optimizer import (
    BatchSummaryResponse,
    BulkAbortResponse,
    BulkRunRequest,
    CancelRequest,
    CancelResponse,
    JobResultResponse,
    JobRunRequest,
    JobStateResponse,
    PageResponse,
    ProgressResponse,
    SitemapCrawlRequest,
    SitemapCrawlResponse,
    StatsResponse,
)
from app.services.optimizer.progress import ProgressSnapshot
from app.services.optimizer.service import OptimizerService
from app.services.optimizer.types import JobOptions

router = APIRouter()


def get_optimizer_service(request: Request) -> OptimizerService:
    """Return the service configured on the application, or 503."""
    service = getattr(request.app.state, "optimizer_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=SERVICE_NOT_CONFIGURED_DETAIL,
        )
    return service


OptimizerServiceDep = Annotated[OptimizerService, Depends(get_optimizer_service)]


def build_progress_response(
    service: OptimizerService,
    snapshot: ProgressSnapshot | None = None,
) -> ProgressResponse:
    snapshot = snapshot or service.reporter.snapshot
    return ProgressResponse(
        **snapshot.to_dict(),
        elapsed_seconds=service.reporter.elapsed() if snapshot.running else 0.0,
        eta=service.reporter.eta(),
    )


def format_progress_event(progress: ProgressResponse) -> str:
    """Render one progress payload as a server-sent event frame."""
    return f"data: {json.dumps(progress.model_dump(mode='json'))}\n\n"


@router.post("/jobs", response_model=JobResultResponse)
async def run_job(request: JobRunRequest, service: OptimizerServiceDep) -> JobResultResponse:
    """Run one interactive optimization job to completion."""
    options = JobOptions.from_settings(
        service.settings,
        keyword_override=request.keyword_override,
        preserve_featured_image=request.preserve_featured_image,
        preserve_categories=request.preserve_categories,
        preserve_tags=request.preserve_tags,
        publish_mode=request.publish_mode,
        optimization_mode=request.optimization_mode,
    )
    try:
        result = await service.run_single_job(request.target_url, options=options)
    except JobAlreadyRunningError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message) from e

    return JobResultResponse.model_validate(result)


@router.post("/jobs/cancel", response_model=CancelResponse)
async def cancel_job(service: OptimizerServiceDep, request: CancelRequest | None = None) -> CancelResponse:
    """Request cancellation of the running interactive job."""
    reason = request.reason if request is not None else CancelRequest().reason
    return CancelResponse(cancelled=service.request_cancellation(reason))


@router.get("/jobs/{target_id:path}", response_model=JobStateResponse)
async def get_job(target_id: str, service: OptimizerServiceDep) -> JobStateResponse:
    """Get job state for a target."""
    job = service.get_job(target_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=JOB_NOT_FOUND_DETAIL,
        )
    return JobStateResponse.model_validate(job)


@router.get("/progress", response_model=ProgressResponse)
async def get_progress(service: OptimizerServiceDep) -> ProgressResponse:
    """Current progress snapshot of the interactive run."""
    return build_progress_response(service)


@router.get("/progress/stream")
async def stream_progress(service: OptimizerServiceDep) -> StreamingResponse:
    """Server-sent events of every progress snapshot."""

    async def events() -> AsyncIterator[str]:
        async for snapshot in service.subscribe_progress():
            yield format_progress_event(build_progress_response(service, snapshot))

    return StreamingResponse(
        events(),
        media_type=PROGRESS_STREAM_MEDIA_TYPE,
        headers={"Cache-Control": "no-cache"},
    )


@router.post("/bulk", response_model=BatchSummaryResponse)
async def run_bulk(request: BulkRunRequest, service: OptimizerServiceDep) -> BatchSummaryResponse:
    """Run a bulk batch and return its aggregates."""
    try:
        summary = await service.run_bulk_batch(request.urls, request.concurrency)
    except (ValidationError, ConfigurationError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message) from e
    except JobAlreadyRunningError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message) from e

    return BatchSummaryResponse.model_validate(summary)


@router.post("/bulk/abort", response_model=BulkAbortResponse)
async def abort_bulk(service: OptimizerServiceDep) -> BulkAbortResponse:
    """Stop the running batch from starting new waves."""
    return BulkAbortResponse(aborted=service.abort_bulk())


@router.get("/pages", response_model=list[PageResponse])
async def list_pages(service: OptimizerServiceDep) -> list[PageResponse]:
    """List the item catalogue."""
    return [PageResponse.model_validate(page) for page in service.list_pages()]


@router.post("/pages/sitemap", response_model=SitemapCrawlResponse)
async def crawl_sitemap(request: SitemapCrawlRequest, service: OptimizerServiceDep) -> SitemapCrawlResponse:
    """Add the content URLs of a sitemap to the catalogue."""
    try:
        added = await service.crawl_sitemap(request.sitemap_url)
    except (httpx.HTTPError, etree.XMLSyntaxError) as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"{SITEMAP_FETCH_FAILED_DETAIL}: {e}",
        ) from e

    return SitemapCrawlResponse(added=added, total=len(service.list_pages()))


@router.get("/stats", response_model=StatsResponse)
async def get_stats(service: OptimizerServiceDep) -> StatsResponse:
    """Global aggregate counters."""
    return StatsResponse.model_validate(service.get_stats())

"""Drive one content item through the optimization phase sequence."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

from app.config import Settings
from app.core.exceptions import (
    AnalysisSoftWarning,
    CancellationError,
    ConfigurationError,
    EntityNotFoundError,
    GenerationError,
    JobAlreadyRunningError,
    MetadataSoftWarning,
    OptimizerError,
    PublishError,
    ResolutionSoftWarning,
    SoftWarning,
    TargetSelectionError,
)
from app.core.logging import JobLogger
from app.services.optimizer.cancellation import CancellationToken
from app.services.optimizer.collaborators import (
    Collaborators,
    ContentStore,
    InternalLinkTarget,
    PreservationFlags,
    PublishedEntity,
    SeoMetrics,
    SynthesisRequest,
    SynthesisResult,
)
from app.services.optimizer.interlinking import build_internal_link_targets
from app.services.optimizer.phases import Phase, phase_for_stage
from app.services.optimizer.progress import ProgressReporter
from app.services.optimizer.state_store import JobStateStore, sanitize_slug
from app.services.optimizer.types import (
    ImprovementEntry,
    JobOptions,
    JobResult,
    PreservationRecord,
)

logger = logging.getLogger(__name__)

NO_CONTENT_ERROR = "Content generation failed: No valid content produced"

FINAL_SCORE_WEIGHTS = {
    "aeo_score": 0.25,
    "qa_score": 0.45,
    "content_depth": 0.15,
    "heading_structure": 0.15,
}


def blend_final_score(metrics: SeoMetrics, qa_score: int) -> int:
    """Weighted blend of independent quality metrics, 0..100."""
    raw = (
        metrics.aeo_score * FINAL_SCORE_WEIGHTS["aeo_score"]
        + qa_score * FINAL_SCORE_WEIGHTS["qa_score"]
        + metrics.content_depth * FINAL_SCORE_WEIGHTS["content_depth"]
        + metrics.heading_structure * FINAL_SCORE_WEIGHTS["heading_structure"]
    )
    return max(0, min(100, round(raw)))


class PhaseOrchestrator:
    """Runs a single optimization job with fail-fast semantics.

    Each call to ``run`` owns exactly one target for its duration. Hard
    failures abort the remaining phases and are reported through the failure
    result; soft warnings from optional phases are logged and recorded on the
    job without changing control flow.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        store: JobStateStore,
        collaborators: Collaborators,
        reporter: ProgressReporter | None = None,
        token: CancellationToken | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.store = store
        self.collaborators = collaborators
        self.reporter = reporter
        self.token = token
        self._clock = clock

    async def run(
        self,
        target_override: str | None = None,
        *,
        silent: bool = False,
        options: JobOptions | None = None,
    ) -> JobResult:
        """Optimize one item and return its terminal result."""
        target_override = (target_override or "").strip() or None
        options = options or JobOptions.from_settings(self.settings)
        job_log = JobLogger(logger, self.store, silent=silent)
        start_time = self._clock()
        started = time.monotonic()

        if self.reporter is not None:
            self.reporter.start(target_override or "", start_time=start_time)

        try:
            self._check_configuration()
            target_id = self._resolve_target(target_override)
        except (ConfigurationError, TargetSelectionError) as exc:
            return self._fail_preflight(target_override, str(exc), job_log)

        job_log.bind(target_id)
        try:
            self.store.claim(target_id, start_time=start_time)
        except JobAlreadyRunningError as exc:
            return self._fail_preflight(target_id, str(exc), job_log, record=False)

        self.store.update_page(target_id, status="analyzing")
        if self.reporter is not None:
            self.reporter.update(current_url=target_id)

        try:
            return await self._execute(target_id, options, job_log, started)
        except asyncio.CancelledError:
            cancelled_by_token = self.token is not None and self.token.cancelled
            if cancelled_by_token:
                message = str(CancellationError(self.token.reason or "User cancelled"))
            else:
                message = "Job interrupted"
            self._record_failure(target_id, message, job_log, started)
            if not cancelled_by_token:
                raise
            task = asyncio.current_task()
            if task is not None:
                task.uncancel()
            return JobResult.failure(message)
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            self._record_failure(target_id, message, job_log, started)
            return JobResult.failure(message)

    def _check_configuration(self) -> None:
        if not self.settings.has_ai_credentials:
            raise ConfigurationError("No AI API key configured")
        if not self.settings.wordpress_url:
            raise ConfigurationError("WordPress URL not configured")
        if not self.settings.has_wordpress_credentials:
            raise ConfigurationError("WordPress credentials not configured")

    def _resolve_target(self, target_override: str | None) -> str:
        if target_override:
            return self.store.ensure_page(target_override).id
        candidate = self.store.select_candidate()
        if candidate is None:
            raise TargetSelectionError()
        return candidate

    async def _execute(
        self,
        target_id: str,
        options: JobOptions,
        job_log: JobLogger,
        started: float,
    ) -> JobResult:
        page = self.store.get_page(target_id)
        topic = page.title if page is not None else target_id
        slug = page.slug if page is not None else ""

        async with self.collaborators.content_store() as content_store:
            self._enter(target_id, Phase.RESOLVING_POST)
            job_log.info("Resolving existing post")
            entity_id, preservation, original_content, topic = await self._resolve_existing(
                content_store, target_id, topic, options, job_log
            )

            if options.keyword_override and len(options.keyword_override.strip()) > 3:
                topic = options.keyword_override.strip()
                self.store.update_page(target_id, title=topic, target_keyword=topic)
            self._checkpoint()

            self._enter(target_id, Phase.ANALYZING_EXISTING)
            existing_analysis = None
            if original_content:
                existing_analysis = self.collaborators.scorer.compute_metrics(
                    original_content, topic, slug
                ).to_dict()
            job_log.info(
                "Optimizing topic",
                topic=topic[:80],
                provider=self.settings.ai_provider,
                model=self.settings.get_ai_model(),
            )

            entity_gap_data = await self._run_entity_gap_analysis(
                target_id, topic, original_content, job_log
            )
            neuron_data = await self._run_neuron_analysis(target_id, topic, job_log)
            self._checkpoint()

            self._enter(target_id, Phase.INTERNAL_LINKING)
            internal_links = build_internal_link_targets(
                self.store.list_pages(),
                exclude_id=target_id,
                limit=self.settings.internal_link_limit,
                min_title_length=self.settings.internal_link_min_title_length,
            )
            job_log.info("Internal link targets selected", count=len(internal_links))
            self._checkpoint()

            synthesis = await self._synthesize(
                target_id,
                topic,
                options,
                internal_links,
                entity_gap_data,
                neuron_data,
                existing_analysis,
                job_log,
            )
            content = synthesis.content
            self._checkpoint()

            self._enter(target_id, Phase.QA_VALIDATION)
            metrics = self.collaborators.scorer.compute_metrics(
                content, synthesis.title or topic, synthesis.slug or slug
            )
            if self.reporter is not None:
                self.reporter.update(word_count=metrics.word_count)
            signals: dict[str, Any] = {
                "target_keyword": topic,
                "entity_gap_data": entity_gap_data,
                "neuron_data": neuron_data,
                "internal_links": [link.url for link in internal_links],
                "target_word_count": self.settings.target_word_count,
            }
            qa_result = self.collaborators.scorer.score_content(content, signals)
            self.store.update_job(target_id, qa_details=qa_result.details)
            job_log.info("QA validation finished", qa_score=qa_result.score, words=metrics.word_count)
            self._checkpoint()

            self._enter(target_id, Phase.PUBLISHING)
            published = await self._publish(
                content_store, entity_id, synthesis, topic, preservation, options, job_log
            )
            self.store.update_job(target_id, entity_id=published.id)
            await self._update_metadata(content_store, target_id, published.id, synthesis, topic, job_log)
            self._checkpoint()

        return self._complete(target_id, metrics, qa_result.score, published, started, job_log)

    async def _resolve_existing(
        self,
        content_store: ContentStore,
        target_id: str,
        topic: str,
        options: JobOptions,
        job_log: JobLogger,
    ) -> tuple[int | None, PreservationRecord | None, str, str]:
        try:
            entity_id = await content_store.resolve_entity(target_id)
        except EntityNotFoundError:
            entity_id = None

        if entity_id is None:
            self._soft_warning(
                target_id,
                ResolutionSoftWarning("Could not find existing post, will create new"),
                job_log,
            )
            return None, None, "", topic

        job_log.info("Found existing post", entity_id=entity_id)
        try:
            remote = await content_store.fetch_entity_with_assets(entity_id)
        except Exception as exc:
            self._soft_warning(
                target_id,
                ResolutionSoftWarning(f"Could not fetch existing content: {exc}"),
                job_log,
            )
            self.store.update_job(target_id, entity_id=entity_id)
            return entity_id, None, "", topic

        preservation = PreservationRecord(
            original_slug=remote.slug,
            original_link=remote.link,
            categories=tuple(remote.categories),
            tags=tuple(remote.tags),
            featured_media_id=remote.featured_media_id if options.preserve_featured_image else None,
        )
        self.store.update_job(target_id, entity_id=entity_id, preservation=preservation)

        title = (remote.title or "").strip()
        if len(title) > 3:
            topic = title
            self.store.update_page(target_id, title=topic)
        return entity_id, preservation, remote.body or "", topic

    async def _run_entity_gap_analysis(
        self,
        target_id: str,
        topic: str,
        original_content: str,
        job_log: JobLogger,
    ) -> dict[str, Any] | None:
        api_key = self.settings.serper_api_key
        if not api_key:
            return None

        self._enter(target_id, Phase.ENTITY_GAP_ANALYSIS)
        analyzer = self.collaborators.entity_gap_analyzer
        if analyzer is None:
            self._soft_warning(
                target_id,
                AnalysisSoftWarning("Entity analysis skipped: no analyzer available"),
                job_log,
            )
            return None
        try:
            data = await analyzer.analyze(
                topic,
                api_key=api_key,
                existing_content=original_content or None,
            )
        except Exception as exc:
            self._soft_warning(target_id, AnalysisSoftWarning(f"Entity analysis failed: {exc}"), job_log)
            return None

        self.store.update_job(target_id, entity_gap_data=data)
        job_log.info(
            "Entity gap analysis finished",
            missing_entities=len(data.get("missing_entities") or []),
            paa_questions=len(data.get("paa_questions") or []),
        )
        return data

    async def _run_neuron_analysis(
        self,
        target_id: str,
        topic: str,
        job_log: JobLogger,
    ) -> dict[str, Any] | None:
        if not self.settings.has_neuron_config:
            return None

        self._enter(target_id, Phase.NEURON_ANALYSIS)
        analyzer = self.collaborators.neuron_analyzer
        if analyzer is None:
            self._soft_warning(
                target_id,
                AnalysisSoftWarning("NeuronWriter skipped: no analyzer available"),
                job_log,
            )
            return None
        try:
            data = await analyzer.analyze(
                topic,
                api_key=self.settings.neuronwriter_api_key or "",
                project_id=self.settings.neuronwriter_project or "",
            )
        except Exception as exc:
            self._soft_warning(target_id, AnalysisSoftWarning(f"NeuronWriter failed: {exc}"), job_log)
            return None

        if data:
            self.store.update_job(target_id, neuron_data=data)
            job_log.info("NeuronWriter analysis finished", terms=len(data.get("terms") or []))
        return data or None

    async def _synthesize(
        self,
        target_id: str,
        topic: str,
        options: JobOptions,
        internal_links: list[InternalLinkTarget],
        entity_gap_data: dict[str, Any] | None,
        neuron_data: dict[str, Any] | None,
        existing_analysis: dict[str, Any] | None,
        job_log: JobLogger,
    ) -> SynthesisResult:
        self._enter(target_id, Phase.OUTLINE_GENERATION)
        request = SynthesisRequest(
            topic=topic,
            prompt=f'Create comprehensive content about "{topic}"',
            mode=options.optimization_mode,
            model=self.settings.get_ai_model(),
            provider=self.settings.ai_provider,
            site_context=self.settings.site_context(),
            target_keyword=topic,
            target_words=self.settings.target_word_count,
            internal_links=internal_links,
            entity_gap_data=entity_gap_data,
            neuron_data=neuron_data,
            existing_analysis=existing_analysis,
            validated_references=(entity_gap_data or {}).get("validated_references"),
        )

        def on_stage_progress(stage: str, counters: Mapping[str, int]) -> None:
            phase = phase_for_stage(stage)
            if phase is None:
                return
            self._enter(
                target_id,
                phase,
                sections_completed=counters.get("sections_completed"),
                total_sections=counters.get("total_sections"),
            )

        try:
            result = await self.collaborators.synthesizer.synthesize(request, on_stage_progress)
        except OptimizerError:
            raise
        except Exception as exc:
            raise GenerationError(f"Content generation failed: {exc}") from exc

        if result is None or len(result.content or "") < self.settings.min_content_length:
            raise GenerationError(NO_CONTENT_ERROR)
        job_log.info("Content generated", characters=len(result.content))
        return result

    async def _publish(
        self,
        content_store: ContentStore,
        entity_id: int | None,
        synthesis: SynthesisResult,
        topic: str,
        preservation: PreservationRecord | None,
        options: JobOptions,
        job_log: JobLogger,
    ) -> PublishedEntity:
        payload: dict[str, Any] = {
            "title": synthesis.title or topic,
            "content": synthesis.content,
            "excerpt": synthesis.excerpt or "",
            "status": "publish" if options.publish_mode == "autopublish" else "draft",
        }

        try:
            if entity_id is not None:
                if preservation is not None:
                    if options.preserve_categories and preservation.categories:
                        payload["categories"] = list(preservation.categories)
                    if options.preserve_tags and preservation.tags:
                        payload["tags"] = list(preservation.tags)
                    if options.preserve_featured_image and preservation.featured_media_id:
                        payload["featured_media"] = preservation.featured_media_id
                flags = PreservationFlags(
                    preserve_featured_image=options.preserve_featured_image,
                    preserve_slug=True,
                    preserve_categories=options.preserve_categories,
                    preserve_tags=options.preserve_tags,
                )
                job_log.info("Updating existing post", entity_id=entity_id)
                published = await content_store.update_entity(entity_id, payload, flags)
            else:
                payload["slug"] = sanitize_slug(synthesis.slug or "") or sanitize_slug(topic)
                job_log.info("Creating new post", slug=payload["slug"])
                published = await content_store.create_entity(payload)
        except PublishError:
            raise
        except Exception as exc:
            raise PublishError(f"Publish failed: {exc}") from exc

        job_log.info("Post published", entity_id=published.id, link=published.link)
        return published

    async def _update_metadata(
        self,
        content_store: ContentStore,
        target_id: str,
        entity_id: int,
        synthesis: SynthesisResult,
        topic: str,
        job_log: JobLogger,
    ) -> None:
        try:
            await content_store.update_entity_metadata(
                entity_id,
                title=synthesis.title or topic,
                description=synthesis.meta_description or synthesis.excerpt or "",
                focus_keyword=topic,
            )
        except Exception as exc:
            self._soft_warning(target_id, MetadataSoftWarning(f"SEO meta update failed: {exc}"), job_log)

    def _complete(
        self,
        target_id: str,
        metrics: SeoMetrics,
        qa_score: int,
        published: PublishedEntity,
        started: float,
        job_log: JobLogger,
    ) -> JobResult:
        final_score = blend_final_score(metrics, qa_score)
        processing_time = time.monotonic() - started
        now = self._clock()

        self.store.record_improvement(
            target_id,
            ImprovementEntry(
                timestamp=now,
                score=final_score,
                word_count=metrics.word_count,
                qa_score=qa_score,
                action=f"v{self.settings.app_version}",
            ),
            status="analyzed",
            health_score=final_score,
            word_count=metrics.word_count,
            wp_post_id=published.id,
            last_published_at=now,
        )
        self.store.record_completion(
            word_count=metrics.word_count,
            processing_time=processing_time,
            improved=final_score >= self.settings.improved_score_threshold,
        )
        self.store.complete(
            target_id,
            score=final_score,
            word_count=metrics.word_count,
            processing_time=processing_time,
        )
        if self.reporter is not None:
            self.reporter.finish(Phase.COMPLETED, word_count=metrics.word_count)

        job_log.info(
            "Optimization succeeded",
            score=final_score,
            words=metrics.word_count,
            processing_time=round(processing_time, 2),
        )
        return JobResult(success=True, score=final_score, word_count=metrics.word_count)

    def _enter(self, target_id: str, phase: Phase, **fields: Any) -> None:
        self.store.advance_phase(target_id, phase)
        if self.reporter is not None:
            self.reporter.update(phase, **fields)

    def _checkpoint(self) -> None:
        if self.token is not None:
            self.token.raise_if_cancelled()

    def _soft_warning(self, target_id: str, warning: SoftWarning, job_log: JobLogger) -> None:
        self.store.add_warning(target_id, warning.message)
        job_log.warning(warning.message, warning_type=type(warning).__name__)

    def _record_failure(
        self,
        target_id: str,
        message: str,
        job_log: JobLogger,
        started: float,
    ) -> None:
        processing_time = time.monotonic() - started
        self.store.fail(target_id, message, processing_time=processing_time)
        self.store.update_page(target_id, status="error")
        if self.reporter is not None:
            self.reporter.finish(Phase.FAILED)
        job_log.error(f"FAILED: {message}")

    def _fail_preflight(
        self,
        target_id: str | None,
        message: str,
        job_log: JobLogger,
        *,
        record: bool = True,
    ) -> JobResult:
        if target_id:
            job_log.bind(target_id)
            current = self.store.get_job(target_id)
            # Only fresh entries take the failure; a previous terminal attempt is left as is
            if record and (current is None or current.status == "idle"):
                self.store.fail(target_id, message)
        job_log.error(message)
        if self.reporter is not None:
            self.reporter.finish(Phase.FAILED)
        return JobResult.failure(message)

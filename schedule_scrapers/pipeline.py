"""
End-to-end extraction: target -> strategy -> workers -> AI -> validation.

`extract(url, kind)` is the single entry point the catalog ingestion side
calls. It always returns an AggregateResult; failures are described in its
diagnostics rather than raised.
"""
import logging
import threading
from typing import List, Optional, Union

from schedule_scrapers.ai.gemini_client import GeminiClient
from schedule_scrapers.ai.normalizer import AINormalizer, NormalizationContext
from schedule_scrapers.browser.extractor import BrowserExtractor
from schedule_scrapers.config import Settings, settings as global_settings
from schedule_scrapers.data_quality.location_enrichment import LocationEnricher
from schedule_scrapers.data_quality.time_validation import TimeDayValidator
from schedule_scrapers.models import AggregateResult, ExtractionTarget, ScheduleRecordCandidate, TargetKind
from schedule_scrapers.session.broker import CredentialBroker
from schedule_scrapers.session.manager import SessionManager
from schedule_scrapers.session.store import SessionStore
from schedule_scrapers.strategies.browser_strategy import AuthenticatedBrowserStrategy, DirectPhotoStrategy
from schedule_scrapers.strategies.coordinator import StrategyCoordinator
from schedule_scrapers.strategies.graph_api import GraphApiStrategy
from schedule_scrapers.strategies.meta_tags import PublicMetaTagStrategy
from schedule_scrapers.workers.photo_worker import PhotoWorker
from schedule_scrapers.workers.pool import WorkerPool

logger = logging.getLogger(__name__)


class SchedulePipeline:
    def __init__(
        self,
        coordinator: StrategyCoordinator,
        normalizer: AINormalizer,
        validator: TimeDayValidator,
        pool_factory,
        enricher: Optional[LocationEnricher] = None,
    ):
        """
        pool_factory(target) -> WorkerPool builds a pool for one extraction, so
        per-target details (source kind, host hint) reach the workers.
        """
        self.coordinator = coordinator
        self.normalizer = normalizer
        self.validator = validator
        self.pool_factory = pool_factory
        self.enricher = enricher

    @classmethod
    def from_settings(cls, app_settings: Optional[Settings] = None, broker: Optional[CredentialBroker] = None) -> 'SchedulePipeline':
        cfg = app_settings or global_settings
        store = SessionStore(cfg.session)
        broker = broker or CredentialBroker(cfg.broker)
        extractor = BrowserExtractor(cfg.browser)
        session_manager = SessionManager(store, broker, login=extractor.login, session_settings=cfg.session)

        coordinator = StrategyCoordinator(
            strategies=[
                GraphApiStrategy(cfg.graph_api),
                AuthenticatedBrowserStrategy(extractor),
                PublicMetaTagStrategy(cfg.coordinator),
                DirectPhotoStrategy(),
            ],
            session_manager=session_manager,
            coordinator_settings=cfg.coordinator,
        )
        gemini = GeminiClient(cfg.gemini)
        normalizer = AINormalizer(gemini, cfg.gemini)

        def resolve_with_session(url: str) -> str:
            return extractor.resolve_photo(url, store.current())

        def pool_factory(target: ExtractionTarget) -> WorkerPool:
            worker = PhotoWorker(normalizer, page_resolver=resolve_with_session, source_kind=target.kind,
                                 pool_settings=cfg.worker_pool)
            return WorkerPool(worker, cfg.worker_pool)

        enricher = LocationEnricher(gemini, cfg.enrichment) if cfg.enrichment.enabled else None
        return cls(coordinator, normalizer, TimeDayValidator(), pool_factory, enricher)

    def extract(self, url: str, kind: Union[TargetKind, str]) -> AggregateResult:
        target = ExtractionTarget(url=url, kind=TargetKind(kind))
        logger.info(f"Extracting {target.kind.value} {target.url}")

        outcome = self.coordinator.extract(target)
        if not outcome.success:
            logger.error(f"Extraction failed for {target.url} ({outcome.error_kind}): {outcome.diagnostics}")
            return AggregateResult(target=target, success=False, diagnostics=outcome.diagnostics, error_kind=outcome.error_kind)

        result = outcome.result
        diagnostics = list(outcome.diagnostics)
        diagnostics.extend(f"{result.strategy_name}: {d}" for d in result.diagnostics)
        candidates: List[ScheduleRecordCandidate] = []

        work_results = []
        if result.sub_items:
            work_results = self.pool_factory(target).process_all(result.sub_items)
            for work_result in work_results:
                candidates.extend(work_result.candidates)
                if work_result.error:
                    diagnostics.append(f"item {work_result.index} ({work_result.input_url}): {work_result.error}")
            if result.raw_content:
                diagnostics.append("page text skipped: photo sub-items were processed instead")
        elif result.raw_content or result.screenshot:
            context = NormalizationContext(source_url=target.url, source_kind=target.kind, field_origin=result.field_origin)
            if result.raw_content:
                normalized = self.normalizer.normalize(result.raw_content, context)
            else:
                normalized = self.normalizer.normalize(result.screenshot, context, mime_type="image/png")
            candidates.extend(normalized.candidates)
            diagnostics.extend(f"normalizer: {d}" for d in normalized.diagnostics)

        if self.enricher and candidates:
            candidates, enrichment_diagnostics = self.enricher.enrich(candidates)
            diagnostics.extend(enrichment_diagnostics)

        records, summary = self.validator.validate_all(candidates)
        logger.info(f"Extraction of {target.url} via {result.strategy_name}: {len(records)} record(s).")
        return AggregateResult(
            target=target,
            success=True,
            strategy_name=result.strategy_name,
            records=records,
            work_results=work_results,
            diagnostics=diagnostics,
            validation_summary=summary,
        )


_default_pipeline: Optional[SchedulePipeline] = None
_default_lock = threading.Lock()


def get_pipeline() -> SchedulePipeline:
    global _default_pipeline
    with _default_lock:
        if _default_pipeline is None:
            _default_pipeline = SchedulePipeline.from_settings()
        return _default_pipeline


def extract(url: str, target_kind: Union[TargetKind, str]) -> AggregateResult:
    """Extract schedule records from one URL with the default, settings-driven pipeline."""
    return get_pipeline().extract(url, target_kind)

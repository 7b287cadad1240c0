"""
Composition root for the measurement pipeline.

Routes depend on `get_repository` and build the rest from it; Celery tasks
call these directly.
Every setting a service uses is passed in explicitly here. Constructor
defaults elsewhere mirror the same settings so a service can be built on its
own in a shell or a test; nothing below this module reads settings at call time.
"""
from app.platform.config import settings
from app.platform.db.session import SessionLocal
from app.features.performance.services.discovery.product_discovery import HtmlFetcher, ProductDiscoveryService
from app.features.performance.services.measurement.executor import MeasurementExecutor
from app.features.performance.services.measurement.pagespeed import PageSpeedClient
from app.features.performance.services.orchestration.batch import BatchOrchestrator
from app.features.performance.services.orchestration.job_tracker import JobStatusTracker
from app.features.performance.services.persistence.repository import (
    PerformanceRepository,
    SqlAlchemyPerformanceRepository,
)
from app.features.performance.services.third_party.script_processor import ThirdPartyScriptProcessor


def get_repository() -> PerformanceRepository:
    return SqlAlchemyPerformanceRepository(SessionLocal)


def get_job_tracker(repository: PerformanceRepository = None) -> JobStatusTracker:
    return JobStatusTracker(
        repository or get_repository(),
        stuck_threshold_minutes=settings.STUCK_JOB_THRESHOLD_MINUTES,
        pending_threshold_minutes=settings.PENDING_JOB_THRESHOLD_MINUTES,
        expected_batch_seconds=settings.EXPECTED_BATCH_SECONDS,
    )


def get_script_processor(repository: PerformanceRepository = None) -> ThirdPartyScriptProcessor:
    return ThirdPartyScriptProcessor(repository or get_repository())


def get_orchestrator(repository: PerformanceRepository = None) -> BatchOrchestrator:
    repository = repository or get_repository()

    provider = PageSpeedClient(
        api_url=settings.PAGESPEED_API_URL,
        api_key=settings.PAGESPEED_API_KEY,
        timeout=settings.PAGESPEED_TIMEOUT_SECONDS,
    )
    fetcher = HtmlFetcher(
        timeout=settings.DISCOVERY_TIMEOUT_SECONDS,
        user_agent=settings.DISCOVERY_USER_AGENT,
        max_redirects=settings.DISCOVERY_MAX_REDIRECTS,
    )

    return BatchOrchestrator(
        repository=repository,
        executor=MeasurementExecutor(provider, pacing_seconds=settings.RUN_PACING_SECONDS),
        discovery=ProductDiscoveryService(fetcher),
        script_processor=ThirdPartyScriptProcessor(repository),
        tracker=get_job_tracker(repository),
        runs_per_combination=settings.RUNS_PER_COMBINATION,
    )

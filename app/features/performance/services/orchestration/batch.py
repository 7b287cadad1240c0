"""
Comprehensive measurement batches.

One batch measures every (page type, device type) combination of a site's
test plan several times, stores every raw run, then stores one median row per
combination that produced at least one successful run.
"""
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from app.platform.config import settings
from app.features.performance.exceptions import SiteNotFoundError
from app.features.performance.models.performance_test_run import PageType, DeviceType
from app.features.performance.schemas.metrics import MetricVector
from app.features.performance.schemas.test_plan import PageTarget, TestPlan
from app.features.performance.services.discovery.product_discovery import ProductDiscoveryService
from app.features.performance.services.measurement.executor import MeasurementExecutor
from app.features.performance.services.orchestration.job_tracker import JobStatusTracker
from app.features.performance.services.persistence.repository import PerformanceRepository
from app.features.performance.services.third_party.script_processor import ThirdPartyScriptProcessor
from app.features.performance.services.utils.median import aggregate, group_runs, round_for_storage

logger = logging.getLogger(__name__)

GroupKey = Tuple[str, str]


class BatchOrchestrator:

    def __init__(
        self,
        repository: PerformanceRepository,
        executor: MeasurementExecutor,
        discovery: ProductDiscoveryService,
        script_processor: ThirdPartyScriptProcessor,
        tracker: JobStatusTracker,
        runs_per_combination: int = settings.RUNS_PER_COMBINATION,
    ):
        self.repository = repository
        self.executor = executor
        self.discovery = discovery
        self.script_processor = script_processor
        self.tracker = tracker
        self.runs_per_combination = runs_per_combination

    # Trigger-in

    def start_batch(self, site_id: str) -> str:
        """Queue a job for `site_id` and return its id. Running it is the caller's business."""
        if not self.repository.get_site(site_id):
            raise SiteNotFoundError(site_id)
        job = self.tracker.create_job(site_id)
        return job.id

    # Planning

    def build_plan(self, site) -> TestPlan:
        """
        Homepage always; category defaults to `/collections/all`; product is
        discovered when not configured and dropped when discovery finds nothing.
        """
        base = site.url.rstrip("/")
        wanted = set(site.page_types or [p.value for p in PageType])

        pages = [PageTarget(page_type=PageType.homepage, url=site.url)]

        if PageType.category.value in wanted:
            pages.append(PageTarget(
                page_type=PageType.category,
                url=site.category_url or f"{base}/collections/all",
            ))

        if PageType.product.value in wanted:
            product_url = site.product_url
            if not product_url:
                logger.info(f"No product URL configured for {site.name}, attempting discovery")
                product_url = self.discovery.discover_product_url(site.url)
            if product_url:
                pages.append(PageTarget(page_type=PageType.product, url=product_url))
            else:
                logger.warning(f"Skipping product page for {site.name}: no product URL found")

        device_types = [DeviceType(d) for d in (site.device_types or [d.value for d in DeviceType])]

        return TestPlan(
            pages=pages,
            device_types=device_types,
            runs_per_combination=site.runs_per_combination or self.runs_per_combination,
        )

    # Execution

    def run_batch(self, site_id: str, job_id: Optional[str] = None) -> str:
        """
        Measure, store and aggregate every combination of the site's plan.

        Single-run failures and empty groups are tolerated; anything else marks
        the job failed and is re-raised. Returns the batch id.
        """
        batch_id = str(uuid.uuid4())
        logger.info(f"[{batch_id}] Starting comprehensive test batch for site {site_id}")

        started = False
        try:
            if job_id:
                self.tracker.start(job_id, batch_id=batch_id)
                started = True

            site = self.repository.get_site(site_id)
            if not site:
                raise SiteNotFoundError(site_id)

            logger.info(f"[{batch_id}] Testing site: {site.name}")
            plan = self.build_plan(site)

            raw_runs, diagnostics = self._measure(site, plan, batch_id)
            succeeded = self._store_medians(site, raw_runs, diagnostics, batch_id)

            attempted = len(plan.pages) * len(plan.device_types)
            if job_id:
                self.tracker.complete(job_id, groups_attempted=attempted, groups_succeeded=succeeded)

            logger.info(f"[{batch_id}] Batch completed: {succeeded}/{attempted} groups aggregated")
            return batch_id

        except Exception as e:
            logger.error(f"[{batch_id}] Batch failed: {e}", exc_info=True)
            if started:
                self._mark_failed(job_id, e)
            raise

    def _measure(self, site, plan: TestPlan, batch_id: str) -> Tuple[List[Any], Dict[GroupKey, Dict[str, Any]]]:
        raw_runs: List[Any] = []
        diagnostics: Dict[GroupKey, Dict[str, Any]] = {}

        for page, device_type in plan.combinations():
            page_type = page.page_type.value
            device = device_type.value
            logger.info(
                f"[{batch_id}] Testing {page_type} page {page.url} "
                f"({device}, {plan.runs_per_combination} runs)"
            )

            results = self.executor.run_many(page.url, device, plan.runs_per_combination)

            for run_number, vector in enumerate(results, start=1):
                raw_runs.append(self._store_raw_run(site.id, batch_id, page_type, page.url, device, run_number, vector))
                if vector.diagnostics and (page_type, device) not in diagnostics:
                    diagnostics[(page_type, device)] = vector.diagnostics

            if not results:
                logger.warning(f"[{batch_id}] All runs failed for {page_type} ({device}); group skipped")

        return raw_runs, diagnostics

    def _store_raw_run(
        self,
        site_id: str,
        batch_id: str,
        page_type: str,
        page_url: str,
        device_type: str,
        run_number: int,
        vector: MetricVector,
    ):
        return self.repository.create_raw_run(
            site_id=site_id,
            batch_id=batch_id,
            page_type=page_type,
            page_url=page_url,
            device_type=device_type,
            run_number=run_number,
            diagnostics=vector.diagnostics or None,
            **vector.metric_values(),
        )

    def _store_medians(
        self,
        site,
        raw_runs: List[Any],
        diagnostics: Dict[GroupKey, Dict[str, Any]],
        batch_id: str,
    ) -> int:
        stored = 0
        for (page_type, device_type), runs in group_runs(raw_runs).items():
            if not runs:
                continue

            fields = round_for_storage(aggregate(runs))
            metric = self.repository.create_median_metric(
                site_id=site.id,
                batch_id=batch_id,
                page_type=page_type,
                page_url=runs[0].page_url,
                device_type=device_type,
                timestamp=datetime.utcnow(),
                run_count=len(runs),
                **fields,
            )
            stored += 1
            logger.info(
                f"[{batch_id}] Saved median metrics for {site.name} {page_type} ({device_type}): "
                f"Performance {fields.get('performance')} from {len(runs)} runs"
            )

            payload = diagnostics.get((page_type, device_type))
            if payload:
                self._process_scripts(site, payload, metric.id, page_type, runs[0].page_url, device_type, batch_id)

        return stored

    def _process_scripts(self, site, payload, metric_id, page_type, page_url, device_type, batch_id):
        try:
            self.script_processor.process_diagnostics(
                site.id,
                site.url,
                payload,
                metric_id=metric_id,
                page_type=page_type,
                page_url=page_url,
                device_type=device_type,
            )
        except Exception as e:
            logger.error(
                f"[{batch_id}] Failed to process third-party scripts for {page_type} ({device_type}): {e}",
                exc_info=True,
            )

    def _mark_failed(self, job_id: str, error: Exception) -> None:
        try:
            self.tracker.fail(job_id, str(error) or type(error).__name__)
        except Exception as e:
            logger.error(f"[{job_id}] Could not mark job as failed: {e}")

    # Single page, single device

    def run_simple(self, site_id: str, device_type: str, job_id: Optional[str] = None) -> str:
        """One homepage run on one device; same job transitions as `run_batch`."""
        batch_id = str(uuid.uuid4())

        started = False
        try:
            if job_id:
                self.tracker.start(job_id, batch_id=batch_id)
                started = True

            device = DeviceType(device_type).value

            site = self.repository.get_site(site_id)
            if not site:
                raise SiteNotFoundError(site_id)

            logger.info(f"[{batch_id}] Running single PageSpeed test for {site.name} ({device})")
            vector = self.executor.run_once(site.url, device)

            run = self._store_raw_run(site.id, batch_id, PageType.homepage.value, site.url, device, 1, vector)
            diagnostics = {(PageType.homepage.value, device): vector.diagnostics} if vector.diagnostics else {}
            self._store_medians(site, [run], diagnostics, batch_id)

            if job_id:
                self.tracker.complete(job_id, groups_attempted=1, groups_succeeded=1)
            return batch_id

        except Exception as e:
            logger.error(f"[{batch_id}] Single collection failed: {e}", exc_info=True)
            if started:
                self._mark_failed(job_id, e)
            raise

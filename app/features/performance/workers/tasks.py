"""
Celery tasks driving measurement batches.

`schedule_all_sites` and `sweep_stuck_jobs` run from Celery Beat; the two
collection tasks are enqueued by the scheduler and by the collect endpoint.
"""
import logging
from datetime import datetime
from typing import Optional

from app.platform.celery_app import celery_app
from app.features.performance.dependencies.services import (
    get_job_tracker,
    get_orchestrator,
    get_repository,
)

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    name="app.features.performance.workers.tasks.run_comprehensive_collection",
)
def run_comprehensive_collection(self, site_id: str, job_id: Optional[str] = None) -> dict:
    """
    Run a full batch (all pages x devices x runs) for one site.

    Failures are already recorded on the job by the orchestrator; the
    exception is re-raised so Celery marks the task failed too.
    """
    logger.info(f"[{job_id}] Comprehensive collection for site {site_id} (task {self.request.id})")

    batch_id = get_orchestrator().run_batch(site_id, job_id=job_id)

    logger.info(f"[{job_id}] Comprehensive collection finished, batch {batch_id}")
    return {"site_id": site_id, "job_id": job_id, "batch_id": batch_id}


@celery_app.task(
    bind=True,
    name="app.features.performance.workers.tasks.run_single_collection",
)
def run_single_collection(self, site_id: str, device_type: str, job_id: Optional[str] = None) -> dict:
    logger.info(f"[{job_id}] Single collection for site {site_id} ({device_type})")

    batch_id = get_orchestrator().run_simple(site_id, device_type, job_id=job_id)

    return {"site_id": site_id, "job_id": job_id, "batch_id": batch_id}


@celery_app.task(
    bind=True,
    name="app.features.performance.workers.tasks.schedule_all_sites",
)
def schedule_all_sites(self) -> dict:
    """
    Queue a batch for every monitored site without a queued or running job.

    Sites that already have a job in flight are skipped; one site failing to
    schedule does not stop the others.
    """
    repository = get_repository()
    orchestrator = get_orchestrator(repository)

    sites = repository.list_monitored_sites()
    logger.info(f"Scheduling performance collection for {len(sites)} sites")

    scheduled = []
    skipped = []
    for site in sites:
        if repository.find_active_job_for_site(site.id):
            logger.info(f"Collection already in progress for {site.name}, skipping")
            skipped.append(site.id)
            continue

        try:
            job_id = orchestrator.start_batch(site.id)
            result = run_comprehensive_collection.delay(site.id, job_id=job_id)
            repository.update_job(job_id, celery_task_id=result.id)
            scheduled.append(job_id)
        except Exception as e:
            logger.error(f"Error scheduling collection for site {site.id}: {e}", exc_info=True)

    return {
        "status": "success",
        "scheduled": len(scheduled),
        "skipped": len(skipped),
        "timestamp": datetime.utcnow().isoformat(),
    }


@celery_app.task(
    bind=True,
    name="app.features.performance.workers.tasks.sweep_stuck_jobs",
)
def sweep_stuck_jobs(self) -> dict:
    reports = get_job_tracker().sweep_stuck_jobs()
    return {
        "cleaned_jobs": len(reports),
        "jobs": [report.model_dump(mode="json") for report in reports],
    }

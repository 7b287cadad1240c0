from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.platform.config import settings
from app.platform.logger import get_logger
from app.platform.response import api_response
from app.platform.utils.rate_limit import rate_limit
from app.features.performance.dependencies.services import (
    get_job_tracker,
    get_orchestrator,
    get_repository,
    get_script_processor,
)
from app.features.performance.exceptions import SiteNotFoundError
from app.features.performance.schemas.job_status import CollectRequest, CollectResponse
from app.features.performance.services.persistence.repository import PerformanceRepository
from app.features.performance.workers.tasks import run_comprehensive_collection, run_single_collection

logger = get_logger(__name__)

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.post("/sites/{site_id}/collect", status_code=status.HTTP_202_ACCEPTED)
def collect_metrics(
    site_id: str,
    payload: CollectRequest = CollectRequest(),
    repository: PerformanceRepository = Depends(get_repository),
):
    """
    Queue a measurement batch for one site.

    Only one queued or running job per site is allowed at a time.
    """
    site = repository.get_site(site_id)
    if not site:
        raise SiteNotFoundError(site_id)

    if not site.monitoring_enabled:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Monitoring is disabled for this site",
        )

    if repository.find_active_job_for_site(site_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Collection already in progress",
        )

    job_id = get_orchestrator(repository).start_batch(site_id)

    if payload.comprehensive:
        result = run_comprehensive_collection.delay(site_id, job_id=job_id)
    else:
        device_type = (payload.device_type.value if payload.device_type else "mobile")
        result = run_single_collection.delay(site_id, device_type, job_id=job_id)

    repository.update_job(job_id, celery_task_id=result.id)
    logger.info(f"[{job_id}] Collection queued for {site.name} (comprehensive={payload.comprehensive})")

    return api_response(
        data=CollectResponse(
            job_id=job_id,
            site_id=site_id,
            status="queued",
            comprehensive=payload.comprehensive,
        ),
        message="Collection started",
        status_code=status.HTTP_202_ACCEPTED,
    )


@router.get("/job-status")
def get_job_status(
    request: Request,
    repository: PerformanceRepository = Depends(get_repository),
):
    """Per-site testing status for polling dashboards."""
    client = request.client.host if request.client else "anonymous"
    rate_limit(
        f"job-status:{client}",
        max_requests=settings.JOB_STATUS_RATE_LIMIT,
        window_seconds=settings.JOB_STATUS_RATE_WINDOW_SECONDS,
    )

    overview = get_job_tracker(repository).get_active_status()
    return api_response(data=overview, message="Job status retrieved")


@router.post("/cleanup-stuck-jobs")
def cleanup_stuck_jobs(repository: PerformanceRepository = Depends(get_repository)):
    reports = get_job_tracker(repository).sweep_stuck_jobs()
    logger.info(f"Cleaned up {len(reports)} stuck jobs")
    return api_response(
        data={"cleaned_jobs": len(reports), "jobs": reports},
        message=f"Cleaned up {len(reports)} stuck jobs",
    )


@router.get("/sites/{site_id}/third-party-scripts")
def get_third_party_scripts(
    site_id: str,
    repository: PerformanceRepository = Depends(get_repository),
):
    if not repository.get_site(site_id):
        raise SiteNotFoundError(site_id)

    summary = get_script_processor(repository).summarize_site(site_id)
    return api_response(data=summary, message="Third-party scripts retrieved")

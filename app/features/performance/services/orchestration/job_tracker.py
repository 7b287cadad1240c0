import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from app.platform.config import settings
from app.features.performance.exceptions import InvalidJobTransition, JobNotFoundError
from app.features.performance.models.scheduled_job import ScheduledJob, JobStatus, TERMINAL_STATUSES
from app.features.performance.schemas.job_status import (
    ActiveJob,
    JobStatusOverview,
    SiteJobStatus,
    StuckJobReport,
)
from app.features.performance.services.persistence.repository import PerformanceRepository

logger = logging.getLogger(__name__)

STUCK_JOB_ERROR = "Job stuck - cleaned up by system"

# Progress is an estimate; never claim a running batch is done
MAX_RUNNING_PROGRESS = 90

# (current, target) pairs the state machine allows
_TRANSITIONS = {
    (JobStatus.queued, JobStatus.running),
    (JobStatus.running, JobStatus.completed),
    (JobStatus.running, JobStatus.failed),
}


class JobStatusTracker:
    """
    Lifecycle of collection jobs and the "what is in flight" read model.

    queued -> running -> completed | failed. Anything else raises
    InvalidJobTransition; only the stuck-job sweep may fail a job out of band.
    """

    def __init__(
        self,
        repository: PerformanceRepository,
        stuck_threshold_minutes: int = settings.STUCK_JOB_THRESHOLD_MINUTES,
        pending_threshold_minutes: int = settings.PENDING_JOB_THRESHOLD_MINUTES,
        expected_batch_seconds: float = settings.EXPECTED_BATCH_SECONDS,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.repository = repository
        self.stuck_threshold = timedelta(minutes=stuck_threshold_minutes)
        self.pending_threshold = timedelta(minutes=pending_threshold_minutes)
        self.expected_batch_seconds = expected_batch_seconds
        self.clock = clock

    # State machine

    def create_job(self, site_id: str, job_type: str = "lighthouse") -> ScheduledJob:
        job = self.repository.create_job(site_id, job_type=job_type)
        logger.info(f"[{job.id}] Job queued for site {site_id}")
        return job

    def start(self, job_id: str, batch_id: Optional[str] = None) -> ScheduledJob:
        job = self._check_transition(job_id, JobStatus.running)
        fields = {"status": JobStatus.running, "started_at": self.clock()}
        if batch_id:
            fields["batch_id"] = batch_id
        logger.info(f"[{job_id}] Job running")
        return self.repository.update_job(job_id, expected_status=job.status, **fields)

    def complete(
        self,
        job_id: str,
        groups_attempted: Optional[int] = None,
        groups_succeeded: Optional[int] = None,
    ) -> ScheduledJob:
        job = self._check_transition(job_id, JobStatus.completed)
        logger.info(f"[{job_id}] Job completed ({groups_succeeded}/{groups_attempted} groups)")
        return self.repository.update_job(
            job_id,
            expected_status=job.status,
            status=JobStatus.completed,
            completed_at=self.clock(),
            groups_attempted=groups_attempted,
            groups_succeeded=groups_succeeded,
        )

    def fail(self, job_id: str, error: str) -> ScheduledJob:
        job = self._check_transition(job_id, JobStatus.failed)
        logger.error(f"[{job_id}] Job failed: {error}")
        return self.repository.update_job(
            job_id,
            expected_status=job.status,
            status=JobStatus.failed,
            completed_at=self.clock(),
            error=error or "Unknown error",
        )

    def _check_transition(self, job_id: str, target: JobStatus) -> ScheduledJob:
        job = self.repository.get_job(job_id)
        if not job:
            raise JobNotFoundError(job_id)
        if (job.status, target) not in _TRANSITIONS:
            raise InvalidJobTransition(job_id, job.status.value, target.value)
        return job

    # Read model

    def get_active_status(self) -> JobStatusOverview:
        now = self.clock()
        sites = self.repository.list_monitored_sites()

        jobs_by_site: Dict[str, List[ScheduledJob]] = {}
        for job in self.repository.list_active_jobs():
            jobs_by_site.setdefault(job.site_id, []).append(job)

        statuses = [
            self._site_status(site, jobs_by_site.get(site.id, []), now)
            for site in sites
        ]

        return JobStatusOverview(
            timestamp=now,
            sites=statuses,
            total_sites=len(sites),
            active_sites=sum(1 for s in statuses if s.status != "idle"),
        )

    def _site_status(self, site, jobs: List[ScheduledJob], now: datetime) -> SiteJobStatus:
        status = "idle"
        progress = 0

        running = [j for j in jobs if j.status == JobStatus.running]
        queued = [j for j in jobs if j.status == JobStatus.queued]

        if running:
            status = "testing"
            oldest = min(running, key=lambda j: j.started_at or now)
            if oldest.started_at:
                elapsed = (now - oldest.started_at).total_seconds()
                progress = self._estimate_progress(elapsed)
        elif queued:
            status = "pending"

        return SiteJobStatus(
            site_id=site.id,
            site_name=site.name,
            site_url=site.url,
            status=status,
            progress=progress,
            active_jobs=[
                ActiveJob(
                    job_type=job.job_type,
                    status=job.status.value,
                    scheduled_for=job.scheduled_for,
                    started_at=job.started_at,
                )
                for job in jobs
            ],
            job_count=len(jobs),
        )

    def _estimate_progress(self, elapsed_seconds: float) -> int:
        if self.expected_batch_seconds <= 0:
            return MAX_RUNNING_PROGRESS
        progress = int(elapsed_seconds / self.expected_batch_seconds * 100)
        return max(0, min(progress, MAX_RUNNING_PROGRESS))

    # Stuck-job remediation

    def sweep_stuck_jobs(self) -> List[StuckJobReport]:
        """
        Force-fail jobs whose host process most likely died.

        Running jobs older than the stuck threshold and queued jobs older than
        the pending threshold are marked failed with a fixed message.
        """
        now = self.clock()
        stuck = self.repository.list_stuck_jobs(
            running_before=now - self.stuck_threshold,
            queued_before=now - self.pending_threshold,
        )

        reports: List[StuckJobReport] = []
        for job in stuck:
            if job.status in TERMINAL_STATUSES:
                continue
            original_status = job.status.value
            site = self.repository.get_site(job.site_id)
            try:
                self.repository.update_job(
                    job.id,
                    expected_status=job.status,
                    status=JobStatus.failed,
                    completed_at=now,
                    error=STUCK_JOB_ERROR,
                )
            except InvalidJobTransition:
                logger.info(f"[{job.id}] Job finished while sweeping, left as is")
                continue
            reports.append(StuckJobReport(
                job_id=job.id,
                site_id=job.site_id,
                site_name=site.name if site else None,
                original_status=original_status,
                stuck_since=job.started_at or job.scheduled_for,
            ))
            logger.warning(f"[{job.id}] Cleaned up stuck {original_status} job for site {job.site_id}")

        if reports:
            logger.info(f"Cleaned up {len(reports)} stuck jobs")
        return reports

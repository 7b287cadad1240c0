"""
Persistence collaborator for the measurement pipeline.

The orchestrator and the job tracker only see `PerformanceRepository`; the
SQLAlchemy implementation opens one session per operation so every write is
committed by the time the call returns.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterator, List, Optional, Protocol

from sqlalchemy.orm import Session

from app.features.performance.exceptions import InvalidJobTransition
from app.features.sites.models.site import Site
from app.features.performance.models.scheduled_job import ScheduledJob, JobStatus, ACTIVE_STATUSES
from app.features.performance.models.performance_test_run import PerformanceTestRun
from app.features.performance.models.performance_metric import PerformanceMetric
from app.features.performance.models.third_party_script import ThirdPartyScript, ThirdPartyScriptDetection

logger = logging.getLogger(__name__)


class PerformanceRepository(Protocol):
    def get_site(self, site_id: str) -> Optional[Site]: ...

    def list_monitored_sites(self) -> List[Site]: ...

    def create_job(self, site_id: str, job_type: str = "lighthouse") -> ScheduledJob: ...

    def get_job(self, job_id: str) -> Optional[ScheduledJob]: ...

    def update_job(
        self, job_id: str, expected_status: Optional[JobStatus] = None, **fields: Any
    ) -> ScheduledJob: ...

    def list_active_jobs(self) -> List[ScheduledJob]: ...

    def find_active_job_for_site(self, site_id: str) -> Optional[ScheduledJob]: ...

    def list_stuck_jobs(self, running_before: datetime, queued_before: datetime) -> List[ScheduledJob]: ...

    def create_raw_run(self, **fields: Any) -> PerformanceTestRun: ...

    def create_median_metric(self, **fields: Any) -> PerformanceMetric: ...

    def find_or_create_script(self, url: str, **fields: Any) -> ThirdPartyScript: ...

    def create_script_detection(self, **fields: Any) -> ThirdPartyScriptDetection: ...

    def list_detections(self, site_id: str) -> List[ThirdPartyScriptDetection]: ...


class SqlAlchemyPerformanceRepository:

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # Sites

    def get_site(self, site_id: str) -> Optional[Site]:
        with self._session() as db:
            return db.query(Site).filter(Site.id == site_id).first()

    def list_monitored_sites(self) -> List[Site]:
        with self._session() as db:
            return (
                db.query(Site)
                .filter(Site.monitoring_enabled == True)  # noqa: E712
                .order_by(Site.name.asc())
                .all()
            )

    # Jobs

    def create_job(self, site_id: str, job_type: str = "lighthouse") -> ScheduledJob:
        with self._session() as db:
            job = ScheduledJob(
                site_id=site_id,
                job_type=job_type,
                status=JobStatus.queued,
                scheduled_for=datetime.utcnow(),
            )
            db.add(job)
            db.flush()
            return job

    def get_job(self, job_id: str) -> Optional[ScheduledJob]:
        with self._session() as db:
            return db.query(ScheduledJob).filter(ScheduledJob.id == job_id).first()

    def update_job(
        self, job_id: str, expected_status: Optional[JobStatus] = None, **fields: Any
    ) -> ScheduledJob:
        """
        Write `fields` onto a job. With `expected_status` the write is a single
        conditional UPDATE; a job that has moved on meanwhile raises
        InvalidJobTransition and is left untouched.
        """
        with self._session() as db:
            query = db.query(ScheduledJob).filter(ScheduledJob.id == job_id)
            if expected_status is None:
                job = query.first()
                if not job:
                    raise ValueError(f"Job {job_id} not found")
                for key, value in fields.items():
                    setattr(job, key, value)
                db.flush()
                return job

            updated = (
                query.filter(ScheduledJob.status == expected_status)
                .update(fields, synchronize_session=False)
            )
            job = query.populate_existing().first()
            if not job:
                raise ValueError(f"Job {job_id} not found")
            if not updated:
                raise InvalidJobTransition(job_id, job.status.value, fields.get("status", job.status).value)
            return job

    def list_active_jobs(self) -> List[ScheduledJob]:
        with self._session() as db:
            return (
                db.query(ScheduledJob)
                .filter(ScheduledJob.status.in_(ACTIVE_STATUSES))
                .order_by(ScheduledJob.scheduled_for.desc())
                .all()
            )

    def find_active_job_for_site(self, site_id: str) -> Optional[ScheduledJob]:
        with self._session() as db:
            return (
                db.query(ScheduledJob)
                .filter(
                    ScheduledJob.site_id == site_id,
                    ScheduledJob.status.in_(ACTIVE_STATUSES),
                )
                .order_by(ScheduledJob.scheduled_for.desc())
                .first()
            )

    def list_stuck_jobs(self, running_before: datetime, queued_before: datetime) -> List[ScheduledJob]:
        with self._session() as db:
            running = (
                db.query(ScheduledJob)
                .filter(
                    ScheduledJob.status == JobStatus.running,
                    ScheduledJob.started_at < running_before,
                )
                .all()
            )
            queued = (
                db.query(ScheduledJob)
                .filter(
                    ScheduledJob.status == JobStatus.queued,
                    ScheduledJob.scheduled_for < queued_before,
                )
                .all()
            )
            return running + queued

    # Measurements

    def create_raw_run(self, **fields: Any) -> PerformanceTestRun:
        with self._session() as db:
            run = PerformanceTestRun(**fields)
            db.add(run)
            db.flush()
            return run

    def create_median_metric(self, **fields: Any) -> PerformanceMetric:
        with self._session() as db:
            metric = PerformanceMetric(**fields)
            db.add(metric)
            db.flush()
            return metric

    # Third-party scripts

    def find_or_create_script(self, url: str, **fields: Any) -> ThirdPartyScript:
        with self._session() as db:
            script = db.query(ThirdPartyScript).filter(ThirdPartyScript.url == url).first()
            if script:
                return script
            script = ThirdPartyScript(url=url, **fields)
            db.add(script)
            db.flush()
            logger.info(f"Registered third-party script {script.vendor} ({url})")
            return script

    def create_script_detection(self, **fields: Any) -> ThirdPartyScriptDetection:
        with self._session() as db:
            detection = ThirdPartyScriptDetection(**fields)
            db.add(detection)
            db.flush()
            return detection

    def list_detections(self, site_id: str) -> List[ThirdPartyScriptDetection]:
        with self._session() as db:
            return (
                db.query(ThirdPartyScriptDetection)
                .filter(ThirdPartyScriptDetection.site_id == site_id)
                .order_by(ThirdPartyScriptDetection.detected_at.desc())
                .all()
            )

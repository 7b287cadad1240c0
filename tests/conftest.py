"""
Test configuration and fixtures for the performance monitor.

The database URL is pinned to a throwaway SQLite file before anything under
`app` is imported. Service-level tests run against `FakeRepository`, an
in-memory stand-in for the persistence collaborator.
"""

import os
import tempfile
from datetime import datetime
from typing import Any, Dict, Generator, List, Optional

from dotenv import load_dotenv

import pytest
from fastapi.testclient import TestClient

load_dotenv()

test_db_url = os.getenv("TEST_DATABASE_URL")
if test_db_url:
    os.environ["DATABASE_URL"] = test_db_url
else:
    test_db_path = tempfile.mktemp(suffix=".db")
    os.environ["DATABASE_URL"] = f"sqlite:///{test_db_path}"

from uuid_extension import uuid7  # noqa: E402

from app.features.performance.exceptions import InvalidJobTransition  # noqa: E402
from app.platform.db.base import Base  # noqa: E402
from app.platform.db.session import SessionLocal, engine  # noqa: E402
from app.platform.utils.rate_limit import reset_rate_limits  # noqa: E402
from app.features.performance.models import (  # noqa: E402
    Site,
    ScheduledJob,
    JobStatus,
    PerformanceTestRun,
    PerformanceMetric,
    ThirdPartyScript,
    ThirdPartyScriptDetection,
)
from app.features.performance.models.scheduled_job import ACTIVE_STATUSES  # noqa: E402


def _new_id() -> str:
    return str(uuid7())


class FakeRepository:
    """In-memory PerformanceRepository. Set `fail_on[<method>] = exc` to make a call raise."""

    def __init__(self):
        self.sites: Dict[str, Site] = {}
        self.jobs: Dict[str, ScheduledJob] = {}
        self.raw_runs: List[PerformanceTestRun] = []
        self.medians: List[PerformanceMetric] = []
        self.scripts: Dict[str, ThirdPartyScript] = {}
        self.detections: List[ThirdPartyScriptDetection] = []
        self.fail_on: Dict[str, Exception] = {}

    def _maybe_fail(self, name: str):
        if name in self.fail_on:
            raise self.fail_on[name]

    # Helpers for arranging tests

    def add_site(self, **fields: Any) -> Site:
        fields.setdefault("id", _new_id())
        fields.setdefault("name", "Example Shop")
        fields.setdefault("url", "https://shop.example")
        fields.setdefault("monitoring_enabled", True)
        fields.setdefault("is_shopify", True)
        site = Site(**fields)
        self.sites[site.id] = site
        return site

    def add_job(self, site_id: str, status: JobStatus = JobStatus.queued, **fields: Any) -> ScheduledJob:
        job = ScheduledJob(
            id=_new_id(),
            site_id=site_id,
            job_type=fields.pop("job_type", "lighthouse"),
            status=status,
            scheduled_for=fields.pop("scheduled_for", datetime.utcnow()),
            **fields,
        )
        self.jobs[job.id] = job
        return job

    # PerformanceRepository

    def get_site(self, site_id: str) -> Optional[Site]:
        self._maybe_fail("get_site")
        return self.sites.get(site_id)

    def list_monitored_sites(self) -> List[Site]:
        return sorted(
            (s for s in self.sites.values() if s.monitoring_enabled),
            key=lambda s: s.name,
        )

    def create_job(self, site_id: str, job_type: str = "lighthouse") -> ScheduledJob:
        self._maybe_fail("create_job")
        return self.add_job(site_id, job_type=job_type)

    def get_job(self, job_id: str) -> Optional[ScheduledJob]:
        return self.jobs.get(job_id)

    def update_job(self, job_id: str, expected_status: Optional[JobStatus] = None, **fields: Any) -> ScheduledJob:
        self._maybe_fail("update_job")
        job = self.jobs.get(job_id)
        if not job:
            raise ValueError(f"Job {job_id} not found")
        if expected_status is not None and job.status != expected_status:
            raise InvalidJobTransition(job_id, job.status.value, fields.get("status", job.status).value)
        for key, value in fields.items():
            setattr(job, key, value)
        return job

    def list_active_jobs(self) -> List[ScheduledJob]:
        return sorted(
            (j for j in self.jobs.values() if j.status in ACTIVE_STATUSES),
            key=lambda j: j.scheduled_for,
            reverse=True,
        )

    def find_active_job_for_site(self, site_id: str) -> Optional[ScheduledJob]:
        for job in self.list_active_jobs():
            if job.site_id == site_id:
                return job
        return None

    def list_stuck_jobs(self, running_before: datetime, queued_before: datetime) -> List[ScheduledJob]:
        return [
            job for job in self.jobs.values()
            if (job.status == JobStatus.running and job.started_at and job.started_at < running_before)
            or (job.status == JobStatus.queued and job.scheduled_for < queued_before)
        ]

    def create_raw_run(self, **fields: Any) -> PerformanceTestRun:
        self._maybe_fail("create_raw_run")
        run = PerformanceTestRun(id=_new_id(), **fields)
        self.raw_runs.append(run)
        return run

    def create_median_metric(self, **fields: Any) -> PerformanceMetric:
        self._maybe_fail("create_median_metric")
        metric = PerformanceMetric(id=_new_id(), **fields)
        self.medians.append(metric)
        return metric

    def find_or_create_script(self, url: str, **fields: Any) -> ThirdPartyScript:
        self._maybe_fail("find_or_create_script")
        for script in self.scripts.values():
            if script.url == url:
                return script
        script = ThirdPartyScript(id=_new_id(), url=url, **fields)
        self.scripts[script.id] = script
        return script

    def create_script_detection(self, **fields: Any) -> ThirdPartyScriptDetection:
        self._maybe_fail("create_script_detection")
        fields.setdefault("detected_at", datetime.utcnow())
        detection = ThirdPartyScriptDetection(id=_new_id(), **fields)
        detection.script = self.scripts[fields["script_id"]]
        self.detections.append(detection)
        return detection

    def list_detections(self, site_id: str) -> List[ThirdPartyScriptDetection]:
        return sorted(
            (d for d in self.detections if d.site_id == site_id),
            key=lambda d: d.detected_at,
            reverse=True,
        )


@pytest.fixture
def fake_repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture(scope="session")
def test_app():
    """Create FastAPI test application."""
    from app.main import app

    Base.metadata.create_all(bind=engine)
    return app


@pytest.fixture(scope="function")
def client(test_app) -> Generator[TestClient, None, None]:
    """
    Create a test client for making HTTP requests.
    Rate-limit windows are cleared so every test starts with a full budget.
    """
    reset_rate_limits()
    with TestClient(test_app) as test_client:
        yield test_client
    reset_rate_limits()


@pytest.fixture
def api_client(client, test_app, fake_repository):
    """Client whose routes read and write the in-memory repository."""
    from app.features.performance.dependencies.services import get_repository

    test_app.dependency_overrides[get_repository] = lambda: fake_repository

    yield client

    test_app.dependency_overrides.pop(get_repository, None)


@pytest.fixture
def db_session_factory(test_app):
    """SessionLocal against the test database; every table is emptied afterwards."""
    yield SessionLocal

    with engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())

"""
Job Status Schemas

Request and response models for the collection trigger and the polling read model.
"""
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel

from app.features.performance.models.performance_test_run import DeviceType


SiteTestingStatus = Literal["idle", "pending", "testing"]


class ActiveJob(BaseModel):
    """Public view of an in-flight job. No identifiers or error text."""
    job_type: str
    status: str
    scheduled_for: Optional[datetime] = None
    started_at: Optional[datetime] = None


class SiteJobStatus(BaseModel):
    site_id: str
    site_name: str
    site_url: str
    status: SiteTestingStatus
    progress: int  # 0-100
    active_jobs: List[ActiveJob] = []
    job_count: int = 0


class JobStatusOverview(BaseModel):
    timestamp: datetime
    sites: List[SiteJobStatus]
    total_sites: int
    active_sites: int


class CollectRequest(BaseModel):
    """Request to start a collection for one site."""
    comprehensive: bool = True
    device_type: Optional[DeviceType] = None

    class Config:
        json_schema_extra = {
            "example": {
                "comprehensive": True
            }
        }


class CollectResponse(BaseModel):
    job_id: str
    site_id: str
    status: str
    comprehensive: bool


class StuckJobReport(BaseModel):
    job_id: str
    site_id: str
    site_name: Optional[str] = None
    original_status: str
    stuck_since: Optional[datetime] = None

"""
Performance models package.
"""
from app.features.sites.models.site import Site
from app.features.performance.models.scheduled_job import ScheduledJob, JobStatus
from app.features.performance.models.performance_test_run import PerformanceTestRun, PageType, DeviceType
from app.features.performance.models.performance_metric import PerformanceMetric
from app.features.performance.models.third_party_script import ThirdPartyScript, ThirdPartyScriptDetection

__all__ = [
    "Site",
    "ScheduledJob",
    "JobStatus",
    "PerformanceTestRun",
    "PageType",
    "DeviceType",
    "PerformanceMetric",
    "ThirdPartyScript",
    "ThirdPartyScriptDetection",
]

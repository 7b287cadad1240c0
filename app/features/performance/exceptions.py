"""
Errors raised by the measurement pipeline.

Only ProviderError is expected during normal operation (a single run failing);
everything else that escapes a batch marks its job as failed.
"""
from typing import Optional


class PerformanceError(Exception):
    """Base class for measurement pipeline errors."""


class ProviderError(PerformanceError):
    """The measurement provider reported an unsuccessful run."""

    def __init__(self, message: str, url: Optional[str] = None, device_type: Optional[str] = None):
        super().__init__(message)
        self.url = url
        self.device_type = device_type


class SiteNotFoundError(PerformanceError):
    def __init__(self, site_id: str):
        super().__init__(f"Site not found: {site_id}")
        self.site_id = site_id


class JobNotFoundError(PerformanceError):
    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class InvalidJobTransition(PerformanceError):
    """A job was moved outside queued -> running -> completed|failed."""

    def __init__(self, job_id: str, current: str, target: str):
        super().__init__(f"Invalid transition for job {job_id}: {current} -> {target}")
        self.job_id = job_id
        self.current = current
        self.target = target


class RateLimitedError(PerformanceError):
    """The job-status endpoint answered 429."""

    def __init__(self, message: str = "Rate limit exceeded", retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after

"""
Client-side polling of the job-status read model.

The delay starts at `min_delay`, doubles on every rate-limited answer up to
`max_delay`, and drops back to `min_delay` after the next successful fetch, so
many dashboards polling at once back off together while the backend is busy.
"""
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

import httpx

from app.platform.config import settings
from app.features.performance.exceptions import RateLimitedError

logger = logging.getLogger(__name__)

JOB_STATUS_PATH = "/api/v1/metrics/job-status"


class HttpStatusFetcher:
    """GET the job-status endpoint and return its `data` payload."""

    def __init__(
        self,
        base_url: str = settings.STATUS_API_BASE_URL,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.url = base_url.rstrip("/") + JOB_STATUS_PATH
        self.timeout = timeout
        self._client = client

    def __call__(self) -> Dict[str, Any]:
        if self._client is not None:
            response = self._client.get(self.url)
        else:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.get(self.url)

        if response.status_code == 429:
            raise RateLimitedError(retry_after=_retry_after(response))
        response.raise_for_status()

        body = response.json()
        return body.get("data", body) if isinstance(body, dict) else body


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class AdaptivePoller:

    def __init__(
        self,
        fetch_status: Callable[[], Any],
        on_status: Callable[[Any], None],
        min_delay: float = settings.POLL_MIN_DELAY_SECONDS,
        max_delay: float = settings.POLL_MAX_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if min_delay <= 0 or max_delay < min_delay:
            raise ValueError("Poll delays must satisfy 0 < min_delay <= max_delay")
        self.fetch_status = fetch_status
        self.on_status = on_status
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.sleep = sleep
        self.delay = min_delay

    def poll_once(self) -> float:
        """Fetch once and return the delay to wait before the next fetch."""
        try:
            payload = self.fetch_status()
        except RateLimitedError:
            self.delay = min(self.delay * 2, self.max_delay)
            logger.warning(f"Job status rate limited, backing off to {self.delay:.0f}s")
            return self.delay
        except Exception as e:
            logger.error(f"Failed to poll job status: {e}")
            return self.delay

        if self.delay != self.min_delay:
            logger.info(f"Job status poll succeeded, resetting interval to {self.min_delay:.0f}s")
        self.delay = self.min_delay
        self.on_status(payload)
        return self.delay

    def run(self, max_iterations: Optional[int] = None, stop_event: Optional[threading.Event] = None) -> int:
        """Poll until `stop_event` is set or `max_iterations` polls were made. Returns the poll count."""
        iterations = 0
        while max_iterations is None or iterations < max_iterations:
            if stop_event is not None and stop_event.is_set():
                break

            delay = self.poll_once()
            iterations += 1

            if max_iterations is not None and iterations >= max_iterations:
                break
            if stop_event is not None:
                if stop_event.wait(delay):
                    break
            else:
                self.sleep(delay)

        return iterations

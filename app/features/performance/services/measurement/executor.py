import logging
import time
from typing import Callable, List, Protocol

from app.platform.config import settings
from app.features.performance.exceptions import ProviderError
from app.features.performance.schemas.metrics import MetricVector, ProviderResult

logger = logging.getLogger(__name__)


class MeasurementProvider(Protocol):
    def measure(self, url: str, device_type: str) -> ProviderResult:
        ...


def to_metric_vector(result: ProviderResult) -> MetricVector:
    """Map a provider answer onto the internal metric shape (TTFB ms -> s, TTI ~ FCP + 3s)."""
    return MetricVector(
        performance=result.performance,
        fcp=result.fcp,
        lcp=result.lcp,
        cls=result.cls,
        tbt=result.tbt,
        tti=result.fcp + 3 if result.fcp is not None else None,
        ttfb=result.ttfb / 1000 if result.ttfb is not None else None,
        speed_index=result.speed_index,
        page_weight=result.theme_asset_size,
        request_count=result.request_count,
        diagnostics=result.diagnostics or {},
    )


class MeasurementExecutor:
    """
    Runs the provider for one (url, device) pair.

    `run_once` is the only call in the pipeline allowed to raise; `run_many`
    keeps whatever runs succeed and spaces attempts by a fixed pacing delay.
    """

    def __init__(
        self,
        provider: MeasurementProvider,
        pacing_seconds: float = settings.RUN_PACING_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.provider = provider
        self.pacing_seconds = pacing_seconds
        self.sleep = sleep

    def run_once(self, url: str, device_type: str) -> MetricVector:
        result = self.provider.measure(url, device_type)
        if not result.success:
            raise ProviderError(
                f"PageSpeed Insights API failed: {result.error}",
                url=url,
                device_type=device_type,
            )
        return to_metric_vector(result)

    def run_many(self, url: str, device_type: str, n: int) -> List[MetricVector]:
        results: List[MetricVector] = []

        for run_number in range(1, n + 1):
            logger.info(f"Run {run_number}/{n} for {url} ({device_type})")
            try:
                results.append(self.run_once(url, device_type))
            except ProviderError as e:
                logger.warning(f"Run {run_number}/{n} failed for {url} ({device_type}): {e}")
            except Exception as e:
                logger.error(f"Run {run_number}/{n} errored for {url} ({device_type}): {e}", exc_info=True)

            if run_number < n and self.pacing_seconds > 0:
                self.sleep(self.pacing_seconds)

        return results

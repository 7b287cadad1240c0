"""
Metric shapes shared by the provider client, the executor and the aggregator.
"""
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


# Fields reduced independently by the median aggregator, in persistence order
METRIC_FIELDS = (
    "performance",
    "fcp",
    "lcp",
    "cls",
    "tbt",
    "tti",
    "ttfb",
    "speed_index",
    "page_weight",
    "request_count",
)


class MetricVector(BaseModel):
    """Normalized result of one successful measurement run."""
    performance: Optional[float] = None  # 0-100
    fcp: Optional[float] = None  # s
    lcp: Optional[float] = None  # s
    cls: Optional[float] = None
    tbt: Optional[float] = None  # ms
    tti: Optional[float] = None  # s
    ttfb: Optional[float] = None  # s
    speed_index: Optional[float] = None  # s
    page_weight: Optional[float] = None  # bytes
    request_count: Optional[float] = None
    diagnostics: Dict[str, Any] = Field(default_factory=dict)

    def metric_values(self) -> Dict[str, Optional[float]]:
        return {field: getattr(self, field) for field in METRIC_FIELDS}


class ProviderResult(BaseModel):
    """
    Raw answer of the measurement provider for one (url, device) request.

    Units follow the provider: `ttfb` in milliseconds, `theme_asset_size` in bytes.
    """
    success: bool
    performance: Optional[float] = None
    fcp: Optional[float] = None
    lcp: Optional[float] = None
    cls: Optional[float] = None
    tbt: Optional[float] = None
    speed_index: Optional[float] = None
    ttfb: Optional[float] = None
    theme_asset_size: Optional[float] = None
    request_count: Optional[float] = None
    diagnostics: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None

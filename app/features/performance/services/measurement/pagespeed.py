"""
PageSpeed Insights client.

Black-box measurement provider: one request per (url, device) answering a fixed
metric vector plus a third-party diagnostic payload. Never raises; failures
come back as `ProviderResult(success=False, error=...)`.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from app.platform.config import settings
from app.features.performance.schemas.metrics import ProviderResult

logger = logging.getLogger(__name__)


class PageSpeedClient:

    def __init__(
        self,
        api_url: str = settings.PAGESPEED_API_URL,
        api_key: Optional[str] = settings.PAGESPEED_API_KEY,
        timeout: float = settings.PAGESPEED_TIMEOUT_SECONDS,
        client: Optional[httpx.Client] = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    def measure(self, url: str, device_type: str) -> ProviderResult:
        params = {
            "url": url,
            "strategy": "mobile" if device_type == "mobile" else "desktop",
            "category": "performance",
        }
        if self.api_key:
            params["key"] = self.api_key

        logger.info(f"Calling PageSpeed Insights for {url} ({device_type})")

        try:
            response = self._get(params)
        except httpx.HTTPError as e:
            logger.error(f"PageSpeed request failed for {url} ({device_type}): {e}")
            return ProviderResult(success=False, error=f"PageSpeed request failed: {e}")

        if not response.is_success:
            error = f"PageSpeed API failed ({response.status_code}): {response.text[:500]}"
            logger.error(error)
            return ProviderResult(success=False, error=error)

        try:
            data = response.json()
        except ValueError as e:
            return ProviderResult(success=False, error=f"Invalid PageSpeed response: {e}")

        result = parse_pagespeed_response(data)
        if result.success:
            logger.info(
                f"PageSpeed metrics for {url} ({device_type}) - "
                f"Performance: {result.performance}, LCP: {result.lcp}, CLS: {result.cls}"
            )
        return result

    def _get(self, params: Dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return self._client.get(self.api_url, params=params)
        with httpx.Client(timeout=self.timeout) as client:
            return client.get(self.api_url, params=params)


def parse_pagespeed_response(data: Dict[str, Any]) -> ProviderResult:
    """
    Normalize a runPagespeed payload.

    Field (real-user) data wins over lab data where both exist. Timings are
    converted to seconds except TBT and TTFB, which stay in milliseconds.
    """
    lighthouse = data.get("lighthouseResult")
    if not lighthouse:
        return ProviderResult(success=False, error="No Lighthouse result in PageSpeed response")

    audits = lighthouse.get("audits") or {}
    field = (data.get("loadingExperience") or {}).get("metrics") or {}

    lcp_field = _percentile(field, "LARGEST_CONTENTFUL_PAINT_MS")
    lcp_lab = _numeric(audits, "largest-contentful-paint")
    lcp = lcp_field / 1000 if lcp_field else (lcp_lab / 1000 if lcp_lab else None)

    fcp_field = _percentile(field, "FIRST_CONTENTFUL_PAINT_MS")
    fcp_lab = _numeric(audits, "first-contentful-paint")
    fcp = fcp_field / 1000 if fcp_field else (fcp_lab / 1000 if fcp_lab else None)

    # Field CLS is reported on a 0-100 scale
    cls_field = _percentile(field, "CUMULATIVE_LAYOUT_SHIFT_SCORE")
    cls = cls_field / 100 if cls_field is not None else _numeric(audits, "cumulative-layout-shift")

    ttfb = _percentile(field, "EXPERIMENTAL_TIME_TO_FIRST_BYTE") or _numeric(audits, "server-response-time")

    speed_index_lab = _numeric(audits, "speed-index")
    speed_index = speed_index_lab / 1000 if speed_index_lab else None

    score = ((lighthouse.get("categories") or {}).get("performance") or {}).get("score")
    performance = round(score * 100) if score is not None else None

    network_items = _details_items(audits, "network-requests")

    return ProviderResult(
        success=True,
        performance=performance,
        fcp=fcp,
        lcp=lcp,
        cls=cls,
        tbt=_numeric(audits, "total-blocking-time"),
        speed_index=speed_index,
        ttfb=ttfb,
        theme_asset_size=_numeric(audits, "total-byte-weight"),
        request_count=len(network_items) if network_items else None,
        diagnostics=_third_party_payload(audits),
    )


def _percentile(field: Dict[str, Any], key: str) -> Optional[float]:
    return (field.get(key) or {}).get("percentile")


def _numeric(audits: Dict[str, Any], key: str) -> Optional[float]:
    return (audits.get(key) or {}).get("numericValue")


def _details_items(audits: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    return ((audits.get(key) or {}).get("details") or {}).get("items") or []


def _third_party_payload(audits: Dict[str, Any]) -> Dict[str, Any]:
    items = _details_items(audits, "third-party-summary")
    if not items:
        return {}

    third_party = []
    for item in items:
        entity = item.get("entity")
        if isinstance(entity, dict):
            entity = entity.get("text")
        third_party.append({
            "entity": entity or "Unknown",
            "transferSize": item.get("transferSize"),
            "blockingTime": item.get("blockingTime"),
        })
    return {"thirdParty": third_party}

import httpx
import pytest

from app.features.performance.services.measurement.pagespeed import (
    PageSpeedClient,
    parse_pagespeed_response,
)

API_URL = "https://psi.test/runPagespeed"


def _payload(field=None, score=0.87):
    audits = {
        "largest-contentful-paint": {"numericValue": 2500},
        "first-contentful-paint": {"numericValue": 1200},
        "cumulative-layout-shift": {"numericValue": 0.05},
        "server-response-time": {"numericValue": 180},
        "speed-index": {"numericValue": 3400},
        "total-blocking-time": {"numericValue": 250},
        "total-byte-weight": {"numericValue": 1_800_000},
        "network-requests": {"details": {"items": [{}, {}, {}]}},
        "third-party-summary": {
            "details": {
                "items": [
                    {"entity": "Google Tag Manager", "transferSize": 90_000, "blockingTime": 120},
                    {"entity": {"text": "Klaviyo"}, "transferSize": 40_000, "blockingTime": 30},
                ]
            }
        },
    }
    data = {"lighthouseResult": {"audits": audits, "categories": {"performance": {"score": score}}}}
    if field:
        data["loadingExperience"] = {"metrics": field}
    return data


def test_lab_values_are_normalized():
    result = parse_pagespeed_response(_payload())

    assert result.success is True
    assert result.performance == 87
    assert result.lcp == pytest.approx(2.5)
    assert result.fcp == pytest.approx(1.2)
    assert result.cls == pytest.approx(0.05)
    assert result.ttfb == 180
    assert result.speed_index == pytest.approx(3.4)
    assert result.tbt == 250
    assert result.theme_asset_size == 1_800_000
    assert result.request_count == 3


def test_field_data_wins_over_lab_data():
    field = {
        "LARGEST_CONTENTFUL_PAINT_MS": {"percentile": 3100},
        "FIRST_CONTENTFUL_PAINT_MS": {"percentile": 1500},
        "CUMULATIVE_LAYOUT_SHIFT_SCORE": {"percentile": 12},
        "EXPERIMENTAL_TIME_TO_FIRST_BYTE": {"percentile": 600},
    }

    result = parse_pagespeed_response(_payload(field=field))

    assert result.lcp == pytest.approx(3.1)
    assert result.fcp == pytest.approx(1.5)
    assert result.cls == pytest.approx(0.12)
    assert result.ttfb == 600


def test_third_party_summary_becomes_diagnostics():
    result = parse_pagespeed_response(_payload())

    assert result.diagnostics == {
        "thirdParty": [
            {"entity": "Google Tag Manager", "transferSize": 90_000, "blockingTime": 120},
            {"entity": "Klaviyo", "transferSize": 40_000, "blockingTime": 30},
        ]
    }


def test_missing_lighthouse_result_is_a_failure():
    result = parse_pagespeed_response({"loadingExperience": {}})

    assert result.success is False
    assert "No Lighthouse result" in result.error


def _client(handler, api_key=None):
    http = httpx.Client(transport=httpx.MockTransport(handler))
    return PageSpeedClient(api_url=API_URL, api_key=api_key, client=http)


def test_measure_sends_strategy_and_key():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(dict(request.url.params))
        return httpx.Response(200, json=_payload())

    result = _client(handler, api_key="secret").measure("https://shop.example", "desktop")

    assert result.success is True
    assert seen["url"] == "https://shop.example"
    assert seen["strategy"] == "desktop"
    assert seen["category"] == "performance"
    assert seen["key"] == "secret"


def test_measure_reports_http_errors_without_raising():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, text="Quota exceeded")

    result = _client(handler).measure("https://shop.example", "mobile")

    assert result.success is False
    assert "(429)" in result.error


def test_measure_reports_transport_errors_without_raising():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    result = _client(handler).measure("https://shop.example", "mobile")

    assert result.success is False
    assert "timed out" in result.error

from unittest.mock import MagicMock

import httpx
import pytest

from app.features.performance.exceptions import SiteNotFoundError
from app.features.performance.models import JobStatus
from app.features.performance.schemas.metrics import ProviderResult
from app.features.performance.services.discovery.product_discovery import HtmlFetcher, ProductDiscoveryService
from app.features.performance.services.measurement.executor import MeasurementExecutor
from app.features.performance.services.orchestration.batch import BatchOrchestrator
from app.features.performance.services.orchestration.job_tracker import JobStatusTracker
from app.features.performance.services.third_party.script_processor import ThirdPartyScriptProcessor

THIRD_PARTY = {"thirdParty": [{"entity": "Klaviyo", "transferSize": 40_000, "blockingTime": 35}]}


class ScriptedProvider:
    """Always succeeds unless (url, device) is listed in `failing`."""

    def __init__(self, failing=(), diagnostics=None):
        self.failing = set(failing)
        self.diagnostics = diagnostics or {}
        self.calls = []

    def measure(self, url, device_type):
        self.calls.append((url, device_type))
        if (url, device_type) in self.failing:
            return ProviderResult(success=False, error="PageSpeed API failed (500)")
        return ProviderResult(success=True, performance=90, lcp=2.1, diagnostics=self.diagnostics)


def _orchestrator(repository, provider, discovered=None, script_processor=None):
    discovery = MagicMock()
    discovery.discover_product_url.return_value = discovered
    return BatchOrchestrator(
        repository=repository,
        executor=MeasurementExecutor(provider, pacing_seconds=2.0, sleep=lambda s: None),
        discovery=discovery,
        script_processor=script_processor or ThirdPartyScriptProcessor(repository),
        tracker=JobStatusTracker(repository),
        runs_per_combination=3,
    )


def test_full_batch_without_product_page(fake_repository):
    site = fake_repository.add_site(url="https://shop.example")
    job = fake_repository.add_job(site.id)
    orchestrator = _orchestrator(fake_repository, ScriptedProvider(), discovered=None)

    batch_id = orchestrator.run_batch(site.id, job_id=job.id)

    assert len(fake_repository.raw_runs) == 12
    assert len(fake_repository.medians) == 4
    assert all(m.performance == 90 for m in fake_repository.medians)
    assert all(m.run_count == 3 for m in fake_repository.medians)
    assert {m.page_type for m in fake_repository.medians} == {"homepage", "category"}
    assert all(r.batch_id == batch_id for r in fake_repository.raw_runs)

    job = fake_repository.get_job(job.id)
    assert job.status == JobStatus.completed
    assert job.batch_id == batch_id
    assert job.groups_attempted == 4
    assert job.groups_succeeded == 4
    assert job.completed_at is not None


def test_failing_combination_is_skipped(fake_repository):
    site = fake_repository.add_site(url="https://shop.example")
    job = fake_repository.add_job(site.id)
    provider = ScriptedProvider(failing={("https://shop.example/collections/all", "desktop")})

    _orchestrator(fake_repository, provider).run_batch(site.id, job_id=job.id)

    groups = {(m.page_type, m.device_type) for m in fake_repository.medians}
    assert groups == {("homepage", "mobile"), ("homepage", "desktop"), ("category", "mobile")}
    assert not [r for r in fake_repository.raw_runs if (r.page_type, r.device_type) == ("category", "desktop")]
    assert len(fake_repository.raw_runs) == 9

    job = fake_repository.get_job(job.id)
    assert job.status == JobStatus.completed
    assert job.groups_attempted == 4
    assert job.groups_succeeded == 3


def test_plan_defaults_and_discovery(fake_repository):
    site = fake_repository.add_site(url="https://shop.example/")
    orchestrator = _orchestrator(fake_repository, ScriptedProvider(), discovered="https://shop.example/products/mug")

    plan = orchestrator.build_plan(site)

    assert [(p.page_type.value, p.url) for p in plan.pages] == [
        ("homepage", "https://shop.example/"),
        ("category", "https://shop.example/collections/all"),
        ("product", "https://shop.example/products/mug"),
    ]
    assert [d.value for d in plan.device_types] == ["mobile", "desktop"]
    assert plan.runs_per_combination == 3
    orchestrator.discovery.discover_product_url.assert_called_once_with("https://shop.example/")


def test_configured_urls_skip_discovery(fake_repository):
    site = fake_repository.add_site(
        category_url="https://shop.example/collections/shoes",
        product_url="https://shop.example/products/boot",
        device_types=["mobile"],
        runs_per_combination=2,
    )
    orchestrator = _orchestrator(fake_repository, ScriptedProvider())

    plan = orchestrator.build_plan(site)

    assert plan.pages[1].url == "https://shop.example/collections/shoes"
    assert plan.pages[2].url == "https://shop.example/products/boot"
    assert [d.value for d in plan.device_types] == ["mobile"]
    assert plan.runs_per_combination == 2
    orchestrator.discovery.discover_product_url.assert_not_called()


def test_discovered_product_is_measured(fake_repository):
    site = fake_repository.add_site(device_types=["mobile"])
    orchestrator = _orchestrator(fake_repository, ScriptedProvider(), discovered="https://shop.example/products/mug")

    orchestrator.run_batch(site.id)

    assert {m.page_type for m in fake_repository.medians} == {"homepage", "category", "product"}
    product = [m for m in fake_repository.medians if m.page_type == "product"][0]
    assert product.page_url == "https://shop.example/products/mug"


def test_run_numbers_follow_successful_runs(fake_repository):
    site = fake_repository.add_site(page_types=["homepage"], device_types=["mobile"])

    _orchestrator(fake_repository, ScriptedProvider()).run_batch(site.id)

    assert [r.run_number for r in fake_repository.raw_runs] == [1, 2, 3]


def test_unknown_site_marks_job_failed(fake_repository):
    site = fake_repository.add_site()
    job = fake_repository.add_job(site.id)

    with pytest.raises(SiteNotFoundError):
        _orchestrator(fake_repository, ScriptedProvider()).run_batch("missing-site", job_id=job.id)

    job = fake_repository.get_job(job.id)
    assert job.status == JobStatus.failed
    assert "missing-site" in job.error


def test_persistence_failure_marks_job_failed_and_reraises(fake_repository):
    site = fake_repository.add_site()
    job = fake_repository.add_job(site.id)
    fake_repository.fail_on["create_median_metric"] = RuntimeError("database unavailable")

    with pytest.raises(RuntimeError):
        _orchestrator(fake_repository, ScriptedProvider()).run_batch(site.id, job_id=job.id)

    job = fake_repository.get_job(job.id)
    assert job.status == JobStatus.failed
    assert job.error == "database unavailable"


def test_diagnostics_are_forwarded_once_per_group(fake_repository):
    site = fake_repository.add_site(page_types=["homepage"], device_types=["mobile", "desktop"])
    processor = MagicMock()

    _orchestrator(
        fake_repository,
        ScriptedProvider(diagnostics=THIRD_PARTY),
        script_processor=processor,
    ).run_batch(site.id)

    assert processor.process_diagnostics.call_count == 2
    metric_ids = {m.id for m in fake_repository.medians}
    for call in processor.process_diagnostics.call_args_list:
        args, kwargs = call
        assert args[0] == site.id
        assert args[2] == THIRD_PARTY
        assert kwargs["metric_id"] in metric_ids
        assert kwargs["page_type"] == "homepage"


def test_script_processing_failure_does_not_fail_batch(fake_repository):
    site = fake_repository.add_site(page_types=["homepage"])
    job = fake_repository.add_job(site.id)
    processor = MagicMock()
    processor.process_diagnostics.side_effect = RuntimeError("script table locked")

    _orchestrator(
        fake_repository,
        ScriptedProvider(diagnostics=THIRD_PARTY),
        script_processor=processor,
    ).run_batch(site.id, job_id=job.id)

    assert fake_repository.get_job(job.id).status == JobStatus.completed
    assert len(fake_repository.medians) == 2


def test_detections_link_to_their_median(fake_repository):
    site = fake_repository.add_site(page_types=["homepage"], device_types=["mobile"])

    _orchestrator(fake_repository, ScriptedProvider(diagnostics=THIRD_PARTY)).run_batch(site.id)

    assert len(fake_repository.detections) == 1
    detection = fake_repository.detections[0]
    assert detection.metric_id == fake_repository.medians[0].id
    assert detection.transfer_size == 40_000


def test_start_batch_queues_job(fake_repository):
    site = fake_repository.add_site()

    job_id = _orchestrator(fake_repository, ScriptedProvider()).start_batch(site.id)

    assert fake_repository.get_job(job_id).status == JobStatus.queued


def test_start_batch_unknown_site(fake_repository):
    with pytest.raises(SiteNotFoundError):
        _orchestrator(fake_repository, ScriptedProvider()).start_batch("nope")


def test_run_simple_measures_homepage_once(fake_repository):
    site = fake_repository.add_site()
    job = fake_repository.add_job(site.id)
    provider = ScriptedProvider()

    _orchestrator(fake_repository, provider).run_simple(site.id, "desktop", job_id=job.id)

    assert provider.calls == [("https://shop.example", "desktop")]
    assert len(fake_repository.raw_runs) == 1
    assert len(fake_repository.medians) == 1
    assert fake_repository.medians[0].page_type == "homepage"
    assert fake_repository.get_job(job.id).status == JobStatus.completed


def test_run_simple_provider_failure_fails_job(fake_repository):
    site = fake_repository.add_site()
    job = fake_repository.add_job(site.id)
    provider = ScriptedProvider(failing={("https://shop.example", "mobile")})

    with pytest.raises(Exception):
        _orchestrator(fake_repository, provider).run_simple(site.id, "mobile", job_id=job.id)

    job = fake_repository.get_job(job.id)
    assert job.status == JobStatus.failed
    assert "PageSpeed" in job.error


def test_malformed_site_url_only_drops_product_page(fake_repository):
    site = fake_repository.add_site(url="https://shop\x7f.example")
    job = fake_repository.add_job(site.id)
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, text="")))
    orchestrator = _orchestrator(fake_repository, ScriptedProvider())
    orchestrator.discovery = ProductDiscoveryService(HtmlFetcher(client=client))

    orchestrator.run_batch(site.id, job_id=job.id)

    job = fake_repository.get_job(job.id)
    assert job.status == JobStatus.completed
    assert (job.groups_attempted, job.groups_succeeded) == (4, 4)
    assert "product" not in {m.page_type for m in fake_repository.medians}


def test_run_simple_unknown_device_fails_job(fake_repository):
    site = fake_repository.add_site()
    job = fake_repository.add_job(site.id)
    provider = ScriptedProvider()

    with pytest.raises(ValueError):
        _orchestrator(fake_repository, provider).run_simple(site.id, "tablet", job_id=job.id)

    assert provider.calls == []
    assert fake_repository.get_job(job.id).status == JobStatus.failed

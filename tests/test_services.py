from fastapi.testclient import TestClient

from creative_studio.api import deps
from creative_studio.config import Settings, settings
from creative_studio.jobs.poller import PollingReconciler
from creative_studio.services import build_services


def _settings(tmp_path, **overrides):
    values = dict(
        job_store_backend="memory",
        storage_backend="local",
        local_storage_dir=str(tmp_path),
        fal_key=None,
        openai_api_key=None,
        webhook_secret=None,
    )
    values.update(overrides)
    return Settings(**values)


def test_missing_keys_disable_processors(tmp_path):
    services = build_services(_settings(tmp_path))

    assert services.lipsync_submitter is None
    assert services.worker is None
    assert services.dispatcher is None
    assert services.template_generator is None
    # Style jobs can still be queued for a worker running elsewhere.
    assert services.style_submitter is not None


def test_poll_mode_wires_a_poller(tmp_path):
    services = build_services(_settings(
        tmp_path, fal_key="fal-test", lipsync_reconcile_mode="poll",
        poll_max_attempts=5, poll_interval_seconds=2.0,
    ))

    assert isinstance(services.poller, PollingReconciler)
    assert services.poller.policy.max_attempts == 5
    assert services.poller.policy.interval_seconds == 2.0
    assert services.lipsync_submitter.webhook_url("job-1").endswith("job_id=job-1")


def test_webhook_mode_has_no_poller(tmp_path):
    services = build_services(_settings(tmp_path, fal_key="fal-test", webhook_secret="abc"))

    assert services.poller is None
    assert "token=abc" in services.lipsync_submitter.webhook_url("job-1")


def test_lifespan_starts_and_stops_worker(tmp_path, monkeypatch):
    from creative_studio.main import app

    for name, value in dict(
        job_store_backend="memory",
        storage_backend="local",
        local_storage_dir=str(tmp_path),
        fal_key=None,
        openai_api_key="sk-test",
    ).items():
        monkeypatch.setattr(settings, name, value)

    with TestClient(app) as client:
        services = deps.peek_services()
        assert services is not None
        assert services.dispatcher is not None
        assert client.get("/health").json()["image_generation_enabled"] is True

    assert deps.peek_services() is None


def test_lifespan_resumes_polling_in_poll_mode(tmp_path, monkeypatch):
    from creative_studio.main import app

    resumed = []

    async def record_resume(self, limit=100):
        resumed.append(self)
        return 0

    monkeypatch.setattr(PollingReconciler, "resume", record_resume)
    for name, value in dict(
        job_store_backend="memory",
        storage_backend="local",
        local_storage_dir=str(tmp_path),
        fal_key="fal-test",
        openai_api_key=None,
        lipsync_reconcile_mode="poll",
    ).items():
        monkeypatch.setattr(settings, name, value)

    with TestClient(app):
        services = deps.peek_services()
        assert resumed == [services.poller]

import pytest

from carsuggester.jobs import worker


@pytest.mark.asyncio
async def test_run_worker_runs_job(monkeypatch):
    called = {"ok": False}

    async def dummy_job():
        called["ok"] = True

    monkeypatch.setitem(worker.JOB_REGISTRY, "dummy", dummy_job)

    await worker.run_worker("dummy")

    assert called["ok"] is True


@pytest.mark.asyncio
async def test_run_worker_unknown_job():
    with pytest.raises(ValueError):
        await worker.run_worker("missing")


def test_event_retention_is_registered():
    assert "event_retention" in worker.JOB_REGISTRY
    assert "event_retention_once" in worker.JOB_REGISTRY


def test_resolve_job_name_prefers_cli_argument(monkeypatch):
    monkeypatch.setenv("WORKER_JOB", "event_retention_once")

    assert worker._resolve_job_name(["Event_Retention "]) == "event_retention"
    assert worker._resolve_job_name([]) == "event_retention_once"


def test_resolve_job_name_default(monkeypatch):
    monkeypatch.delenv("WORKER_JOB", raising=False)

    assert worker._resolve_job_name([]) == "event_retention"

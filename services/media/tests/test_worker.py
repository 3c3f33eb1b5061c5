import threading
from unittest.mock import MagicMock

from services.media import worker
from services.media.config import MediaConfig


class FakeJanitor:
    def __init__(self, reclaimed):
        self.reclaimed = reclaimed
        self.calls = 0

    async def execute(self):
        self.calls += 1
        return self.reclaimed


def _config(**overrides):
    return MediaConfig(storage_bucket="media", **overrides)


def test_sweep_job_runs_janitor(monkeypatch):
    janitor = FakeJanitor(reclaimed=3)
    monkeypatch.setattr(worker, "get_janitor", lambda: janitor)

    assert worker.sweep_stale_uploads() == 3
    assert janitor.calls == 1


def test_enqueue_sweep_uses_janitor_queue(monkeypatch):
    fake_queue = MagicMock()
    fake_job = MagicMock()
    fake_job.id = "job-1"
    fake_queue.enqueue.return_value = fake_job
    captured = {}

    def fake_build_queue(cfg):
        captured["cfg"] = cfg
        return fake_queue

    cfg = _config(janitor_queue_name="cleanup")
    monkeypatch.setattr(worker, "get_config", lambda: cfg)
    monkeypatch.setattr(worker, "build_queue", fake_build_queue)

    job = worker.enqueue_sweep()

    fake_queue.enqueue.assert_called_once_with(worker.sweep_stale_uploads)
    assert captured["cfg"] is cfg
    assert job.id == "job-1"


def test_run_worker_invokes_work(monkeypatch):
    called = {}

    def fake_build_worker(cfg, queue_name=None):
        called["queue_name"] = queue_name

        class _Worker:
            def work(self_inner):
                called["worked"] = True

        return _Worker()

    monkeypatch.setattr(worker, "get_config", lambda: _config())
    monkeypatch.setattr(worker, "build_worker", fake_build_worker)

    worker.run_worker(queue_name="janitor")

    assert called.get("worked")
    assert called.get("queue_name") == "janitor"


def test_schedule_sweeps_stops_when_event_is_set(monkeypatch):
    stop_event = threading.Event()
    calls = []

    def fake_enqueue():
        calls.append(1)
        stop_event.set()

    monkeypatch.setattr(worker, "enqueue_sweep", fake_enqueue)

    worker.schedule_sweeps(3600, stop_event)

    assert calls == [1]


def test_schedule_sweeps_survives_enqueue_errors(monkeypatch):
    stop_event = threading.Event()
    attempts = []

    def flaky_enqueue():
        attempts.append(1)
        if len(attempts) == 2:
            stop_event.set()
        raise ConnectionError("redis down")

    monkeypatch.setattr(worker, "enqueue_sweep", flaky_enqueue)

    worker.schedule_sweeps(0, stop_event)

    assert len(attempts) == 2


def test_run_worker_service_stops_scheduler(monkeypatch):
    cfg = _config(janitor_interval_seconds=3600)
    scheduled = threading.Event()

    def fake_schedule(interval, stop_event):
        scheduled.set()
        stop_event.wait(5)

    def fake_run_worker(queue_name=None):
        scheduled.wait(5)
        raise KeyboardInterrupt

    monkeypatch.setattr(worker, "get_config", lambda: cfg)
    monkeypatch.setattr(worker, "schedule_sweeps", fake_schedule)
    monkeypatch.setattr(worker, "run_worker", fake_run_worker)

    worker.run_worker_service()

    assert scheduled.is_set()


def test_get_janitor_builds_from_config(monkeypatch, tmp_path):
    cfg = _config(database_url=f"sqlite:///{tmp_path / 'media.db'}")
    monkeypatch.setattr(worker, "_JANITOR", None)
    monkeypatch.setattr(worker, "get_config", lambda: cfg)
    monkeypatch.setattr(worker, "create_object_store", lambda config: MagicMock())

    janitor = worker.get_janitor()

    assert janitor is worker.get_janitor()

from __future__ import annotations

from datetime import timedelta

from pytest import MonkeyPatch


def _schedule() -> dict[str, dict]:
    from worker.worker_app import celery_app

    schedule = celery_app.conf.beat_schedule
    # The schedule is built once; rebuild it for this test's environment.
    schedule.refresh()
    return dict(schedule)


def test_builds_schedule_from_env(monkeypatch: MonkeyPatch) -> None:
    # Avoid starting the metrics HTTP server
    monkeypatch.setenv("ENABLE_WORKER_METRICS", "false")
    monkeypatch.setenv("ENABLE_BEAT", "true")
    monkeypatch.setenv("INGEST_INTERVAL_SECONDS", "120")
    monkeypatch.setenv("NOTIFY_INTERVAL_SECONDS", "30")

    schedule = _schedule()
    assert set(schedule) == {"ingest_prices", "notify_alerts"}
    assert schedule["ingest_prices"]["task"] == "ingest_prices"
    assert schedule["ingest_prices"]["schedule"].run_every == timedelta(seconds=120)
    assert schedule["notify_alerts"]["schedule"].run_every == timedelta(seconds=30)


def test_schedule_empty_when_beat_disabled(monkeypatch: MonkeyPatch) -> None:
    monkeypatch.setenv("ENABLE_BEAT", "false")
    assert _schedule() == {}


def test_zero_interval_disables_a_job(monkeypatch: MonkeyPatch) -> None:
    from worker.schedule import build_beat_schedule

    assert set(build_beat_schedule(ingest_seconds=60, notify_seconds=0)) == {"ingest_prices"}


def test_tasks_registered() -> None:
    from worker.worker_app import celery_app

    assert {"ingest_prices", "notify_alerts"} <= set(celery_app.tasks)
    # a task is acked when it starts, so a crashed run is not redelivered
    assert celery_app.conf.task_acks_late is False
    assert celery_app.tasks["worker.worker_app.ping"].run() == "pong"

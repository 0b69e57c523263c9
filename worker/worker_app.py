from __future__ import annotations

import logging
import os
from typing import Final

from celery import Celery, signals
from prometheus_client import start_http_server

from worker.schedule import LazyBeatSchedule, build_beat_schedule

# Default local-stack broker URL; production is provided via env.
DEFAULT_BROKER: Final[str] = "redis://redis:6379/0"

celery_app = Celery("pricewatch_worker")
broker_url = os.getenv("REDIS_URL", DEFAULT_BROKER)
celery_app.conf.broker_url = broker_url
celery_app.conf.result_backend = broker_url

logger = logging.getLogger(__name__)


def _flag(env_var: str, default: str) -> bool:
    return os.getenv(env_var, default).lower() in {"1", "true", "yes", "on"}


def _start_metrics_server() -> None:
    """Run `prometheus_client`'s basic HTTP server for worker metrics."""
    port = int(os.getenv("WORKER_METRICS_PORT", "8001"))
    start_http_server(port)


@signals.worker_ready.connect
def _on_worker_ready(sender: object | None = None, **kwargs: object) -> None:  # type: ignore[no-redef]
    """Start metrics HTTP server only in actual worker processes.

    Avoids binding the port when running celery CLI commands like `call` or in
    non-worker processes (e.g., Beat), which only import the module.
    """
    if _flag("ENABLE_WORKER_METRICS", "true"):
        _start_metrics_server()
    if _flag("CREATE_SCHEMA_ON_STARTUP", "true"):
        from app.db import create_all

        create_all()
        logger.info("database schema ensured")


@celery_app.task
def ping() -> str:
    """Basic connectivity check used by tests and smoke probes."""
    return "pong"


def _build_schedule_from_env() -> dict[str, dict]:
    if not _flag("ENABLE_BEAT", "false"):
        return {}
    return build_beat_schedule(
        ingest_seconds=int(os.getenv("INGEST_INTERVAL_SECONDS", "60")),
        notify_seconds=int(os.getenv("NOTIFY_INTERVAL_SECONDS", "60")),
    )


# Lazy so tests that set env after an earlier import see the right schedule.
celery_app.conf.beat_schedule = LazyBeatSchedule(_build_schedule_from_env)

# Register tasks with Celery. Imported last: the task modules import celery_app.
import worker.tasks.alerts  # noqa: E402,F401
import worker.tasks.prices  # noqa: E402,F401

from __future__ import annotations

from datetime import timedelta
from typing import Callable, Dict, Iterator, Mapping, Optional

from celery.schedules import schedule as sched


def build_beat_schedule(ingest_seconds: int, notify_seconds: int) -> Dict[str, dict]:
    """Build the Celery beat schedule for the two periodic jobs.

    Prices are ingested every ``ingest_seconds`` and triggered alerts are
    emailed every ``notify_seconds``. A non-positive interval disables a job.
    """
    schedule: Dict[str, dict] = {}
    if ingest_seconds > 0:
        schedule["ingest_prices"] = {
            "task": "ingest_prices",
            "schedule": sched(timedelta(seconds=ingest_seconds)),
            "args": (),
        }
    if notify_seconds > 0:
        schedule["notify_alerts"] = {
            "task": "notify_alerts",
            "schedule": sched(timedelta(seconds=notify_seconds)),
            "args": (),
        }
    return schedule


class LazyBeatSchedule(Mapping[str, dict]):
    """A mapping that builds the beat schedule on first access.

    Tests set environment variables after the worker module is imported, so
    the factory only runs when the schedule is actually read.
    """

    def __init__(self, factory: Callable[[], Dict[str, dict]]):
        self._factory = factory
        self._cache: Optional[Dict[str, dict]] = None

    def _schedule(self) -> Dict[str, dict]:
        if self._cache is None:
            self._cache = self._factory()
        return self._cache

    def refresh(self) -> None:
        """Clear the cache so the next access recomputes the schedule."""
        self._cache = None

    def __getitem__(self, key: str) -> dict:
        return self._schedule()[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._schedule())

    def __len__(self) -> int:
        return len(self._schedule())

"""Keeps two runs of the same periodic job from overlapping.

A run claims its job by inserting a row keyed by the job name; a second
insert fails on the primary key and that run is skipped. Claims older than
the TTL belong to crashed runs and are taken over.
"""
from __future__ import annotations

import logging
import os
import socket
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Iterator, Optional

from prometheus_client import Counter
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db import session_factory
from app.errors import storage_errors
from app.models import JobLock
from worker.events import log_event

JOBS_SKIPPED = Counter("job_skipped_total", "Job runs skipped because one was in progress", ["job"])

logger = logging.getLogger(__name__)


def _ttl_from_env() -> int:
    return int(os.getenv("JOB_LOCK_TTL_SECONDS", "600"))


def _owner() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


def acquire(db: Session, name: str, owner: str, ttl_seconds: int, now: Optional[datetime] = None) -> bool:
    now = now or datetime.now(timezone.utc)
    with storage_errors("job lock acquire"):
        db.execute(
            delete(JobLock).where(
                JobLock.name == name,
                JobLock.acquired_at < now - timedelta(seconds=ttl_seconds),
            )
        )
        db.commit()
        db.add(JobLock(name=name, owner=owner, acquired_at=now))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            return False
    return True


def release(db: Session, name: str, owner: str) -> None:
    with storage_errors("job lock release"):
        db.execute(delete(JobLock).where(JobLock.name == name, JobLock.owner == owner))
        db.commit()


@contextmanager
def job_lock(name: str, ttl_seconds: Optional[int] = None) -> Iterator[bool]:
    """Yield True when this run holds the lock for ``name``, False to skip."""
    ttl = ttl_seconds if ttl_seconds is not None else _ttl_from_env()
    owner = _owner()
    db = session_factory()()
    try:
        acquired = acquire(db, name, owner, ttl)
        if not acquired:
            JOBS_SKIPPED.labels(job=name).inc()
            log_event(logger, "job_skipped", level=logging.WARNING, job=name)
        try:
            yield acquired
        finally:
            if acquired:
                release(db, name, owner)
    finally:
        db.close()

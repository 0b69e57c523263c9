from __future__ import annotations

import logging
import smtplib
from datetime import datetime
from email.message import EmailMessage
from typing import Callable, Optional

from prometheus_client import Counter, Histogram
from sqlalchemy.orm import Session

from app.alerts import find_triggered, group_by_recipient, mark_sent
from app.db import session_factory
from app.notify import render_message, send_email
from worker.events import log_event
from worker.locks import job_lock
from worker.worker_app import celery_app


ALERTS_TRIGGERED = Counter("alerts_triggered_total", "Alerts found triggered by the notifier")
ALERT_EMAILS = Counter("alert_emails_total", "Alert emails attempted", ["status"])
NOTIFY_SECONDS = Histogram("notify_duration_seconds", "Time spent scanning and notifying")

logger = logging.getLogger(__name__)


def notify(
    db: Session,
    send: Callable[[EmailMessage], None],
    as_of: Optional[datetime] = None,
) -> int:
    """Email every user whose alerts fired, then mark those alerts sent.

    A failed scan raises before anything is sent. A failed email leaves that
    user's alerts unsent so the next run tries again; other users are still
    notified. Returns the number of alerts marked sent.
    """
    triggered = find_triggered(db, as_of=as_of)
    ALERTS_TRIGGERED.inc(len(triggered))
    marked = 0
    for recipient, alerts in group_by_recipient(triggered).items():
        try:
            send(render_message(recipient, alerts))
        except (smtplib.SMTPException, OSError) as exc:
            ALERT_EMAILS.labels(status="failed").inc()
            log_event(
                logger,
                "alert_email_failed",
                level=logging.ERROR,
                recipient=recipient,
                alerts=len(alerts),
                error=str(exc),
            )
            continue
        ALERT_EMAILS.labels(status="sent").inc()
        marked += mark_sent(db, alerts)
        for alert in alerts:
            log_event(
                logger,
                "alert_sent",
                alert_id=alert.alert_id,
                recipient=recipient,
                pair=f"{alert.from_ticker}/{alert.to_ticker}",
                operator=alert.operator,
                value=alert.value,
                price=alert.price,
            )
    return marked


@celery_app.task(bind=True, name="notify_alerts")
def notify_alerts(self: object) -> int:
    with job_lock("notify_alerts") as acquired:
        if not acquired:
            return 0
        with NOTIFY_SECONDS.time():
            db = session_factory()()
            try:
                return notify(db, send=send_email)
            finally:
                db.close()

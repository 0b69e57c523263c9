"""Alert emails.

The notifier job only needs something that takes an ``EmailMessage``; SMTP is
the production transport.
"""
from __future__ import annotations

import os
import smtplib
import ssl
from email.message import EmailMessage
from typing import Callable, Sequence

from .alerts import TriggeredAlert

SMTP_TIMEOUT_SECONDS = 10

Sender = Callable[[EmailMessage], None]


def alert_line(alert: TriggeredAlert) -> str:
    return f"1 {alert.from_name} {alert.operator} {alert.value} {alert.to_name}"


def render_message(
    recipient: str, alerts: Sequence[TriggeredAlert], sender: str | None = None
) -> EmailMessage:
    message = EmailMessage()
    message["To"] = recipient
    message["From"] = sender or os.getenv("SMTP_FROM", "")
    message["Subject"] = "Price Alert"
    lines = "\n".join(alert_line(alert) for alert in alerts)
    message.set_content(f"Prices have changed recently:\n\n{lines}\n")
    return message


def send_email(message: EmailMessage) -> None:
    """Deliver over SMTP: implicit TLS on port 465, STARTTLS otherwise."""
    host = os.getenv("SMTP_HOST", "localhost")
    port = int(os.getenv("SMTP_PORT", "587"))
    username = os.getenv("SMTP_USERNAME")
    password = os.getenv("SMTP_PASSWORD")
    context = ssl.create_default_context()

    if port == 465:
        client: smtplib.SMTP = smtplib.SMTP_SSL(
            host, port, timeout=SMTP_TIMEOUT_SECONDS, context=context
        )
    else:
        client = smtplib.SMTP(host, port, timeout=SMTP_TIMEOUT_SECONDS)
    with client:
        if port != 465:
            client.starttls(context=context)
        if username:
            client.login(username, password or "")
        client.send_message(message)

"""Price alerts: user-facing management and the trigger scan.

An alert fires when the newest price of its exact pair, observed no earlier
than the alert itself, is at or beyond the threshold. Once sent it stays sent;
editing the alert is the only way to arm it again.
"""
from __future__ import annotations

import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, aliased

from . import currencies
from .errors import NotFoundError, ValidationError, storage_errors
from .models import Alert, Currency, User
from .prices import latest_prices_query
from .store import append, current_live, current_rows, delete, new_version


@dataclass(frozen=True)
class AlertView:
    alert_id: str
    from_ticker: str
    from_name: str
    to_ticker: str
    to_name: str
    above: bool
    value: Decimal
    created_time: datetime
    sent: bool


@dataclass(frozen=True)
class TriggeredAlert:
    alert_id: str
    # row id of the alert version the scan matched
    version_id: int
    user_id: int
    email: str
    from_ticker: str
    from_name: str
    to_ticker: str
    to_name: str
    above: bool
    value: Decimal
    created_time: datetime
    price: Decimal
    price_time: datetime

    @property
    def operator(self) -> str:
        return ">=" if self.above else "<="


def is_triggered(above: bool, threshold: Decimal, price: Decimal) -> bool:
    if above:
        return price >= threshold
    return price <= threshold


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _validate(
    db: Session, from_ticker: str, to_ticker: str, value: Decimal
) -> tuple[str, str]:
    from_symbol = currencies.normalize_ticker(from_ticker)
    to_symbol = currencies.normalize_ticker(to_ticker)
    if from_symbol == to_symbol:
        raise ValidationError("from and to currencies must differ")
    if value <= 0:
        raise ValidationError("alert value must be positive")
    for symbol in (from_symbol, to_symbol):
        try:
            currencies.resolve(db, symbol)
        except NotFoundError as exc:
            raise ValidationError(str(exc)) from exc
    return from_symbol, to_symbol


def list_alerts(db: Session, user_id: int) -> List[AlertView]:
    """Live alerts owned by ``user_id``, newest first."""
    from_currency = aliased(Currency)
    to_currency = aliased(Currency)
    current = current_rows(Alert, Alert.user_id == user_id).subquery()
    alert = aliased(Alert, current)
    stmt = (
        select(alert, from_currency.name, to_currency.name)
        .outerjoin(from_currency, from_currency.ticker == alert.from_ticker)
        .outerjoin(to_currency, to_currency.ticker == alert.to_ticker)
        .order_by(alert.created_time.desc(), alert.id.desc())
    )
    with storage_errors("alert list"):
        rows = db.execute(stmt).all()
    return [
        AlertView(
            alert_id=row.alert_id,
            from_ticker=row.from_ticker,
            from_name=from_name or row.from_ticker,
            to_ticker=row.to_ticker,
            to_name=to_name or row.to_ticker,
            above=row.above,
            value=row.value,
            created_time=row.created_time,
            sent=row.sent,
        )
        for row, from_name, to_name in rows
    ]


def get_alert(db: Session, user_id: int, alert_id: str) -> Alert:
    """Current version of an alert owned by ``user_id``.

    Another user's alert is reported as missing, same as a deleted one.
    """
    with storage_errors("alert lookup"):
        row = current_live(db, Alert, alert_id=alert_id)
    if row is None or row.user_id != user_id:
        raise NotFoundError(f"alert {alert_id!r} not found")
    return row


def create_alert(
    db: Session,
    user_id: int,
    from_ticker: str,
    to_ticker: str,
    value: Decimal,
    above: bool,
) -> Alert:
    from_symbol, to_symbol = _validate(db, from_ticker, to_ticker, value)
    now = _utcnow()
    alert = Alert(
        alert_id=uuid.uuid4().hex,
        user_id=user_id,
        from_ticker=from_symbol,
        to_ticker=to_symbol,
        above=above,
        value=value,
        created_time=now,
        sent=False,
        is_deleted=False,
    )
    with storage_errors("alert insert"):
        append(db, alert, updated_at=now)
        db.commit()
    return alert


def update_alert(
    db: Session,
    user_id: int,
    alert_id: str,
    from_ticker: str,
    to_ticker: str,
    value: Decimal,
    above: bool,
) -> Alert:
    """Append an edited version of an alert.

    The edit counts from now: ``created_time`` is reset and the alert is
    armed again even if it had already been sent.
    """
    current = get_alert(db, user_id, alert_id)
    from_symbol, to_symbol = _validate(db, from_ticker, to_ticker, value)
    now = _utcnow()
    edited = new_version(
        current,
        from_ticker=from_symbol,
        to_ticker=to_symbol,
        value=value,
        above=above,
        created_time=now,
        sent=False,
    )
    with storage_errors("alert update"):
        append(db, edited, updated_at=now)
        db.commit()
    return edited


def delete_alert(db: Session, user_id: int, alert_id: str) -> None:
    current = get_alert(db, user_id, alert_id)
    with storage_errors("alert delete"):
        delete(db, current)
        db.commit()


def find_triggered(db: Session, as_of: Optional[datetime] = None) -> List[TriggeredAlert]:
    """Unsent live alerts whose condition holds on the newest price of their pair.

    Only prices at or after the alert's ``created_time`` count, so an alert
    whose condition is already true when it is set does not fire on old data.
    With ``as_of``, prices observed after that instant are ignored.
    """
    current = current_rows(Alert).where(Alert.sent.is_(False)).subquery()
    alert = aliased(Alert, current)
    prices = latest_prices_query(as_of)
    from_currency = aliased(Currency)
    to_currency = aliased(Currency)
    stmt = (
        select(
            alert,
            User.username,
            prices.c.value,
            prices.c.time,
            from_currency.name,
            to_currency.name,
        )
        .join(User, User.id == alert.user_id)
        .join(
            prices,
            (prices.c.from_ticker == alert.from_ticker)
            & (prices.c.to_ticker == alert.to_ticker),
        )
        .outerjoin(from_currency, from_currency.ticker == alert.from_ticker)
        .outerjoin(to_currency, to_currency.ticker == alert.to_ticker)
        .where(prices.c.time >= alert.created_time)
        .order_by(User.username, alert.created_time, alert.id)
    )
    with storage_errors("alert scan"):
        rows = db.execute(stmt).all()

    triggered: List[TriggeredAlert] = []
    for row, email, price, price_time, from_name, to_name in rows:
        if not is_triggered(row.above, row.value, price):
            continue
        triggered.append(
            TriggeredAlert(
                alert_id=row.alert_id,
                version_id=row.id,
                user_id=row.user_id,
                email=email,
                from_ticker=row.from_ticker,
                from_name=from_name or row.from_ticker,
                to_ticker=row.to_ticker,
                to_name=to_name or row.to_ticker,
                above=row.above,
                value=row.value,
                created_time=row.created_time,
                price=price,
                price_time=price_time,
            )
        )
    return triggered


def group_by_recipient(
    triggered: Iterable[TriggeredAlert],
) -> dict[str, List[TriggeredAlert]]:
    grouped: dict[str, List[TriggeredAlert]] = defaultdict(list)
    for item in triggered:
        grouped[item.email].append(item)
    return dict(grouped)


def mark_sent(db: Session, triggered: Iterable[TriggeredAlert]) -> int:
    """Append a sent version of each notified alert, all in one transaction.

    An alert is only marked when its current version is still the one the
    scan matched; alerts deleted, already sent or edited in the meantime are
    skipped. Returns how many versions were written.
    """
    matched = {item.alert_id: item.version_id for item in triggered}
    written = 0
    with storage_errors("alert mark sent"):
        try:
            for alert_id, version_id in matched.items():
                current = current_live(db, Alert, alert_id=alert_id)
                if current is None or current.sent or current.id != version_id:
                    continue
                append(db, new_version(current, sent=True))
                written += 1
            db.commit()
        except Exception:
            db.rollback()
            raise
    return written

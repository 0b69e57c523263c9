from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .currencies import BRIDGE_CURRENCY, normalize_ticker
from .errors import storage_errors
from .models import Price

Pair = tuple[str, str]


@dataclass(frozen=True)
class Rate:
    value: Decimal
    time: datetime


@dataclass(frozen=True)
class Quote:
    """A price read from the market feed, not yet stored."""

    from_ticker: str
    to_ticker: str
    value: Decimal


def price_window() -> timedelta:
    """How far back batch lookups scan; older prices count as unknown."""
    return timedelta(days=int(os.getenv("PRICE_WINDOW_DAYS", "90")))


def latest_rate(
    db: Session,
    from_ticker: str,
    to_ticker: str,
    as_of: Optional[datetime] = None,
) -> Optional[Rate]:
    """Most recent price for exactly ``from_ticker -> to_ticker``.

    A price for A->B says nothing about B->A.
    """
    stmt = select(Price.value, Price.time).where(
        Price.from_ticker == normalize_ticker(from_ticker),
        Price.to_ticker == normalize_ticker(to_ticker),
    )
    if as_of is not None:
        stmt = stmt.where(Price.time <= as_of)
    stmt = stmt.order_by(Price.time.desc(), Price.id.desc()).limit(1)
    with storage_errors("price lookup"):
        row = db.execute(stmt).first()
    if row is None:
        return None
    return Rate(value=row.value, time=row.time)


def latest_prices_query(as_of: Optional[datetime] = None):
    """Subquery holding the newest price row of every pair."""
    rank = (
        func.row_number()
        .over(
            partition_by=(Price.from_ticker, Price.to_ticker),
            order_by=(Price.time.desc(), Price.id.desc()),
        )
        .label("price_rank")
    )
    ranked = select(Price.id, rank)
    if as_of is not None:
        ranked = ranked.where(Price.time <= as_of)
    ranked = ranked.subquery()
    return (
        select(Price)
        .join(ranked, Price.id == ranked.c.id)
        .where(ranked.c.price_rank == 1)
        .subquery("latest_prices")
    )


def latest_rates_for(
    db: Session,
    tickers: Iterable[str],
    to_ticker: str,
    now: Optional[datetime] = None,
    window: Optional[timedelta] = None,
) -> dict[Pair, Rate]:
    """Newest rate of each ticker against ``to_ticker`` and against BTC.

    Both targets are fetched in one query because valuation needs the BTC
    rates to bridge assets with no direct price. Pairs with no price inside
    the window are simply missing from the result.
    """
    sources = sorted({normalize_ticker(t) for t in tickers})
    if not sources:
        return {}
    targets = sorted({normalize_ticker(to_ticker), BRIDGE_CURRENCY})
    cutoff = (now or datetime.now(timezone.utc)) - (window or price_window())

    rank = (
        func.row_number()
        .over(
            partition_by=(Price.from_ticker, Price.to_ticker),
            order_by=(Price.time.desc(), Price.id.desc()),
        )
        .label("price_rank")
    )
    ranked = (
        select(Price.from_ticker, Price.to_ticker, Price.value, Price.time, rank)
        .where(
            Price.from_ticker.in_(sources),
            Price.to_ticker.in_(targets),
            Price.time >= cutoff,
        )
        .subquery()
    )
    stmt = select(
        ranked.c.from_ticker, ranked.c.to_ticker, ranked.c.value, ranked.c.time
    ).where(ranked.c.price_rank == 1)
    with storage_errors("price batch lookup"):
        rows = db.execute(stmt).all()
    return {
        (row.from_ticker, row.to_ticker): Rate(value=row.value, time=row.time)
        for row in rows
    }


def record_prices(db: Session, quotes: Iterable[Quote], time: datetime) -> int:
    """Append one price row per quote, all observed at ``time``. Does not commit."""
    rows = [
        Price(
            from_ticker=q.from_ticker,
            to_ticker=q.to_ticker,
            time=time,
            value=q.value,
        )
        for q in quotes
    ]
    with storage_errors("price insert"):
        db.add_all(rows)
        db.flush()
    return len(rows)

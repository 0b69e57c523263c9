from __future__ import annotations

from typing import Iterable, List

from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import NotFoundError, storage_errors
from .models import Currency

# Valid valuation targets, in display order. Fixed for a deployment.
REFERENCE_CURRENCIES = ("USD", "GBP", "BTC")

# Intermediate hop when an asset has no direct rate to the reference currency.
BRIDGE_CURRENCY = "BTC"


def normalize_ticker(ticker: str) -> str:
    return ticker.strip().upper()


def is_reference_currency(ticker: str) -> bool:
    return normalize_ticker(ticker) in REFERENCE_CURRENCIES


def resolve(db: Session, ticker: str) -> Currency:
    """Return the currency for ``ticker`` or raise NotFoundError."""
    symbol = normalize_ticker(ticker)
    with storage_errors("currency lookup"):
        currency = db.execute(
            select(Currency).where(Currency.ticker == symbol)
        ).scalar_one_or_none()
    if currency is None:
        raise NotFoundError(f"unknown currency {symbol!r}")
    return currency


def list_all(db: Session) -> List[Currency]:
    with storage_errors("currency list"):
        return list(
            db.execute(select(Currency).order_by(Currency.name, Currency.ticker))
            .scalars()
            .all()
        )


def names_for(db: Session, tickers: Iterable[str]) -> dict[str, str]:
    """Map tickers to display names, falling back to the ticker itself."""
    wanted = {normalize_ticker(t) for t in tickers}
    if not wanted:
        return {}
    with storage_errors("currency lookup"):
        rows = db.execute(
            select(Currency.ticker, Currency.name).where(Currency.ticker.in_(sorted(wanted)))
        ).all()
    names = {ticker: ticker for ticker in wanted}
    names.update({ticker: name for ticker, name in rows})
    return names


def reference_currency_list(db: Session) -> List[Currency]:
    """Reference currencies present in the directory, in preference order."""
    with storage_errors("currency list"):
        rows = (
            db.execute(select(Currency).where(Currency.ticker.in_(REFERENCE_CURRENCIES)))
            .scalars()
            .all()
        )
    by_ticker = {row.ticker: row for row in rows}
    return [by_ticker[t] for t in REFERENCE_CURRENCIES if t in by_ticker]


def ensure_currencies(db: Session, tickers: Iterable[str]) -> int:
    """Insert any tickers not yet known, named after themselves.

    Returns the number of currencies added. Does not commit.
    """
    wanted = sorted({normalize_ticker(t) for t in tickers if t.strip()})
    if not wanted:
        return 0
    with storage_errors("currency insert"):
        existing = set(
            db.execute(select(Currency.ticker).where(Currency.ticker.in_(wanted)))
            .scalars()
            .all()
        )
        missing = [t for t in wanted if t not in existing]
        db.add_all(Currency(ticker=t, name=t) for t in missing)
        db.flush()
    return len(missing)

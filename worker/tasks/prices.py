from __future__ import annotations

import logging
import os
import time
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional

import requests
from prometheus_client import Counter, Histogram
from sqlalchemy.orm import Session

from app.currencies import ensure_currencies
from app.db import session_factory
from app.errors import FeedError, storage_errors
from app.prices import Quote, record_prices
from worker.events import log_event
from worker.locks import job_lock
from worker.worker_app import celery_app


PRICES_INGESTED = Counter("prices_ingested_total", "Price rows written by ingestion")
INGEST_FAILURE = Counter("ingest_failure_total", "Failed ingestion runs")
INGEST_DURATION = Histogram("ingest_duration_seconds", "Duration of ingestion runs")

DEFAULT_API_URL = "https://api.binance.com"
TICKER_PATH = "/api/v3/ticker/price"

# Checked in order; when two symbols give the same pair the earlier suffix wins.
QUOTE_SUFFIXES = ("BTC", "USD", "USDT", "USDC", "GBP")
QUOTE_ALIASES = {"USDT": "USD", "USDC": "USD"}
# Leveraged and derivative tokens are not real spot prices.
LEVERAGED_SUFFIXES = ("DOWN", "UP", "BULL", "BEAR")
# Stands in for zero or negative prices so conversions never divide by zero.
# Smallest value a Numeric(38, 18) price column can hold.
MIN_PRICE = Decimal("1e-18")

logger = logging.getLogger(__name__)


def _ticker_url() -> str:
    return os.getenv("BINANCE_API_URL", DEFAULT_API_URL).rstrip("/") + TICKER_PATH


def _check_payload(payload: Any) -> list[Mapping[str, Any]]:
    if isinstance(payload, list) and all(
        isinstance(item, Mapping) and "symbol" in item and "price" in item
        for item in payload
    ):
        return payload
    if isinstance(payload, Mapping) and payload.get("msg"):
        raise FeedError(f"binance api error: {payload.get('code')} {payload['msg']}")
    raise FeedError(f"binance api returned unexpected payload: {str(payload)[:200]}")


def fetch_ticker_prices() -> list[Mapping[str, Any]]:
    """Download every ``{symbol, price}`` pair from the exchange.

    Retries with a short backoff on network errors, 429 and 5xx responses.
    An error payload or an unexpected shape fails immediately.
    """
    url = _ticker_url()
    delays = [1, 2, 4]
    last_exc: Exception | None = None
    for delay in [0] + delays:
        if delay:
            time.sleep(delay)
        try:
            resp = requests.get(url, timeout=10)
        except requests.RequestException as e:
            last_exc = e
            continue
        if resp.status_code == 429 or resp.status_code >= 500:
            last_exc = FeedError(f"binance api returned HTTP {resp.status_code}")
            continue
        try:
            payload = resp.json()
        except ValueError as e:
            raise FeedError("binance api returned invalid JSON") from e
        return _check_payload(payload)
    raise FeedError(f"binance api unreachable after {len(delays) + 1} attempts") from last_exc


def _is_spot_base(base: str) -> bool:
    if not base or base.endswith(LEVERAGED_SUFFIXES):
        return False
    # e.g. BNBBUSD leaves "BNBB" once USD is stripped
    return not (len(base) >= 4 and base.endswith("B"))


def _parse_price(raw: Any) -> Decimal:
    try:
        value = Decimal(str(raw))
    except InvalidOperation as e:
        raise FeedError(f"malformed price {raw!r}") from e
    if not value.is_finite():
        raise FeedError(f"malformed price {raw!r}")
    if value <= 0:
        return MIN_PRICE
    return value


def parse_tickers(results: Iterable[Mapping[str, Any]]) -> list[Quote]:
    """Split exchange symbols such as ``ETHUSDT`` into ``ETH -> USD`` quotes."""
    chosen: dict[tuple[str, str], tuple[int, Quote]] = {}
    for item in results:
        symbol = str(item["symbol"]).strip().upper()
        for rank, suffix in enumerate(QUOTE_SUFFIXES):
            if not symbol.endswith(suffix):
                continue
            base = symbol[: -len(suffix)]
            quote = QUOTE_ALIASES.get(suffix, suffix)
            if not _is_spot_base(base) or base == quote:
                continue
            pair = (base, quote)
            if pair in chosen and chosen[pair][0] <= rank:
                continue
            chosen[pair] = (rank, Quote(base, quote, _parse_price(item["price"])))
    return [q for _, q in chosen.values()]


def ingest(
    db: Session,
    results: Optional[Iterable[Mapping[str, Any]]] = None,
    now: Optional[datetime] = None,
) -> int:
    """Store one snapshot of market prices; all rows or none.

    Returns the number of price rows written.
    """
    if results is None:
        results = fetch_ticker_prices()
    quotes = parse_tickers(results)
    observed_at = now or datetime.now(timezone.utc)
    try:
        added = ensure_currencies(
            db, [q.from_ticker for q in quotes] + [q.to_ticker for q in quotes]
        )
        written = record_prices(db, quotes, observed_at)
        with storage_errors("price snapshot commit"):
            db.commit()
    except Exception:
        db.rollback()
        raise
    log_event(
        logger,
        "prices_ingested",
        prices=written,
        new_currencies=added,
        observed_at=observed_at.isoformat(),
    )
    return written


@celery_app.task(bind=True, name="ingest_prices")
def ingest_prices(self: object) -> int:
    with job_lock("ingest_prices") as acquired:
        if not acquired:
            return 0
        with INGEST_DURATION.time():
            db = session_factory()()
            try:
                written = ingest(db)
            except Exception as exc:
                INGEST_FAILURE.inc()
                log_event(logger, "ingest_failed", level=logging.ERROR, error=str(exc))
                raise
            finally:
                db.close()
    PRICES_INGESTED.inc(written)
    return written

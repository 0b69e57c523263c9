from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any

import requests
from prometheus_client import REGISTRY
from pytest import MonkeyPatch, raises
from sqlalchemy.orm import Session

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


class _Resp:
    def __init__(self, data: Any, status_code: int = 200) -> None:
        self._data = data
        self.status_code = status_code

    def json(self) -> Any:
        return self._data


def _setup_db(monkeypatch: MonkeyPatch, tmp_path: Path) -> Session:
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path}/ingest.db")
    from app.db import create_all, get_engine

    create_all()
    return Session(bind=get_engine())


def _pairs(results: list[dict[str, str]]) -> dict[tuple[str, str], Decimal]:
    from worker.tasks.prices import parse_tickers

    return {(q.from_ticker, q.to_ticker): q.value for q in parse_tickers(results)}


def test_parse_tickers_splits_symbols() -> None:
    pairs = _pairs(
        [
            {"symbol": "ETHBTC", "price": "0.05"},
            {"symbol": "BTCGBP", "price": "30000"},
            {"symbol": "ADAUSDC", "price": "0.45"},
            {"symbol": "XRPEUR", "price": "0.5"},
        ]
    )
    assert pairs == {
        ("ETH", "BTC"): Decimal("0.05"),
        ("BTC", "GBP"): Decimal("30000"),
        ("ADA", "USD"): Decimal("0.45"),
    }


def test_parse_tickers_skips_leveraged_tokens() -> None:
    pairs = _pairs(
        [
            {"symbol": "BTCUPUSDT", "price": "10"},
            {"symbol": "ETHDOWNUSDT", "price": "10"},
            {"symbol": "XRPBULLUSDT", "price": "10"},
            {"symbol": "EOSBEARUSDT", "price": "10"},
            {"symbol": "BNBBUSD", "price": "10"},
            {"symbol": "BTC", "price": "1"},
            {"symbol": "SOLUSDT", "price": "20"},
        ]
    )
    assert pairs == {("SOL", "USD"): Decimal("20")}


def test_parse_tickers_earlier_suffix_wins_for_duplicate_pairs() -> None:
    pairs = _pairs(
        [
            {"symbol": "ETHUSDC", "price": "1999"},
            {"symbol": "ETHUSDT", "price": "2001"},
            {"symbol": "ETHUSD", "price": "2000"},
        ]
    )
    assert pairs == {("ETH", "USD"): Decimal("2000")}


def test_parse_tickers_clamps_non_positive_prices() -> None:
    from worker.tasks.prices import MIN_PRICE

    pairs = _pairs([{"symbol": "DEADBTC", "price": "0.00000000"}, {"symbol": "OLDUSD", "price": "-1"}])
    assert pairs == {("DEAD", "BTC"): MIN_PRICE, ("OLD", "USD"): MIN_PRICE}
    # must survive a Numeric(38, 18) column without rounding to zero
    assert MIN_PRICE > 0
    assert MIN_PRICE.quantize(Decimal("1e-18")) == MIN_PRICE


def test_parse_tickers_rejects_malformed_price() -> None:
    from app.errors import FeedError

    with raises(FeedError):
        _pairs([{"symbol": "ETHBTC", "price": "n/a"}])


def test_ingest_stores_prices_and_currencies(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    from app.models import Currency, Price
    from worker.tasks.prices import ingest

    db = _setup_db(monkeypatch, tmp_path)
    written = ingest(
        db,
        results=[
            {"symbol": "ETHBTC", "price": "0.05"},
            {"symbol": "BTCUSDT", "price": "40000.12"},
        ],
        now=NOW,
    )

    assert written == 2
    assert sorted(c.ticker for c in db.query(Currency).all()) == ["BTC", "ETH", "USD"]
    rows = db.query(Price).order_by(Price.from_ticker).all()
    assert [(r.from_ticker, r.to_ticker, r.value, r.time) for r in rows] == [
        ("BTC", "USD", Decimal("40000.12"), NOW),
        ("ETH", "BTC", Decimal("0.05"), NOW),
    ]


def test_malformed_batch_writes_nothing(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    from app.errors import FeedError
    from app.models import Currency, Price
    from worker.tasks.prices import ingest

    db = _setup_db(monkeypatch, tmp_path)
    with raises(FeedError):
        ingest(
            db,
            results=[
                {"symbol": "ETHBTC", "price": "0.05"},
                {"symbol": "BTCUSDT", "price": "oops"},
            ],
            now=NOW,
        )
    assert db.query(Price).count() == 0
    assert db.query(Currency).count() == 0


def test_fetch_retries_then_succeeds(monkeypatch: MonkeyPatch) -> None:
    calls = {"n": 0}
    slept: list[float] = []

    def _fake_get(url: str, timeout: int = 10) -> _Resp:
        calls["n"] += 1
        assert url.endswith("/api/v3/ticker/price")
        if calls["n"] == 1:
            raise requests.ConnectionError("reset")
        if calls["n"] == 2:
            return _Resp({}, status_code=429)
        return _Resp([{"symbol": "ETHBTC", "price": "0.05"}])

    import time

    monkeypatch.setattr(requests, "get", _fake_get)
    monkeypatch.setattr(time, "sleep", slept.append)

    from worker.tasks.prices import fetch_ticker_prices

    assert fetch_ticker_prices() == [{"symbol": "ETHBTC", "price": "0.05"}]
    assert calls["n"] == 3
    assert slept == [1, 2]


def test_fetch_gives_up_after_retries(monkeypatch: MonkeyPatch) -> None:
    from app.errors import FeedError

    def _fake_get(url: str, timeout: int = 10) -> _Resp:
        return _Resp({}, status_code=503)

    import time

    monkeypatch.setattr(requests, "get", _fake_get)
    monkeypatch.setattr(time, "sleep", lambda s: None)

    from worker.tasks.prices import fetch_ticker_prices

    with raises(FeedError):
        fetch_ticker_prices()


def test_error_payload_fails_without_retry(monkeypatch: MonkeyPatch) -> None:
    from app.errors import FeedError

    calls = {"n": 0}

    def _fake_get(url: str, timeout: int = 10) -> _Resp:
        calls["n"] += 1
        return _Resp({"code": -1003, "msg": "Too much request weight used"}, status_code=200)

    monkeypatch.setattr(requests, "get", _fake_get)

    from worker.tasks.prices import fetch_ticker_prices

    with raises(FeedError, match="Too much request weight"):
        fetch_ticker_prices()
    assert calls["n"] == 1


def test_api_url_from_env(monkeypatch: MonkeyPatch) -> None:
    seen: list[str] = []

    def _fake_get(url: str, timeout: int = 10) -> _Resp:
        seen.append(url)
        return _Resp([])

    monkeypatch.setenv("BINANCE_API_URL", "http://feed.local/")
    monkeypatch.setattr(requests, "get", _fake_get)

    from worker.tasks.prices import fetch_ticker_prices

    assert fetch_ticker_prices() == []
    assert seen == ["http://feed.local/api/v3/ticker/price"]


def test_ingest_task_records_failure_metric(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    from app.errors import FeedError

    _setup_db(monkeypatch, tmp_path)

    def _fake_get(url: str, timeout: int = 10) -> _Resp:
        return _Resp({"unexpected": True})

    monkeypatch.setattr(requests, "get", _fake_get)

    from worker.tasks.prices import ingest_prices

    before = REGISTRY.get_sample_value("ingest_failure_total") or 0.0
    with raises(FeedError):
        ingest_prices.run()
    assert REGISTRY.get_sample_value("ingest_failure_total") == before + 1


def test_ingest_task_counts_prices(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    from app.models import Price

    db = _setup_db(monkeypatch, tmp_path)

    def _fake_get(url: str, timeout: int = 10) -> _Resp:
        return _Resp([{"symbol": "ETHBTC", "price": "0.05"}, {"symbol": "BTCGBP", "price": "30000"}])

    monkeypatch.setattr(requests, "get", _fake_get)

    from worker.tasks.prices import ingest_prices

    before = REGISTRY.get_sample_value("prices_ingested_total") or 0.0
    assert ingest_prices.run() == 2
    assert REGISTRY.get_sample_value("prices_ingested_total") == before + 2
    assert db.query(Price).count() == 2

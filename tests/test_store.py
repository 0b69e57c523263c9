from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

from pytest import MonkeyPatch, raises
from sqlalchemy.orm import Session


def _setup_db(monkeypatch: MonkeyPatch, tmp_path: Path) -> Session:
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path}/store.db")
    from app.db import create_all, get_engine

    create_all()
    return Session(bind=get_engine())


def _portfolio(user_id: int, cash: str) -> object:
    from app.models import Portfolio

    return Portfolio(user_id=user_id, currency_ticker="USD", cash=Decimal(cash))


def test_newest_version_wins(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    from app.models import Portfolio
    from app.store import append, current_version

    db = _setup_db(monkeypatch, tmp_path)
    t0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
    append(db, _portfolio(1, "10"), updated_at=t0)
    append(db, _portfolio(1, "30"), updated_at=t0 + timedelta(minutes=5))
    # inserted later but stamped earlier: not the current version
    append(db, _portfolio(1, "20"), updated_at=t0 + timedelta(minutes=1))
    db.commit()

    row = current_version(db, Portfolio, user_id=1)
    assert row is not None
    assert row.cash == Decimal("30")


def test_equal_timestamps_fall_back_to_row_id(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    from app.models import Portfolio
    from app.store import append, current_version

    db = _setup_db(monkeypatch, tmp_path)
    t0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
    append(db, _portfolio(1, "1"), updated_at=t0)
    append(db, _portfolio(1, "2"), updated_at=t0)
    db.commit()

    row = current_version(db, Portfolio, user_id=1)
    assert row is not None and row.cash == Decimal("2")


def test_deleted_entity_is_absent_but_kept(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    from app.models import Portfolio
    from app.store import append, current_live, current_version, delete

    db = _setup_db(monkeypatch, tmp_path)
    row = append(db, _portfolio(1, "5"))
    delete(db, row)
    db.commit()

    assert current_live(db, Portfolio, user_id=1) is None
    latest = current_version(db, Portfolio, user_id=1)
    assert latest is not None and latest.is_deleted
    assert latest.cash == Decimal("5")
    assert db.query(Portfolio).count() == 2


def test_missing_key_column_is_rejected(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    from app.models import Asset
    from app.store import current_version

    db = _setup_db(monkeypatch, tmp_path)
    with raises(TypeError):
        current_version(db, Asset, user_id=1)


def test_current_rows_one_live_row_per_key(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    from app.models import Asset
    from app.store import append, current_rows, delete, new_version

    db = _setup_db(monkeypatch, tmp_path)
    btc = append(db, Asset(user_id=1, currency_ticker="BTC", purchased=Decimal("100"), amount=Decimal("1")))
    append(db, new_version(btc, amount=Decimal("2")))
    eth = append(db, Asset(user_id=1, currency_ticker="ETH", purchased=Decimal("50"), amount=Decimal("3")))
    delete(db, eth)
    append(db, Asset(user_id=2, currency_ticker="BTC", purchased=Decimal("1"), amount=Decimal("9")))
    db.commit()

    rows = db.execute(current_rows(Asset, Asset.user_id == 1)).scalars().all()
    assert [(r.currency_ticker, r.amount) for r in rows] == [("BTC", Decimal("2"))]


def test_mutable_filter_applies_after_picking_newest(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    from app.models import Portfolio
    from app.store import append, current_rows, new_version

    db = _setup_db(monkeypatch, tmp_path)
    first = append(db, _portfolio(1, "0"))
    append(db, new_version(first, cash=Decimal("7")))
    db.commit()

    stmt = current_rows(Portfolio).where(Portfolio.currency_ticker == "USD")
    rows = db.execute(stmt).scalars().all()
    assert len(rows) == 1 and rows[0].cash == Decimal("7")


def test_new_version_copies_entity_columns(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    from app.models import Portfolio
    from app.store import append, new_version

    db = _setup_db(monkeypatch, tmp_path)
    row = append(db, _portfolio(3, "12.5"))
    db.commit()

    copy = new_version(row, cash=Decimal("1"))
    assert isinstance(copy, Portfolio)
    assert copy.id is None
    assert copy.user_id == 3
    assert copy.currency_ticker == "USD"
    assert copy.cash == Decimal("1")
    assert copy.is_deleted is False

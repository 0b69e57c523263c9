from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.orm import Session

from app import currencies
from app.db import get_session
from app.errors import storage_errors
from app.models import Price
from app.prices import latest_rate


class PricePoint(BaseModel):
    time: datetime
    value: Decimal

    model_config = ConfigDict(from_attributes=True)


router = APIRouter(prefix="/prices", tags=["prices"])


def _parse_window_to_cutoff(window: str) -> datetime:
    now = datetime.now(timezone.utc)
    w = window.strip().lower()
    if w.endswith("h"):
        hours = int(w[:-1])
        return now - timedelta(hours=hours)
    if w.endswith("d"):
        days = int(w[:-1])
        return now - timedelta(days=days)
    # fallback: treat as minutes
    minutes = int(w)
    return now - timedelta(minutes=minutes)


@router.get("/", response_model=List[PricePoint])
def get_prices(
    from_ticker: str = Query(..., alias="from", min_length=2, max_length=20),
    to_ticker: str = Query(..., alias="to", min_length=2, max_length=20),
    window: str = Query("24h", description="e.g., 24h, 1h, 7d or minutes"),
    db: Session = Depends(get_session),
) -> List[PricePoint]:
    """Price history of one pair, oldest first."""
    source = currencies.resolve(db, from_ticker)
    target = currencies.resolve(db, to_ticker)
    try:
        cutoff = _parse_window_to_cutoff(window)
    except (ValueError, OverflowError):
        raise HTTPException(status_code=400, detail="invalid window")

    q = (
        select(Price)
        .where(Price.from_ticker == source.ticker, Price.to_ticker == target.ticker)
        .where(Price.time >= cutoff)
        .order_by(Price.time, Price.id)
    )
    with storage_errors("price history"):
        rows = db.execute(q).scalars().all()
    return [PricePoint.model_validate(r) for r in rows]


@router.get("/latest", response_model=PricePoint)
def get_latest_price(
    from_ticker: str = Query(..., alias="from", min_length=2, max_length=20),
    to_ticker: str = Query(..., alias="to", min_length=2, max_length=20),
    db: Session = Depends(get_session),
) -> PricePoint:
    rate = latest_rate(db, from_ticker, to_ticker)
    if rate is None:
        raise HTTPException(status_code=404, detail="no price for this pair")
    return PricePoint(time=rate.time, value=rate.value)

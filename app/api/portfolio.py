from __future__ import annotations

from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app import portfolio
from app.api.deps import current_user
from app.db import get_session
from app.metrics import PORTFOLIO_TRADES
from app.models import User


class AssetOut(BaseModel):
    ticker: str
    name: str
    amount: Decimal
    purchased: Decimal
    value: Decimal
    share: Decimal
    performance: Decimal
    priced: bool

    model_config = ConfigDict(from_attributes=True)


class PortfolioOut(BaseModel):
    currency_ticker: str
    currency_name: str
    cash: Decimal
    total_value: Decimal
    total_purchased: Decimal
    total_profit: Decimal
    average_performance: Decimal
    assets: List[AssetOut]

    model_config = ConfigDict(from_attributes=True)


class PortfolioIn(BaseModel):
    currency_ticker: str = Field(..., min_length=2, max_length=20)
    cash: Decimal = Field(..., ge=0)


class TradeIn(BaseModel):
    # fiat in the portfolio currency, crypto in units of the asset
    fiat_amount: Decimal
    crypto_amount: Decimal


router = APIRouter(prefix="/portfolio", tags=["portfolio"])


@router.get("/", response_model=PortfolioOut)
def get_portfolio(
    user: User = Depends(current_user),
    db: Session = Depends(get_session),
) -> PortfolioOut:
    return PortfolioOut.model_validate(portfolio.valuate(db, user.id))


@router.put("/", response_model=PortfolioOut)
def update_portfolio(
    payload: PortfolioIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_session),
) -> PortfolioOut:
    portfolio.update_portfolio(db, user.id, payload.currency_ticker, payload.cash)
    return PortfolioOut.model_validate(portfolio.valuate(db, user.id))


@router.get("/{ticker}", response_model=AssetOut)
def get_asset(
    ticker: str,
    user: User = Depends(current_user),
    db: Session = Depends(get_session),
) -> AssetOut:
    return AssetOut.model_validate(portfolio.get_asset(db, user.id, ticker))


@router.post("/{ticker}/buy", response_model=PortfolioOut)
def buy_asset(
    ticker: str,
    payload: TradeIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_session),
) -> PortfolioOut:
    portfolio.buy(db, user.id, ticker, payload.fiat_amount, payload.crypto_amount)
    PORTFOLIO_TRADES.labels(side="buy").inc()
    return PortfolioOut.model_validate(portfolio.valuate(db, user.id))


@router.post("/{ticker}/sell", response_model=PortfolioOut)
def sell_asset(
    ticker: str,
    payload: TradeIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_session),
) -> PortfolioOut:
    portfolio.sell(db, user.id, ticker, payload.fiat_amount, payload.crypto_amount)
    PORTFOLIO_TRADES.labels(side="sell").inc()
    return PortfolioOut.model_validate(portfolio.valuate(db, user.id))

"""Portfolio ledger and valuation.

Holdings are valued in the portfolio's reference currency. An asset without a
direct price is converted through BTC when both hops are known, and is worth
zero otherwise. Cost basis uses average-cost accounting: selling part of a
position removes the same fraction of its ``purchased`` total.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from . import currencies
from .currencies import BRIDGE_CURRENCY
from .errors import NotFoundError, ValidationError, storage_errors
from .models import Asset, Portfolio
from .prices import Rate, latest_rates_for
from .store import append, current_live, current_rows, new_version

ZERO = Decimal("0")
HUNDRED = Decimal("100")
DEFAULT_REFERENCE_CURRENCY = "USD"


@dataclass(frozen=True)
class AssetValuation:
    ticker: str
    name: str
    amount: Decimal
    purchased: Decimal
    value: Decimal
    share: Decimal
    performance: Decimal
    # False when no direct or bridged price was found and value is zero
    priced: bool


@dataclass(frozen=True)
class PortfolioValuation:
    currency_ticker: str
    currency_name: str
    cash: Decimal
    total_value: Decimal
    total_purchased: Decimal
    total_profit: Decimal
    average_performance: Decimal
    assets: List[AssetValuation] = field(default_factory=list)


def _percent_change(value: Decimal, basis: Decimal) -> Decimal:
    if basis == 0:
        return ZERO
    return (value / basis - 1) * HUNDRED


def _share(value: Decimal, total: Decimal) -> Decimal:
    if total == 0:
        return ZERO
    return value / total * HUNDRED


def get_portfolio(db: Session, user_id: int) -> Portfolio:
    """The user's current portfolio, or an unsaved empty USD one."""
    with storage_errors("portfolio lookup"):
        portfolio = current_live(db, Portfolio, user_id=user_id)
    if portfolio is None:
        portfolio = Portfolio(
            user_id=user_id,
            currency_ticker=DEFAULT_REFERENCE_CURRENCY,
            cash=ZERO,
            is_deleted=False,
        )
    return portfolio


def list_assets(db: Session, user_id: int) -> List[Asset]:
    with storage_errors("asset list"):
        return list(
            db.execute(current_rows(Asset, Asset.user_id == user_id))
            .scalars()
            .all()
        )


def _value_asset(
    asset: Asset,
    reference: str,
    rates: dict[tuple[str, str], Rate],
) -> tuple[Decimal, bool]:
    if asset.currency_ticker == reference:
        return asset.amount, True
    direct = rates.get((asset.currency_ticker, reference))
    if direct is not None:
        return asset.amount * direct.value, True
    to_bridge = rates.get((asset.currency_ticker, BRIDGE_CURRENCY))
    bridge_to_reference = rates.get((BRIDGE_CURRENCY, reference))
    if to_bridge is not None and bridge_to_reference is not None:
        return asset.amount * to_bridge.value * bridge_to_reference.value, True
    return ZERO, False


def valuate(db: Session, user_id: int, now: Optional[datetime] = None) -> PortfolioValuation:
    portfolio = get_portfolio(db, user_id)
    reference = portfolio.currency_ticker
    assets = list_assets(db, user_id)

    tickers = {asset.currency_ticker for asset in assets} | {BRIDGE_CURRENCY}
    rates = latest_rates_for(db, tickers, reference, now=now)
    names = currencies.names_for(db, tickers | {reference})

    values = [(asset, *_value_asset(asset, reference, rates)) for asset in assets]
    total_value = sum((value for _, value, _ in values), ZERO) + portfolio.cash
    total_purchased = sum((asset.purchased for asset in assets), ZERO) + portfolio.cash

    lines = [
        AssetValuation(
            ticker=asset.currency_ticker,
            name=names.get(asset.currency_ticker, asset.currency_ticker),
            amount=asset.amount,
            purchased=asset.purchased,
            value=value,
            share=_share(value, total_value),
            performance=_percent_change(value, asset.purchased),
            priced=priced,
        )
        for asset, value, priced in values
    ]
    lines.sort(key=lambda line: line.ticker)
    lines.sort(key=lambda line: line.value, reverse=True)

    return PortfolioValuation(
        currency_ticker=reference,
        currency_name=names.get(reference, reference),
        cash=portfolio.cash,
        total_value=total_value,
        total_purchased=total_purchased,
        total_profit=total_value - total_purchased,
        average_performance=_percent_change(total_value, total_purchased),
        assets=lines,
    )


def get_asset(db: Session, user_id: int, ticker: str) -> AssetValuation:
    """Valuation line for one held asset."""
    symbol = currencies.normalize_ticker(ticker)
    valuation = valuate(db, user_id)
    for line in valuation.assets:
        if line.ticker == symbol:
            return line
    raise NotFoundError(f"no {symbol} asset in portfolio")


def update_portfolio(
    db: Session, user_id: int, currency_ticker: str, cash: Decimal
) -> Portfolio:
    """Set the reference currency and cash balance."""
    symbol = currencies.normalize_ticker(currency_ticker)
    if not currencies.is_reference_currency(symbol):
        raise ValidationError(f"{symbol} cannot be used as a portfolio currency")
    if cash < 0:
        raise ValidationError("cash cannot be negative")
    try:
        currencies.resolve(db, symbol)
    except NotFoundError as exc:
        raise ValidationError(str(exc)) from exc

    current = get_portfolio(db, user_id)
    updated = new_version(current, currency_ticker=symbol, cash=cash, is_deleted=False)
    with storage_errors("portfolio update"):
        append(db, updated)
        db.commit()
    return updated


def _check_trade_amounts(fiat_amount: Decimal, crypto_amount: Decimal) -> None:
    if crypto_amount <= 0:
        raise ValidationError("crypto amount must be positive")
    if fiat_amount < 0:
        raise ValidationError("fiat amount cannot be negative")


def _commit_trade(db: Session, portfolio: Portfolio, asset: Asset) -> tuple[Portfolio, Asset]:
    """Append the new asset and portfolio versions as one transaction."""
    with storage_errors("portfolio trade"):
        try:
            append(db, asset)
            append(db, portfolio, updated_at=asset.updated_at)
            db.commit()
        except Exception:
            db.rollback()
            raise
    return portfolio, asset


def buy(
    db: Session,
    user_id: int,
    ticker: str,
    fiat_amount: Decimal,
    crypto_amount: Decimal,
) -> tuple[Portfolio, Asset]:
    """Spend ``fiat_amount`` of cash on ``crypto_amount`` of ``ticker``."""
    _check_trade_amounts(fiat_amount, crypto_amount)
    symbol = currencies.normalize_ticker(ticker)
    try:
        currencies.resolve(db, symbol)
    except NotFoundError as exc:
        raise ValidationError(str(exc)) from exc

    portfolio = get_portfolio(db, user_id)
    if symbol == portfolio.currency_ticker:
        raise ValidationError(f"cannot buy the portfolio currency {symbol}")
    if fiat_amount > portfolio.cash:
        raise ValidationError("not enough cash")

    with storage_errors("asset lookup"):
        asset = current_live(db, Asset, user_id=user_id, currency_ticker=symbol)
    if asset is None:
        asset = Asset(
            user_id=user_id,
            currency_ticker=symbol,
            purchased=ZERO,
            amount=ZERO,
            is_deleted=False,
        )

    new_asset = new_version(
        asset,
        purchased=asset.purchased + fiat_amount,
        amount=asset.amount + crypto_amount,
        is_deleted=False,
    )
    new_portfolio = new_version(portfolio, cash=portfolio.cash - fiat_amount)
    return _commit_trade(db, new_portfolio, new_asset)


def sell(
    db: Session,
    user_id: int,
    ticker: str,
    fiat_amount: Decimal,
    crypto_amount: Decimal,
) -> tuple[Portfolio, Asset]:
    """Sell ``crypto_amount`` of ``ticker`` for ``fiat_amount`` of cash."""
    _check_trade_amounts(fiat_amount, crypto_amount)
    symbol = currencies.normalize_ticker(ticker)

    with storage_errors("asset lookup"):
        asset = current_live(db, Asset, user_id=user_id, currency_ticker=symbol)
    if asset is None:
        raise NotFoundError(f"no {symbol} asset in portfolio")
    if crypto_amount > asset.amount:
        raise ValidationError(f"not enough {symbol} to sell")

    portfolio = get_portfolio(db, user_id)
    sold_basis = asset.purchased * (crypto_amount / asset.amount)
    new_asset = new_version(
        asset,
        purchased=asset.purchased - sold_basis,
        amount=asset.amount - crypto_amount,
    )
    new_portfolio = new_version(portfolio, cash=portfolio.cash + fiat_amount)
    return _commit_trade(db, new_portfolio, new_asset)

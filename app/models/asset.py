from __future__ import annotations

from decimal import Decimal

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, Versioned
from .types import Money


class Asset(Versioned, Base):
    """A user's holding of one currency.

    ``purchased`` is the cumulative cost basis in the portfolio's reference
    currency, ``amount`` the quantity held.
    """

    __tablename__ = "assets"
    __version_key__ = ("user_id", "currency_ticker")

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    currency_ticker: Mapped[str] = mapped_column(String(20))
    purchased: Mapped[Decimal] = mapped_column(Money())
    amount: Mapped[Decimal] = mapped_column(Money())

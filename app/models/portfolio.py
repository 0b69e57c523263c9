from __future__ import annotations

from decimal import Decimal

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, Versioned
from .types import Money


class Portfolio(Versioned, Base):
    __tablename__ = "portfolios"
    __version_key__ = ("user_id",)

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    # the reference currency every asset is valued in
    currency_ticker: Mapped[str] = mapped_column(String(20))
    cash: Mapped[Decimal] = mapped_column(Money())

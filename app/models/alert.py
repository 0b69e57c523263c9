from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, Versioned
from .types import Money, UTCDateTime


class Alert(Versioned, Base):
    __tablename__ = "alerts"
    __version_key__ = ("alert_id",)

    alert_id: Mapped[str] = mapped_column(String(32), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    from_ticker: Mapped[str] = mapped_column(String(20))
    to_ticker: Mapped[str] = mapped_column(String(20))
    above: Mapped[bool] = mapped_column(Boolean)
    # threshold: 1 from_ticker compared against this many to_ticker
    value: Mapped[Decimal] = mapped_column(Money())
    created_time: Mapped[datetime] = mapped_column(UTCDateTime())
    sent: Mapped[bool] = mapped_column(Boolean, default=False)

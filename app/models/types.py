from __future__ import annotations

from datetime import datetime
from datetime import timezone as dt_timezone
from decimal import Decimal

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.engine import Dialect
from sqlalchemy.types import TypeDecorator, TypeEngine


class UTCDateTime(TypeDecorator[datetime]):
    """A DateTime that always returns timezone-aware UTC datetimes.

    Ensures that even with SQLite (which lacks native TZ), loaded values
    have tzinfo=UTC to avoid naive/aware arithmetic errors in code/tests.
    """

    impl = DateTime
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect) -> TypeEngine[datetime]:  # type: ignore[override]
        return DateTime(timezone=True)

    def process_bind_param(
        self, value: datetime | None, dialect: Dialect
    ) -> object | None:  # type: ignore[override]
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt_timezone.utc)
        return value.astimezone(dt_timezone.utc)

    def process_result_value(
        self, value: datetime | None, dialect: Dialect
    ) -> datetime | None:  # type: ignore[override]
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt_timezone.utc)
        return value.astimezone(dt_timezone.utc)


class Money(TypeDecorator[Decimal]):
    """An exact decimal column.

    Uses NUMERIC where the database has it. SQLite stores NUMERIC as a float,
    so there the value is kept as its decimal string instead. Comparisons on
    these columns are done in Python, never in SQL.
    """

    impl = Numeric
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect) -> TypeEngine[object]:  # type: ignore[override]
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(64))
        return dialect.type_descriptor(Numeric(38, 18, asdecimal=True))

    def process_bind_param(
        self, value: Decimal | int | str | None, dialect: Dialect
    ) -> object | None:  # type: ignore[override]
        if value is None:
            return None
        value = Decimal(value)
        if dialect.name == "sqlite":
            return str(value)
        return value

    def process_result_value(
        self, value: object | None, dialect: Dialect
    ) -> Decimal | None:  # type: ignore[override]
        if value is None:
            return None
        return Decimal(str(value))

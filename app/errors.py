from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError


class PricewatchError(Exception):
    """Base class for errors raised by the alert and portfolio engines."""


class ValidationError(PricewatchError):
    """The caller supplied bad input; nothing was written."""


class NotFoundError(PricewatchError):
    """The requested entity does not exist for this caller."""


class StorageError(PricewatchError):
    """A read or write against the database failed."""


class FeedError(PricewatchError):
    """The market data feed returned an error or an unexpected payload."""


@contextmanager
def storage_errors(action: str) -> Iterator[None]:
    """Re-raise SQLAlchemy failures as StorageError, keeping the cause chained."""
    try:
        yield
    except SQLAlchemyError as exc:
        raise StorageError(f"{action} failed") from exc

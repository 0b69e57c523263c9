from .alert import Alert
from .asset import Asset
from .base import Base, Versioned
from .currency import Currency
from .job_lock import JobLock
from .portfolio import Portfolio
from .price import Price
from .user import User

__all__ = [
    "Alert",
    "Asset",
    "Base",
    "Currency",
    "JobLock",
    "Portfolio",
    "Price",
    "User",
    "Versioned",
]

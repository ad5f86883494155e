"""Import all models so SQLModel.metadata picks them up."""

from courier_cache.models.bid import Bid, BidStatus
from courier_cache.models.driver import Driver
from courier_cache.models.notification import Notification
from courier_cache.models.package import Package, PackageSize, PackageStatus
from courier_cache.models.transaction import Transaction, TransactionStatus, TransactionType
from courier_cache.models.trip import Trip, TripStatus
from courier_cache.models.user import User, UserType

__all__ = [
    "Bid",
    "BidStatus",
    "Driver",
    "Notification",
    "Package",
    "PackageSize",
    "PackageStatus",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
    "Trip",
    "TripStatus",
    "User",
    "UserType",
]

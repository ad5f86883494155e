"""Bid model: a driver's offer to carry a package."""

import uuid
from enum import StrEnum

from sqlmodel import Field, SQLModel

from courier_cache.models.base import TimestampMixin, new_uuid


class BidStatus(StrEnum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"


class Bid(TimestampMixin, SQLModel, table=True):
    __tablename__ = "bids"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    package_id: uuid.UUID = Field(foreign_key="packages.id", nullable=False, index=True)
    driver_id: uuid.UUID = Field(foreign_key="drivers.id", nullable=False, index=True)

    amount: float = Field(nullable=False)
    message: str | None = Field(default=None, max_length=1000)
    status: BidStatus = Field(default=BidStatus.PENDING, index=True)

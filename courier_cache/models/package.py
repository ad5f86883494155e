"""Package model: a delivery request posted by a customer."""

import uuid
from enum import StrEnum

from sqlmodel import Field, SQLModel

from courier_cache.models.base import TimestampMixin, new_uuid


class PackageStatus(StrEnum):
    PENDING = "PENDING"
    MATCHED = "MATCHED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PackageSize(StrEnum):
    SMALL = "SMALL"
    MEDIUM = "MEDIUM"
    LARGE = "LARGE"


class Package(TimestampMixin, SQLModel, table=True):
    __tablename__ = "packages"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    customer_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)

    description: str = Field(default="", max_length=1000)
    pickup_address: str = Field(default="", max_length=500)
    delivery_address: str = Field(default="", max_length=500)
    price_offered: float = Field(default=0.0, index=True)
    size: PackageSize = Field(default=PackageSize.MEDIUM)
    weight: float | None = Field(default=None)
    status: PackageStatus = Field(default=PackageStatus.PENDING, index=True)

"""Trip model: a driver's planned route with spare capacity."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from courier_cache.models.base import TimestampMixin, new_uuid


class TripStatus(StrEnum):
    PLANNED = "PLANNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Trip(TimestampMixin, SQLModel, table=True):
    __tablename__ = "trips"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    driver_id: uuid.UUID = Field(foreign_key="drivers.id", nullable=False, index=True)

    start_address: str = Field(default="", max_length=500)
    end_address: str = Field(default="", max_length=500)
    start_lat: float = Field(nullable=False)
    start_lng: float = Field(nullable=False)
    end_lat: float = Field(nullable=False)
    end_lng: float = Field(nullable=False)

    departure_time: datetime = Field(sa_type=DateTime(timezone=True), nullable=False, index=True)
    available_capacity: str = Field(default="", max_length=50)
    status: TripStatus = Field(default=TripStatus.PLANNED, index=True)

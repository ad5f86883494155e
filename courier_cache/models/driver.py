"""Driver profile: the vehicle side of a DRIVER user."""

import uuid

from sqlmodel import Field, SQLModel

from courier_cache.models.base import TimestampMixin, new_uuid


class Driver(TimestampMixin, SQLModel, table=True):
    __tablename__ = "drivers"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    rating: float = Field(default=0.0)
    vehicle_type: str = Field(default="", max_length=50)
    vehicle_capacity: str = Field(default="", max_length=50)

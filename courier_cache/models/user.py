"""User model: customers, drivers and admins share one table."""

import uuid
from enum import StrEnum

from sqlmodel import Field, SQLModel

from courier_cache.models.base import TimestampMixin, new_uuid


class UserType(StrEnum):
    CUSTOMER = "CUSTOMER"
    DRIVER = "DRIVER"
    ADMIN = "ADMIN"


class User(TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    email: str = Field(max_length=320, nullable=False, index=True)
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    user_type: UserType = Field(default=UserType.CUSTOMER, index=True)
    identity_verified: bool = Field(default=False)

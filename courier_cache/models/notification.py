"""Notification model: in-app messages addressed to one user."""

import uuid

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from courier_cache.models.base import TimestampMixin, new_uuid


class Notification(TimestampMixin, SQLModel, table=True):
    __tablename__ = "notifications"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)

    type: str = Field(max_length=50, nullable=False, index=True)
    title: str = Field(default="", max_length=255)
    message: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))

    # Free-form payload stored as JSON text, e.g. {"package_id": "..."}
    data: str = Field(default="{}", sa_column=Column(Text, nullable=False, server_default="{}"))
    is_read: bool = Field(default=False, index=True)

"""Transaction model: wallet movements (payments, payouts, refunds)."""

import uuid
from enum import StrEnum

from sqlmodel import Field, SQLModel

from courier_cache.models.base import TimestampMixin, new_uuid


class TransactionType(StrEnum):
    PAYMENT = "PAYMENT"
    PAYOUT = "PAYOUT"
    REFUND = "REFUND"


class TransactionStatus(StrEnum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Transaction(TimestampMixin, SQLModel, table=True):
    __tablename__ = "transactions"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)

    type: TransactionType = Field(default=TransactionType.PAYMENT)
    amount: float = Field(nullable=False)
    status: TransactionStatus = Field(default=TransactionStatus.PENDING, index=True)
    description: str = Field(default="", max_length=500)

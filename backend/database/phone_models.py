"""
SMS Rental Core - Phone Database Models

Tables:
- phone_numbers: One row per leased number
- phone_messages: Inbound SMS received on a leased number

Message uniqueness is logical (phone_number_id, sender, message) and is
checked by the caller before insert; there is deliberately no unique
constraint on message content.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Text, Float, Boolean, DateTime,
    ForeignKey, Index
)
from sqlalchemy.orm import relationship

from database.connection import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PhoneNumberDB(Base):
    """
    A leased phone number.

    rent_id holds the provider identifier saved at rental time.
    external_url / order_id / order_booking_id hold the per-provider
    variants (SMSPVA order, Anosim order and booking).
    """
    __tablename__ = "phone_numbers"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    phone_number = Column(String(32), nullable=False, unique=True, index=True)
    rent_id = Column(String(64), nullable=True, index=True)
    service = Column(String(64), nullable=True)
    country = Column(String(16), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(16), nullable=False, default="active", index=True)
    provider = Column(String(32), nullable=False, default="sms_activate", index=True)

    # Provider-specific identifiers
    external_url = Column(String(255), nullable=True)
    order_id = Column(String(64), nullable=True)
    order_booking_id = Column(String(64), nullable=True)
    provider_id = Column(String(64), nullable=True)

    auto_renewal = Column(Boolean, default=False)
    mode = Column(String(16), nullable=False, default="rental")
    cost = Column(Float, nullable=True)

    last_message_check = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    messages = relationship("PhoneMessageDB", back_populates="phone", cascade="all, delete-orphan")

    __table_args__ = (
        Index('ix_phone_numbers_provider_status', 'provider', 'status'),
    )


class PhoneMessageDB(Base):
    """An SMS received on a leased number."""
    __tablename__ = "phone_messages"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    phone_number_id = Column(String(36), ForeignKey("phone_numbers.id", ondelete="CASCADE"), nullable=False, index=True)
    sender = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    received_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    message_source = Column(String(16), nullable=False, default="api")
    created_at = Column(DateTime(timezone=True), default=utc_now)

    phone = relationship("PhoneNumberDB", back_populates="messages")

    __table_args__ = (
        Index('ix_phone_messages_phone_received', 'phone_number_id', 'received_at'),
    )

"""Bono (prepaid service-hour voucher) model."""

import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, Float, String, Text
from sqlalchemy.sql import func

from database import Base


class Bono(Base):
    """Purchased bundle of service hours owned by one client."""

    __tablename__ = "bonos"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    # Denormalized like client_name; vouchers outlive their client account.
    client_id = Column(String, nullable=True, index=True)
    client_name = Column(String, nullable=False)
    service = Column(String, nullable=False)
    hours = Column(Float, nullable=False)
    hours_used = Column(Float, nullable=False, default=0.0)
    hours_remaining = Column(Float, nullable=False)
    issue_date = Column(Date, nullable=False, index=True)
    expiry_date = Column(Date, nullable=True)
    never_expires = Column(Boolean, nullable=False, default=False)
    status = Column(String, nullable=False, default="active", index=True)  # active, depleted, expired
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

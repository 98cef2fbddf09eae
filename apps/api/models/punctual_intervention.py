"""Punctual (ad-hoc) intervention model."""

import uuid

from sqlalchemy import Column, DateTime, Float, JSON, String, Text
from sqlalchemy.sql import func

from database import Base


class PunctualIntervention(Base):
    """One-off work session billed outside any voucher."""

    __tablename__ = "punctual_interventions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    client_name = Column(String, nullable=False)
    hours = Column(Float, nullable=False)
    date = Column(DateTime(timezone=True), nullable=False, index=True)
    notes = Column(Text, nullable=True)
    images = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

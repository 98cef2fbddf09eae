"""Intervention (usage record) model."""

import uuid

from sqlalchemy import Column, DateTime, Float, ForeignKey, JSON, String, Text
from sqlalchemy.sql import func

from database import Base


class Intervention(Base):
    """Work session that consumed hours from one voucher."""

    __tablename__ = "interventions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    client_id = Column(String, nullable=True, index=True)
    client_name = Column(String, nullable=True)
    bono_id = Column(String, ForeignKey("bonos.id"), nullable=False, index=True)
    hours_used = Column(Float, nullable=False)
    date = Column(DateTime(timezone=True), nullable=False, index=True)
    notes = Column(Text, nullable=True)
    images = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

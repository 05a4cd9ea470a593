"""Singleton panel settings."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, func
from spire.db.base import Base


class SpireSettings(Base):
    """Onboarding state and the panel API key; exactly one row exists."""
    __tablename__ = "spire_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    onboarding_complete = Column(Boolean, nullable=False, default=False)
    api_key = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

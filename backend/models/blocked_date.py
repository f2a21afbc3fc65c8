"""Blocked date model definitions."""

from datetime import datetime

from sqlalchemy import Column, Date, DateTime, Integer, String
from backend.database import Base


class BlockedDate(Base):
    """Represents a calendar date closed regardless of business hours."""
    __tablename__ = "blocked_dates"

    id = Column(Integer, primary_key=True)
    blocked_date = Column(Date, nullable=False, unique=True)
    reason = Column(String)
    created_at = Column(DateTime, default=datetime.now)

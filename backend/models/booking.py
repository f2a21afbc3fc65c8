"""Booking model definitions."""

import secrets
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Time
from backend.database import Base


def generate_booking_token() -> str:
    return secrets.token_urlsafe(24)


class Booking(Base):
    """Represents a customer appointment."""
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True)
    booking_token = Column(String, nullable=False, unique=True, default=generate_booking_token)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"))
    appointment_date = Column(Date, nullable=False)
    appointment_time = Column(Time, nullable=False)
    appointment_end_time = Column(Time, nullable=False)
    status = Column(String, nullable=False, default="confirmed")  # pending/confirmed/cancelled
    payment_method = Column(String, nullable=False)
    payment_status = Column(String, nullable=False, default="pending")
    service_price = Column(Integer, nullable=False, default=0)
    total_amount = Column(Integer, nullable=False, default=0)
    full_name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    notes = Column(String)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

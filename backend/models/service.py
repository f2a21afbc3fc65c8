"""Service model definitions."""

from sqlalchemy import Boolean, Column, Integer, String
from backend.database import Base


class Service(Base):
    """Represents a bookable notary or signing service."""
    __tablename__ = "services"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=False, default="")
    category = Column(String)
    duration_minutes = Column(Integer, nullable=False)
    price_cents = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

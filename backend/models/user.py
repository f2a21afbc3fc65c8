"""User model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String
from backend.database import Base


class User(Base):
    """Mirrors an identity issued by the external auth provider for role checks."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String)
    role = Column(String, nullable=False, default="user")  # user/admin
    created_at = Column(DateTime, default=datetime.now)

import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from backend.database import Base  # noqa: E402
from backend.models.blocked_date import BlockedDate  # noqa: E402
from backend.models.booking import Booking  # noqa: E402
from backend.models.business_hours import BusinessHours  # noqa: E402
from backend.models.service import Service  # noqa: E402
from backend.models.user import User  # noqa: E402

TABLES = [
    User.__table__,
    Service.__table__,
    BusinessHours.__table__,
    BlockedDate.__table__,
    Booking.__table__,
]


@pytest.fixture
def schedule_db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=TABLES)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))


@pytest.fixture
def admin_user() -> User:
    return User(id=1, email='owner@admin.example.com', role='admin')

"""Database plumbing and schedule snapshots shared by the route modules."""

from datetime import date

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.database import SessionLocal, ensure_booking_schema
from backend.models.blocked_date import BlockedDate
from backend.models.booking import Booking
from backend.models.business_hours import BusinessHours
from backend.models.service import Service
from backend.scheduling.schemas import (
    BlockedDay,
    BookedInterval,
    BusinessHoursWindow,
    parse_blocked_dates,
    parse_booked_intervals,
    parse_business_hours,
)

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and Postgres credentials.'


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def ensure_database_ready() -> None:
    try:
        ensure_booking_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_active_service(service_id: int, db: Session) -> Service:
    service = db.query(Service).filter(Service.id == service_id, Service.is_active.is_(True)).first()
    if not service:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Service not found.',
        )
    return service


def load_business_hours(db: Session) -> list[BusinessHoursWindow]:
    rows = db.query(BusinessHours).order_by(BusinessHours.day_of_week.asc()).all()
    return parse_business_hours(rows)


def load_blocked_dates(db: Session, since: date | None = None) -> list[BlockedDay]:
    query = db.query(BlockedDate)
    if since is not None:
        query = query.filter(BlockedDate.blocked_date >= since)
    return parse_blocked_dates(query.all())


def load_bookings_for_date(db: Session, appointment_date: date, for_update: bool = False) -> list[BookedInterval]:
    """Return the non-cancelled bookings on one date.

    With ``for_update`` the rows stay locked until the surrounding transaction
    ends, so a conflict verdict computed from them holds through the write.
    """
    query = db.query(Booking).filter(
        Booking.appointment_date == appointment_date,
        Booking.status != 'cancelled',
    ).order_by(Booking.appointment_time.asc())
    if for_update:
        query = query.with_for_update()
    return parse_booked_intervals(query.all())

import logging
import re
from datetime import date, datetime, time, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_optional_user, require_admin
from backend.core import config
from backend.database import lock_booking_date
from backend.models.booking import Booking
from backend.models.service import Service
from backend.models.user import User
from backend.routes.common import (
    database_unavailable,
    ensure_database_ready,
    get_active_service,
    get_db,
    load_blocked_dates,
    load_bookings_for_date,
    load_business_hours,
)
from backend.scheduling.availability import (
    InvalidScheduleInput,
    find_business_hours,
    has_conflict,
    is_date_offerable,
    minutes_since_midnight,
    parse_time_label,
    parse_time_of_day,
)
from backend.scheduling.schemas import BOOKING_STATUSES

router = APIRouter(tags=['bookings'])
logger = logging.getLogger(__name__)

PAYMENT_METHODS = ('online', 'at_appointment')
MAX_EMAIL_LENGTH = 255
MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 100
MAX_NOTES_LENGTH = 1000
SLOT_UNAVAILABLE_DETAIL = 'Time slot is no longer available. Please select a different time.'

_EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
_PHONE_PATTERN = re.compile(r'^\+?[0-9]{10,15}$')
_PHONE_SEPARATORS = re.compile(r'[\s\-().]')
_CONTROL_CHARACTERS = re.compile(r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]')


def sanitize_text(value: str, max_length: int) -> str:
    return _CONTROL_CHARACTERS.sub('', value.strip()[:max_length])


def parse_appointment_time(value) -> time:
    """Accept ``HH:MM[:SS]`` or a slot label such as ``"2:30 PM"``."""
    if isinstance(value, str) and value.strip()[-2:].upper() in ('AM', 'PM'):
        return parse_time_label(value)
    return parse_time_of_day(value)


class AppointmentTimeFields(BaseModel):
    appointment_date: date
    appointment_time: time

    @field_validator('appointment_time', mode='before')
    @classmethod
    def validate_appointment_time(cls, value):
        try:
            return parse_appointment_time(value)
        except InvalidScheduleInput as exc:
            raise ValueError(str(exc)) from exc


class CreateBookingRequest(AppointmentTimeFields):
    service_id: int
    payment_method: str
    full_name: str
    email: str
    phone: str
    notes: str | None = None

    @field_validator('payment_method')
    @classmethod
    def validate_payment_method(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in PAYMENT_METHODS:
            raise ValueError('Invalid payment method.')
        return normalized

    @field_validator('full_name')
    @classmethod
    def validate_full_name(cls, value: str) -> str:
        normalized = sanitize_text(value, MAX_NAME_LENGTH)
        if len(normalized) < MIN_NAME_LENGTH:
            raise ValueError(f'Name must be between {MIN_NAME_LENGTH} and {MAX_NAME_LENGTH} characters.')
        return normalized

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if len(normalized) > MAX_EMAIL_LENGTH or not _EMAIL_PATTERN.match(normalized):
            raise ValueError('Invalid email address.')
        return normalized

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, value: str) -> str:
        normalized = value.strip()
        if not _PHONE_PATTERN.match(_PHONE_SEPARATORS.sub('', normalized)):
            raise ValueError('Invalid phone number.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_NOTES_LENGTH} characters or fewer.')

        return sanitize_text(normalized, MAX_NOTES_LENGTH)


class RescheduleBookingRequest(AppointmentTimeFields):
    pass


class UpdateBookingStatusRequest(BaseModel):
    status: str

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in BOOKING_STATUSES:
            raise ValueError('Invalid booking status.')
        return normalized


class CreateBookingResponse(BaseModel):
    success: bool = True
    booking_id: int
    booking_token: str
    status: str
    payment_status: str


class BookingStatusResponse(BaseModel):
    booking_id: int
    service_name: str
    appointment_date: date
    appointment_time: time
    appointment_end_time: time
    status: str
    payment_status: str
    payment_method: str
    total_amount: int


class BookingResponse(BaseModel):
    id: int
    service_id: int
    appointment_date: date
    appointment_time: time
    appointment_end_time: time
    status: str
    payment_method: str
    payment_status: str
    total_amount: int
    full_name: str
    email: str
    phone: str
    notes: str | None = None

    class Config:
        from_attributes = True


def get_booking_or_404(booking_id: int, db: Session) -> Booking:
    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if not booking:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Booking not found.',
        )
    return booking


def validate_appointment_window(
    appointment_date: date,
    appointment_time: time,
    duration_minutes: int,
    db: Session,
    now: datetime,
) -> time:
    """Check the requested interval against the schedule and return its end time."""
    start = datetime.combine(appointment_date, appointment_time)
    if start < now - timedelta(minutes=config.PAST_BOOKING_GRACE_MINUTES):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Cannot book appointments in the past.',
        )

    business_hours = load_business_hours(db)
    blocked_dates = load_blocked_dates(db, since=appointment_date)
    if not is_date_offerable(appointment_date, blocked_dates, business_hours, today=now.date()):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='This date is not available for booking.',
        )

    window = find_business_hours(appointment_date, business_hours)
    start_minutes = minutes_since_midnight(appointment_time)
    if (
        start_minutes < minutes_since_midnight(window.start_time)
        or start_minutes + duration_minutes > minutes_since_midnight(window.end_time)
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Appointment is outside business hours.',
        )

    return (start + timedelta(minutes=duration_minutes)).time()


def reserve_interval(
    appointment_date: date,
    appointment_time: time,
    duration_minutes: int,
    db: Session,
    exclude_booking_id: int | None = None,
) -> None:
    """Lock the date and reject the interval if it overlaps a live booking.

    Must run in the same transaction as the write that follows it.
    """
    lock_booking_date(db, appointment_date)
    existing_bookings = load_bookings_for_date(db, appointment_date, for_update=True)

    if has_conflict(
        appointment_date,
        appointment_time,
        duration_minutes,
        existing_bookings,
        exclude_booking_id=exclude_booking_id,
    ):
        db.rollback()
        logger.info(
            'Rejected conflicting booking request for %s %s',
            appointment_date.isoformat(),
            appointment_time.strftime('%H:%M'),
        )
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=SLOT_UNAVAILABLE_DETAIL,
        )


def booking_duration_minutes(booking: Booking) -> int:
    start = datetime.combine(booking.appointment_date, booking.appointment_time)
    end = datetime.combine(booking.appointment_date, booking.appointment_end_time)
    return int((end - start).total_seconds() // 60)


@router.post('', response_model=CreateBookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: CreateBookingRequest,
    db: Session = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
):
    ensure_database_ready()

    try:
        service = get_active_service(data.service_id, db)
        appointment_time = data.appointment_time.replace(second=0, microsecond=0)
        end_time = validate_appointment_window(
            data.appointment_date,
            appointment_time,
            service.duration_minutes,
            db,
            now=datetime.now(),
        )

        reserve_interval(data.appointment_date, appointment_time, service.duration_minutes, db)

        booking = Booking(
            service_id=service.id,
            user_id=current_user.id if current_user else None,
            appointment_date=data.appointment_date,
            appointment_time=appointment_time,
            appointment_end_time=end_time,
            status='confirmed',
            payment_method=data.payment_method,
            payment_status='pending',
            service_price=service.price_cents,
            total_amount=service.price_cents,
            full_name=data.full_name,
            email=data.email,
            phone=data.phone,
            notes=data.notes,
        )
        db.add(booking)
        db.commit()
        db.refresh(booking)

        logger.info(
            'Booking %s created for %s %s (%s)',
            booking.id,
            booking.appointment_date.isoformat(),
            booking.appointment_time.strftime('%H:%M'),
            'authenticated' if current_user else 'anonymous',
        )
        return CreateBookingResponse(
            booking_id=booking.id,
            booking_token=booking.booking_token,
            status=booking.status,
            payment_status=booking.payment_status,
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/status', response_model=BookingStatusResponse)
def get_booking_status(
    token: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        result = db.query(Booking, Service.name).join(Service, Service.id == Booking.service_id).filter(
            Booking.booking_token == token.strip(),
        ).first()
        if not result:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Booking not found.',
            )

        booking, service_name = result
        return BookingStatusResponse(
            booking_id=booking.id,
            service_name=service_name,
            appointment_date=booking.appointment_date,
            appointment_time=booking.appointment_time,
            appointment_end_time=booking.appointment_end_time,
            status=booking.status,
            payment_status=booking.payment_status,
            payment_method=booking.payment_method,
            total_amount=booking.total_amount,
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('', response_model=list[BookingResponse])
def list_bookings(
    appointment_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    del current_user
    ensure_database_ready()

    try:
        query = db.query(Booking)
        if appointment_date is not None:
            query = query.filter(Booking.appointment_date == appointment_date)

        return query.order_by(Booking.appointment_date.asc(), Booking.appointment_time.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.patch('/{booking_id}/status', response_model=BookingResponse)
def update_booking_status(
    booking_id: int,
    data: UpdateBookingStatusRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    ensure_database_ready()

    try:
        booking = get_booking_or_404(booking_id, db)

        if booking.status == 'cancelled' and data.status != 'cancelled':
            reserve_interval(
                booking.appointment_date,
                booking.appointment_time,
                booking_duration_minutes(booking),
                db,
                exclude_booking_id=booking.id,
            )

        booking.status = data.status
        db.commit()
        db.refresh(booking)

        logger.info('Booking %s marked %s by %s', booking.id, booking.status, current_user.email)
        return booking
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.patch('/{booking_id}/reschedule', response_model=BookingResponse)
def reschedule_booking(
    booking_id: int,
    data: RescheduleBookingRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    ensure_database_ready()

    try:
        booking = get_booking_or_404(booking_id, db)
        if booking.status == 'cancelled':
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Cancelled bookings cannot be rescheduled.',
            )

        duration_minutes = booking_duration_minutes(booking)
        appointment_time = data.appointment_time.replace(second=0, microsecond=0)
        end_time = validate_appointment_window(
            data.appointment_date,
            appointment_time,
            duration_minutes,
            db,
            now=datetime.now(),
        )

        reserve_interval(
            data.appointment_date,
            appointment_time,
            duration_minutes,
            db,
            exclude_booking_id=booking.id,
        )

        booking.appointment_date = data.appointment_date
        booking.appointment_time = appointment_time
        booking.appointment_end_time = end_time
        db.commit()
        db.refresh(booking)

        logger.info(
            'Booking %s moved to %s %s by %s',
            booking.id,
            booking.appointment_date.isoformat(),
            booking.appointment_time.strftime('%H:%M'),
            current_user.email,
        )
        return booking
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

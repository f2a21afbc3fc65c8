import logging
from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_admin
from backend.models.blocked_date import BlockedDate
from backend.models.business_hours import BusinessHours
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
    generate_slots,
    is_date_offerable,
    parse_time_of_day,
)
from backend.scheduling.schemas import ServiceOffering

router = APIRouter(tags=['availability'])
logger = logging.getLogger(__name__)

MAX_BLOCKED_REASON_LENGTH = 200


class BusinessHoursResponse(BaseModel):
    id: int
    day_of_week: int
    start_time: time
    end_time: time
    is_available: bool

    class Config:
        from_attributes = True


class UpdateBusinessHoursRequest(BaseModel):
    start_time: time
    end_time: time
    is_available: bool = True

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def validate_time(cls, value):
        try:
            return parse_time_of_day(value)
        except InvalidScheduleInput as exc:
            raise ValueError(str(exc)) from exc

    @model_validator(mode='after')
    def validate_window(self):
        if self.is_available and self.start_time >= self.end_time:
            raise ValueError('Opening time must be before closing time.')
        return self


class BlockedDateResponse(BaseModel):
    id: int
    blocked_date: date
    reason: str | None = None

    class Config:
        from_attributes = True


class CreateBlockedDateRequest(BaseModel):
    blocked_date: date
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_BLOCKED_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_BLOCKED_REASON_LENGTH} characters or fewer.')

        return normalized


class ServiceResponse(BaseModel):
    id: int
    name: str
    description: str
    category: str | None = None
    duration_minutes: int
    price_cents: int

    class Config:
        from_attributes = True


class DateAvailabilityResponse(BaseModel):
    date: date
    is_offerable: bool


class SlotListResponse(BaseModel):
    date: date
    service_id: int
    duration_minutes: int
    slots: list[str]


@router.get('/business-hours', response_model=list[BusinessHoursResponse])
def list_business_hours(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return db.query(BusinessHours).order_by(BusinessHours.day_of_week.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/business-hours/{day_of_week}', response_model=BusinessHoursResponse)
def update_business_hours(
    day_of_week: int,
    data: UpdateBusinessHoursRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    if not 0 <= day_of_week <= 6:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Day of week must be between 0 (Sunday) and 6 (Saturday).',
        )

    ensure_database_ready()

    try:
        hours = db.query(BusinessHours).filter(BusinessHours.day_of_week == day_of_week).first()
        if hours is None:
            hours = BusinessHours(day_of_week=day_of_week)
            db.add(hours)

        hours.start_time = data.start_time
        hours.end_time = data.end_time
        hours.is_available = data.is_available
        db.commit()
        db.refresh(hours)

        logger.info('Business hours for day %s set by %s', day_of_week, current_user.email)
        return hours
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/blocked-dates', response_model=list[BlockedDateResponse])
def list_blocked_dates(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return db.query(BlockedDate).filter(
            BlockedDate.blocked_date >= date.today(),
        ).order_by(BlockedDate.blocked_date.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/blocked-dates', response_model=BlockedDateResponse, status_code=status.HTTP_201_CREATED)
def create_blocked_date(
    data: CreateBlockedDateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    ensure_database_ready()

    try:
        existing = db.query(BlockedDate).filter(BlockedDate.blocked_date == data.blocked_date).first()
        if existing:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='This date is already blocked.',
            )

        blocked_date = BlockedDate(blocked_date=data.blocked_date, reason=data.reason)
        db.add(blocked_date)
        db.commit()
        db.refresh(blocked_date)

        logger.info('Date %s blocked by %s', data.blocked_date.isoformat(), current_user.email)
        return blocked_date
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/blocked-dates/{blocked_date_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_blocked_date(
    blocked_date_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    ensure_database_ready()

    try:
        blocked_date = db.query(BlockedDate).filter(BlockedDate.id == blocked_date_id).first()
        if not blocked_date:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Blocked date not found.',
            )

        db.delete(blocked_date)
        db.commit()
        logger.info('Blocked date %s removed by %s', blocked_date_id, current_user.email)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/services', response_model=list[ServiceResponse])
def list_services(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return db.query(Service).filter(Service.is_active.is_(True)).order_by(Service.name.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/dates/{day}', response_model=DateAvailabilityResponse)
def check_date(day: date, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        business_hours = load_business_hours(db)
        blocked_dates = load_blocked_dates(db, since=day)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return DateAvailabilityResponse(
        date=day,
        is_offerable=is_date_offerable(day, blocked_dates, business_hours),
    )


@router.get('/slots', response_model=SlotListResponse)
def list_slots(
    day: date = Query(..., alias='date'),
    service_id: int = Query(...),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        service = ServiceOffering.model_validate(get_active_service(service_id, db))
        business_hours = load_business_hours(db)
        blocked_dates = load_blocked_dates(db, since=day)

        slots: list[str] = []
        if is_date_offerable(day, blocked_dates, business_hours):
            existing_bookings = load_bookings_for_date(db, day)
            slots = generate_slots(day, service, business_hours, existing_bookings, now=datetime.now())

        return SlotListResponse(
            date=day,
            service_id=service_id,
            duration_minutes=service.duration_minutes,
            slots=slots,
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

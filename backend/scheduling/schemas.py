"""Typed scheduling entities parsed from raw rows or ORM objects."""

from collections.abc import Iterable
from datetime import date, time
from typing import Annotated

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from backend.scheduling.availability import (
    InvalidScheduleInput,
    parse_calendar_date,
    parse_time_of_day,
    validate_day_of_week,
)

BOOKING_STATUSES = ('pending', 'confirmed', 'cancelled')


def _parse_time_field(value):
    try:
        return parse_time_of_day(value)
    except InvalidScheduleInput as exc:
        raise ValueError(str(exc)) from exc


def _parse_date_field(value):
    try:
        return parse_calendar_date(value)
    except InvalidScheduleInput as exc:
        raise ValueError(str(exc)) from exc


class BusinessHoursWindow(BaseModel):
    day_of_week: int
    start_time: time
    end_time: time
    is_available: bool = True

    class Config:
        from_attributes = True

    @field_validator('day_of_week', mode='before')
    @classmethod
    def validate_day(cls, value):
        try:
            return validate_day_of_week(value)
        except InvalidScheduleInput as exc:
            raise ValueError(str(exc)) from exc

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def validate_times(cls, value):
        return _parse_time_field(value)

    @model_validator(mode='after')
    def validate_window(self):
        if self.is_available and self.start_time >= self.end_time:
            raise ValueError('Business hours must start before they end.')
        return self


class BlockedDay(BaseModel):
    date: Annotated[date, Field(validation_alias=AliasChoices('date', 'blocked_date'))]
    reason: str | None = None

    class Config:
        from_attributes = True

    @field_validator('date', mode='before')
    @classmethod
    def validate_date(cls, value):
        return _parse_date_field(value)


class BookedInterval(BaseModel):
    id: int | str | None = None
    date: Annotated[date, Field(validation_alias=AliasChoices('date', 'appointment_date'))]
    start_time: time = Field(validation_alias=AliasChoices('start_time', 'appointment_time'))
    end_time: time = Field(validation_alias=AliasChoices('end_time', 'appointment_end_time'))
    status: str = 'confirmed'

    class Config:
        from_attributes = True

    @field_validator('date', mode='before')
    @classmethod
    def validate_date(cls, value):
        return _parse_date_field(value)

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def validate_times(cls, value):
        return _parse_time_field(value)

    @field_validator('status', mode='before')
    @classmethod
    def validate_status(cls, value):
        normalized = str(value or '').strip().lower()
        if normalized not in BOOKING_STATUSES:
            raise ValueError(f'Booking status must be one of: {", ".join(BOOKING_STATUSES)}.')
        return normalized

    @model_validator(mode='after')
    def validate_interval(self):
        if self.start_time >= self.end_time:
            raise ValueError('Booking must start before it ends.')
        return self


class ServiceOffering(BaseModel):
    id: int | str | None = None
    name: str | None = None
    duration_minutes: int = Field(gt=0)
    price_cents: int = Field(default=0, ge=0)

    class Config:
        from_attributes = True


def parse_business_hours(rows: Iterable) -> list[BusinessHoursWindow]:
    return [BusinessHoursWindow.model_validate(row) for row in rows]


def parse_blocked_dates(rows: Iterable) -> list[BlockedDay]:
    return [BlockedDay.model_validate(row) for row in rows]


def parse_booked_intervals(rows: Iterable) -> list[BookedInterval]:
    return [BookedInterval.model_validate(row) for row in rows]

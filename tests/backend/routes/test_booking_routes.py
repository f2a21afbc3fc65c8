from datetime import date, time, timedelta

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from backend.models.blocked_date import BlockedDate
from backend.models.booking import Booking
from backend.models.business_hours import BusinessHours
from backend.models.service import Service
from backend.routes.booking_routes import (
    SLOT_UNAVAILABLE_DETAIL,
    CreateBookingRequest,
    RescheduleBookingRequest,
    UpdateBookingStatusRequest,
    create_booking,
    get_booking_status,
    list_bookings,
    reschedule_booking,
    update_booking_status,
)
from backend.scheduling.availability import day_of_week


@pytest.fixture(autouse=True)
def _skip_schema_check(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('backend.routes.booking_routes.ensure_database_ready', lambda: None)


@pytest.fixture
def open_day(schedule_db) -> date:
    target = date.today() + timedelta(days=3)
    schedule_db.add(BusinessHours(
        day_of_week=day_of_week(target),
        start_time=time(9, 0),
        end_time=time(17, 0),
        is_available=True,
    ))
    schedule_db.commit()
    return target


@pytest.fixture
def signing_service(schedule_db) -> Service:
    service = Service(name='Loan Signing', description='Mortgage document signing', duration_minutes=60, price_cents=15000)
    schedule_db.add(service)
    schedule_db.commit()
    schedule_db.refresh(service)
    return service


def _request(service_id: int, appointment_date: date, appointment_time: str = '10:00', **overrides) -> CreateBookingRequest:
    payload = {
        'service_id': service_id,
        'appointment_date': appointment_date,
        'appointment_time': appointment_time,
        'payment_method': 'at_appointment',
        'full_name': 'Jordan Rivera',
        'email': 'jordan@example.com',
        'phone': '(555) 010-1234',
    }
    payload.update(overrides)
    return CreateBookingRequest(**payload)


def _book(db, service: Service, appointment_date: date, appointment_time: str):
    return create_booking(
        data=_request(service.id, appointment_date, appointment_time),
        db=db,
        current_user=None,
    )


def test_create_booking_request_normalizes_fields() -> None:
    request = _request(
        1,
        date(2030, 1, 2),
        '2:30 PM',
        payment_method=' Online ',
        full_name='  Jordan\x00 Rivera ',
        email=' Jordan@Example.COM ',
        notes='   ',
    )

    assert request.appointment_time == time(14, 30)
    assert request.payment_method == 'online'
    assert request.full_name == 'Jordan Rivera'
    assert request.email == 'jordan@example.com'
    assert request.notes is None


def test_create_booking_request_accepts_24_hour_time() -> None:
    assert _request(1, date(2030, 1, 2), '14:30:00').appointment_time == time(14, 30)


@pytest.mark.parametrize(
    'overrides',
    [
        {'appointment_time': '25:00'},
        {'appointment_time': '14:30 XM'},
        {'payment_method': 'crypto'},
        {'full_name': 'J'},
        {'email': 'not-an-email'},
        {'phone': '12345'},
        {'notes': 'x' * 1001},
    ],
)
def test_create_booking_request_rejects_invalid_fields(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        _request(1, date(2030, 1, 2), **overrides)


def test_create_booking_stores_confirmed_booking(schedule_db, open_day, signing_service) -> None:
    response = _book(schedule_db, signing_service, open_day, '10:00')

    booking = schedule_db.query(Booking).filter(Booking.id == response.booking_id).one()
    assert response.booking_token == booking.booking_token
    assert response.status == 'confirmed'
    assert response.payment_status == 'pending'
    assert booking.appointment_time == time(10, 0)
    assert booking.appointment_end_time == time(11, 0)
    assert booking.total_amount == 15000


def test_create_booking_rejects_buffered_conflict(schedule_db, open_day, signing_service) -> None:
    _book(schedule_db, signing_service, open_day, '10:00')

    with pytest.raises(HTTPException) as exception_info:
        _book(schedule_db, signing_service, open_day, '11:00')

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == SLOT_UNAVAILABLE_DETAIL
    assert schedule_db.query(Booking).count() == 1


def test_create_booking_allows_slot_after_buffer(schedule_db, open_day, signing_service) -> None:
    _book(schedule_db, signing_service, open_day, '10:00')
    _book(schedule_db, signing_service, open_day, '11:30')

    assert schedule_db.query(Booking).count() == 2


def test_create_booking_ignores_cancelled_bookings(schedule_db, open_day, signing_service) -> None:
    first = _book(schedule_db, signing_service, open_day, '10:00')
    schedule_db.query(Booking).filter(Booking.id == first.booking_id).update({'status': 'cancelled'})
    schedule_db.commit()

    second = _book(schedule_db, signing_service, open_day, '10:00')

    assert second.booking_id != first.booking_id


@pytest.mark.parametrize(
    ('appointment_time', 'error_detail'),
    [
        ('08:30', 'Appointment is outside business hours.'),
        ('16:30', 'Appointment is outside business hours.'),
    ],
)
def test_create_booking_rejects_times_outside_window(
    schedule_db,
    open_day,
    signing_service,
    appointment_time: str,
    error_detail: str,
) -> None:
    with pytest.raises(HTTPException) as exception_info:
        _book(schedule_db, signing_service, open_day, appointment_time)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == error_detail


def test_create_booking_rejects_blocked_date(schedule_db, open_day, signing_service) -> None:
    schedule_db.add(BlockedDate(blocked_date=open_day, reason='Holiday'))
    schedule_db.commit()

    with pytest.raises(HTTPException) as exception_info:
        _book(schedule_db, signing_service, open_day, '10:00')

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'This date is not available for booking.'


def test_create_booking_rejects_past_dates(schedule_db, open_day, signing_service) -> None:
    with pytest.raises(HTTPException) as exception_info:
        _book(schedule_db, signing_service, open_day - timedelta(days=7), '10:00')

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Cannot book appointments in the past.'


def test_create_booking_rejects_unknown_service(schedule_db, open_day) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_booking(data=_request(99, open_day, '10:00'), db=schedule_db, current_user=None)

    assert exception_info.value.status_code == 404


def test_get_booking_status_by_token(schedule_db, open_day, signing_service) -> None:
    created = _book(schedule_db, signing_service, open_day, '13:00')

    response = get_booking_status(token=created.booking_token, db=schedule_db)

    assert response.booking_id == created.booking_id
    assert response.service_name == 'Loan Signing'
    assert response.appointment_time == time(13, 0)
    assert response.appointment_end_time == time(14, 0)


def test_get_booking_status_returns_not_found_for_unknown_token(schedule_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_booking_status(token='missing', db=schedule_db)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Booking not found.'


def test_list_bookings_filters_by_date(schedule_db, open_day, signing_service, admin_user) -> None:
    _book(schedule_db, signing_service, open_day, '13:00')
    _book(schedule_db, signing_service, open_day, '09:00')

    bookings = list_bookings(appointment_date=open_day, db=schedule_db, current_user=admin_user)
    other_day = list_bookings(appointment_date=open_day + timedelta(days=1), db=schedule_db, current_user=admin_user)

    assert [booking.appointment_time for booking in bookings] == [time(9, 0), time(13, 0)]
    assert other_day == []


def test_update_booking_status_rejects_unknown_status() -> None:
    with pytest.raises(ValidationError):
        UpdateBookingStatusRequest(status='archived')


def test_reviving_cancelled_booking_rechecks_conflicts(schedule_db, open_day, signing_service, admin_user) -> None:
    first = _book(schedule_db, signing_service, open_day, '10:00')
    update_booking_status(
        booking_id=first.booking_id,
        data=UpdateBookingStatusRequest(status='cancelled'),
        db=schedule_db,
        current_user=admin_user,
    )
    _book(schedule_db, signing_service, open_day, '10:30')

    with pytest.raises(HTTPException) as exception_info:
        update_booking_status(
            booking_id=first.booking_id,
            data=UpdateBookingStatusRequest(status='confirmed'),
            db=schedule_db,
            current_user=admin_user,
        )

    assert exception_info.value.status_code == 409
    assert schedule_db.query(Booking).filter(Booking.id == first.booking_id).one().status == 'cancelled'


def test_reviving_cancelled_booking_without_conflict(schedule_db, open_day, signing_service, admin_user) -> None:
    first = _book(schedule_db, signing_service, open_day, '10:00')
    update_booking_status(
        booking_id=first.booking_id,
        data=UpdateBookingStatusRequest(status='cancelled'),
        db=schedule_db,
        current_user=admin_user,
    )

    revived = update_booking_status(
        booking_id=first.booking_id,
        data=UpdateBookingStatusRequest(status='confirmed'),
        db=schedule_db,
        current_user=admin_user,
    )

    assert revived.status == 'confirmed'


def test_reschedule_booking_excludes_itself_from_conflicts(schedule_db, open_day, signing_service, admin_user) -> None:
    created = _book(schedule_db, signing_service, open_day, '10:00')

    moved = reschedule_booking(
        booking_id=created.booking_id,
        data=RescheduleBookingRequest(appointment_date=open_day, appointment_time='10:30'),
        db=schedule_db,
        current_user=admin_user,
    )

    assert moved.appointment_time == time(10, 30)
    assert moved.appointment_end_time == time(11, 30)


def test_reschedule_booking_rejects_conflict_with_other_booking(
    schedule_db,
    open_day,
    signing_service,
    admin_user,
) -> None:
    created = _book(schedule_db, signing_service, open_day, '10:00')
    _book(schedule_db, signing_service, open_day, '13:00')

    with pytest.raises(HTTPException) as exception_info:
        reschedule_booking(
            booking_id=created.booking_id,
            data=RescheduleBookingRequest(appointment_date=open_day, appointment_time='12:00'),
            db=schedule_db,
            current_user=admin_user,
        )

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == SLOT_UNAVAILABLE_DETAIL


def test_reschedule_booking_rejects_cancelled_booking(schedule_db, open_day, signing_service, admin_user) -> None:
    created = _book(schedule_db, signing_service, open_day, '10:00')
    update_booking_status(
        booking_id=created.booking_id,
        data=UpdateBookingStatusRequest(status='cancelled'),
        db=schedule_db,
        current_user=admin_user,
    )

    with pytest.raises(HTTPException) as exception_info:
        reschedule_booking(
            booking_id=created.booking_id,
            data=RescheduleBookingRequest(appointment_date=open_day, appointment_time='14:00'),
            db=schedule_db,
            current_user=admin_user,
        )

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Cancelled bookings cannot be rescheduled.'

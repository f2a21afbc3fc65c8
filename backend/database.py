import os
from datetime import date
from dotenv import load_dotenv
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker


load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL")

engine = create_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_booking_schema_checked = False

# Rows written before appointment_end_time existed take their end from the service duration.
_END_TIME_BACKFILL = {
    'postgresql': (
        "UPDATE bookings SET appointment_end_time = bookings.appointment_time "
        "+ services.duration_minutes * INTERVAL '1 minute' "
        "FROM services WHERE services.id = bookings.service_id AND bookings.appointment_end_time IS NULL"
    ),
    'sqlite': (
        "UPDATE bookings SET appointment_end_time = ("
        "SELECT time(bookings.appointment_time, '+' || services.duration_minutes || ' minutes') "
        "FROM services WHERE services.id = bookings.service_id"
        ") WHERE appointment_end_time IS NULL"
    ),
}


def ensure_booking_schema() -> None:
    global _booking_schema_checked

    if _booking_schema_checked:
        return

    with _schema_lock:
        if _booking_schema_checked:
            return

        inspector = inspect(engine)

        if 'bookings' not in inspector.get_table_names():
            _booking_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('bookings')}
        migration_steps = [
            ('appointment_end_time', 'ALTER TABLE bookings ADD COLUMN appointment_end_time TIME'),
            ('booking_token', 'ALTER TABLE bookings ADD COLUMN booking_token VARCHAR'),
            ('payment_status', "ALTER TABLE bookings ADD COLUMN payment_status VARCHAR DEFAULT 'pending'"),
            ('notes', 'ALTER TABLE bookings ADD COLUMN notes VARCHAR'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))

            backfill_end_time = _END_TIME_BACKFILL.get(engine.dialect.name)
            if backfill_end_time is not None:
                connection.execute(text(backfill_end_time))

            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_bookings_date_time ON bookings(appointment_date, appointment_time)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_bookings_status_date ON bookings(status, appointment_date)')
            )
            connection.execute(
                text('CREATE UNIQUE INDEX IF NOT EXISTS idx_bookings_token ON bookings(booking_token)')
            )

        _booking_schema_checked = True


def lock_booking_date(db: Session, appointment_date: date) -> None:
    """Serialize booking writes for one calendar date until the transaction ends.

    Postgres only; other dialects have no advisory locks and rely on their own
    write serialization.
    """
    if db.get_bind().dialect.name != 'postgresql':
        return

    db.execute(
        text('SELECT pg_advisory_xact_lock(:lock_key)'),
        {'lock_key': appointment_date.toordinal()},
    )

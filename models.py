import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import Index
from sqlmodel import Field, SQLModel


class Booking(SQLModel, table=True):
    __tablename__ = "bookings"
    __table_args__ = (
        # Conflict lookups scan one date ordered by start
        Index("ix_bookings_date_start", "booking_date", "start_minutes"),
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    team_name: str = Field(max_length=50)
    booking_date: date
    start_time: str  # HH:MM
    end_time: str  # HH:MM, 24:00 at midnight
    duration: int
    start_minutes: int
    end_minutes: int
    password_hash: str  # salt$pbkdf2-sha256 hex digest
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class BookingDay(SQLModel, table=True):
    """Per-date write lock row.

    Every insert bumps ``revision`` for its date before reading that date's
    bookings, so the database serializes concurrent inserts for the same day.
    """

    __tablename__ = "booking_days"

    booking_date: date = Field(primary_key=True)
    revision: int = 0
    updated_at: Optional[datetime] = None

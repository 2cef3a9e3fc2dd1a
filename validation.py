"""Booking admissibility rules.

Everything here is pure: no database, no clock. Callers pass ``today`` and the
bookings that already exist, and get back ``Ok`` with a normalized booking or
``Err`` with the first rule that failed. Rules run in a fixed order and only
the first failure is reported.
"""

import re
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Any, Generic, Iterable, Optional, Tuple, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

MAX_TEAM_NAME_LENGTH = 50
MAX_DURATION_MINUTES = 120
MINUTES_PER_DAY = 24 * 60
WINDOW_DAYS = 7
PASSWORD_LENGTH = (4, 20)

_TIME_PATTERN = re.compile(r"[0-9]{2}:[0-9]{2}")
_DATE_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
_DIGITS_PATTERN = re.compile(r"\s*[0-9]{1,4}\s*")

T = TypeVar("T")


class BookingErrorCode(str, Enum):
    MISSING_FIELD = "MissingField"
    FIELD_TOO_LONG = "FieldTooLong"
    OUT_OF_WINDOW = "OutOfWindow"
    INVALID_DURATION = "InvalidDuration"
    INVALID_START_TIME = "InvalidStartTime"
    CROSSES_MIDNIGHT = "CrossesMidnight"
    CONFLICT = "Conflict"
    INVALID_PASSWORD = "InvalidPassword"
    NOT_FOUND = "NotFound"
    UNAUTHORIZED = "Unauthorized"


@dataclass(frozen=True)
class BookingError:
    code: BookingErrorCode
    message: str


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T = None


@dataclass(frozen=True)
class Err:
    error: BookingError

    @property
    def code(self) -> BookingErrorCode:
        return self.error.code


Result = Union[Ok, Err]


class BookingProposal(BaseModel):
    """Unvalidated booking request as submitted by a client."""

    model_config = ConfigDict(populate_by_name=True)

    team_name: Optional[str] = Field(default=None, alias="teamName")
    booking_date: Optional[str] = Field(default=None, alias="date")
    start_time: Optional[str] = Field(default=None, alias="startTime")
    # Any type; parse_duration owns the rule
    duration: Any = None
    password: Optional[str] = None


@dataclass(frozen=True)
class NewBooking:
    """A proposal that passed every rule, with derived fields filled in."""

    team_name: str
    booking_date: date
    start_time: str
    end_time: str
    duration: int
    start_minutes: int
    end_minutes: int


def _err(code: BookingErrorCode, message: str) -> Err:
    return Err(BookingError(code, message))


def parse_time(value: Any) -> Optional[int]:
    """Return minutes since midnight for a strict ``HH:MM`` string, else None."""
    if not isinstance(value, str) or not _TIME_PATTERN.fullmatch(value):
        return None
    hours, minutes = (int(part) for part in value.split(":"))
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


def format_minutes(minutes: int) -> str:
    hours, mins = divmod(minutes, 60)
    return f"{hours:02d}:{mins:02d}"


def parse_date(value: Any) -> Optional[date]:
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _DATE_PATTERN.fullmatch(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def parse_duration(value: Any) -> Optional[int]:
    """Return the duration as whole minutes in ``(0, 120]``, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        minutes = value
    elif isinstance(value, float) and value.is_integer():
        minutes = int(value)
    elif isinstance(value, str) and _DIGITS_PATTERN.fullmatch(value):
        minutes = int(value)
    else:
        return None
    if minutes <= 0 or minutes > MAX_DURATION_MINUTES:
        return None
    return minutes


def compute_window(today: date) -> Tuple[date, date]:
    return today, today + timedelta(days=WINDOW_DAYS)


def is_within_window(value: Any, today: date) -> bool:
    target = parse_date(value)
    if target is None:
        return False
    start, end = compute_window(today)
    return start <= target <= end


def overlaps(start: int, end: int, other_start: int, other_end: int) -> bool:
    # Half-open intervals: touching endpoints are not a conflict
    return start < other_end and end > other_start


def find_conflict(booking: NewBooking, existing: Iterable[Any]) -> Optional[Any]:
    """Return the first same-date booking overlapping ``booking``, if any."""
    for other in existing:
        if other.booking_date != booking.booking_date:
            continue
        if overlaps(booking.start_minutes, booking.end_minutes,
                    other.start_minutes, other.end_minutes):
            return other
    return None


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def normalize(proposal: BookingProposal, today: date) -> Result:
    """Run every rule that does not need existing bookings."""
    if any(_is_blank(value) for value in (
        proposal.team_name, proposal.booking_date, proposal.start_time, proposal.duration,
    )):
        return _err(BookingErrorCode.MISSING_FIELD, "All fields are required.")

    team_name = proposal.team_name.strip()
    if len(team_name) > MAX_TEAM_NAME_LENGTH:
        return _err(
            BookingErrorCode.FIELD_TOO_LONG,
            f"Team name must be at most {MAX_TEAM_NAME_LENGTH} characters.",
        )

    if not is_within_window(proposal.booking_date, today):
        return _err(
            BookingErrorCode.OUT_OF_WINDOW,
            f"Bookings are only allowed from today up to {WINDOW_DAYS} days ahead.",
        )

    duration = parse_duration(proposal.duration)
    if duration is None:
        return _err(
            BookingErrorCode.INVALID_DURATION,
            f"Duration must be between 1 and {MAX_DURATION_MINUTES} minutes.",
        )

    start_minutes = parse_time(proposal.start_time)
    if start_minutes is None:
        return _err(BookingErrorCode.INVALID_START_TIME, "Start time must be HH:MM.")

    end_minutes = start_minutes + duration
    if end_minutes > MINUTES_PER_DAY:
        return _err(BookingErrorCode.CROSSES_MIDNIGHT, "A booking cannot end after midnight.")

    return Ok(NewBooking(
        team_name=team_name,
        booking_date=parse_date(proposal.booking_date),
        start_time=proposal.start_time,
        end_time=format_minutes(end_minutes),
        duration=duration,
        start_minutes=start_minutes,
        end_minutes=end_minutes,
    ))


def validate(proposal: BookingProposal, existing: Iterable[Any], today: date) -> Result:
    result = normalize(proposal, today)
    if isinstance(result, Err):
        return result
    if find_conflict(result.value, existing) is not None:
        return _err(BookingErrorCode.CONFLICT, "That time slot is already booked.")
    return result


def check_password(password: Any) -> Result:
    if _is_blank(password):
        return _err(BookingErrorCode.MISSING_FIELD, "A delete password is required.")
    low, high = PASSWORD_LENGTH
    if not low <= len(password.strip()) <= high:
        return _err(
            BookingErrorCode.INVALID_PASSWORD,
            f"Password must be {low} to {high} characters.",
        )
    return Ok(password.strip())

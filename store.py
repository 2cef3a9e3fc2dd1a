"""Persistent booking collection with conflict-checked insertion."""

import asyncio
import hashlib
import logging
import secrets
from contextlib import contextmanager
from dataclasses import asdict
from datetime import date, datetime, timezone
from typing import Callable, List, Tuple

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from sqlmodel import select

from database import create_engine, init_db, session_factory
from models import Booking, BookingDay
from validation import (
    BookingError,
    BookingErrorCode,
    BookingProposal,
    Err,
    Ok,
    Result,
    check_password,
    compute_window,
    normalize,
    validate,
)

log = logging.getLogger("booking.store")

_HASH_ITERATIONS = 100_000
# Attempts to create a missing BookingDay row before giving up
_DAY_LOCK_ATTEMPTS = 3


class StorageError(Exception):
    """The database failed; not the caller's fault."""


def hash_password(password: str, salt: str | None = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt.encode("utf-8"), _HASH_ITERATIONS
    )
    return f"{salt}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    salt, _, expected = stored.partition("$")
    actual = hash_password(password, salt).partition("$")[2]
    return secrets.compare_digest(actual, expected)


async def _run_in_executor(func, *args):
    """Run a CPU-bound call (PBKDF2) off the event loop."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, func, *args)


@contextmanager
def _storage_errors(action: str):
    try:
        yield
    except SQLAlchemyError as exc:
        log.exception("Storage failure while %s", action)
        raise StorageError(f"Storage failure while {action}") from exc


class BookingStore:
    """Bookings for the single room, backed by an async SQLAlchemy engine.

    ``today`` is called on every operation so the booking window slides with
    the server's local date.
    """

    def __init__(self, engine: AsyncEngine, today: Callable[[], date] = date.today):
        self.engine = engine
        self._sessions = session_factory(engine)
        self._today = today

    @classmethod
    async def open(cls, database_url: str, today: Callable[[], date] = date.today) -> "BookingStore":
        engine = create_engine(database_url)
        with _storage_errors("creating tables"):
            await init_db(engine)
        log.info("Booking store opened (%s)", engine.url.render_as_string(hide_password=True))
        return cls(engine, today=today)

    async def close(self) -> None:
        await self.engine.dispose()
        log.info("Booking store closed")

    def window(self) -> Tuple[date, date]:
        return compute_window(self._today())

    async def list(self) -> List[Booking]:
        with _storage_errors("listing bookings"):
            async with self._sessions() as session:
                statement = select(Booking).order_by(Booking.booking_date, Booking.start_minutes)
                result = await session.execute(statement)
                return list(result.scalars().all())

    async def check(self, proposal: BookingProposal) -> Result:
        """Validate against the committed bookings without persisting anything."""
        today = self._today()
        result = normalize(proposal, today)
        if isinstance(result, Err):
            return result
        with _storage_errors("checking a booking"):
            async with self._sessions() as session:
                existing = await self._bookings_on(session, result.value.booking_date)
        return validate(proposal, existing, today)

    async def insert(self, proposal: BookingProposal) -> Result:
        today = self._today()
        result = normalize(proposal, today)
        if isinstance(result, Err):
            log.info("Rejected booking for %r: %s", proposal.team_name, result.code.value)
            return result
        password = check_password(proposal.password)
        if isinstance(password, Err):
            log.info("Rejected booking for %r: %s", proposal.team_name, password.code.value)
            return password

        # Hashed before the day lock is taken
        password_hash = await _run_in_executor(hash_password, password.value)
        day = result.value.booking_date
        with _storage_errors("inserting a booking"):
            for attempt in range(1, _DAY_LOCK_ATTEMPTS + 1):
                try:
                    return await self._insert_locked(proposal, day, password_hash, today)
                except IntegrityError:
                    # Another writer created the day row first; its lock now exists
                    if attempt == _DAY_LOCK_ATTEMPTS:
                        raise
                    log.info("Day row for %s created concurrently, retrying", day)

    async def _insert_locked(
        self, proposal: BookingProposal, day: date, password_hash: str, today: date
    ) -> Result:
        async with self._sessions() as session:
            await self._lock_day(session, day)
            existing = await self._bookings_on(session, day)
            result = validate(proposal, existing, today)
            if isinstance(result, Err):
                await session.rollback()
                log.info("Rejected booking for %r: %s", proposal.team_name, result.code.value)
                return result

            booking = Booking(**asdict(result.value), password_hash=password_hash)
            session.add(booking)
            await session.commit()
            log.info(
                "Booked %s %s-%s for %r (%s)",
                booking.booking_date, booking.start_time, booking.end_time,
                booking.team_name, booking.id,
            )
            return Ok(booking)

    @staticmethod
    async def _lock_day(session: AsyncSession, day: date) -> None:
        # Must be the first statement of the transaction: the write takes the
        # row lock (or the SQLite write lock) before any booking is read.
        now = datetime.now(timezone.utc)
        result = await session.execute(
            update(BookingDay)
            .where(BookingDay.booking_date == day)
            .values(revision=BookingDay.revision + 1, updated_at=now)
        )
        if result.rowcount == 0:
            session.add(BookingDay(booking_date=day, revision=1, updated_at=now))
            await session.flush()

    @staticmethod
    async def _bookings_on(session: AsyncSession, day: date) -> List[Booking]:
        statement = (
            select(Booking)
            .where(Booking.booking_date == day)
            .order_by(Booking.start_minutes)
        )
        result = await session.execute(statement)
        return list(result.scalars().all())

    async def delete(self, booking_id: str, password: str | None) -> Result:
        with _storage_errors("deleting a booking"):
            async with self._sessions() as session:
                booking = await session.get(Booking, booking_id)
                if booking is None:
                    return Err(BookingError(BookingErrorCode.NOT_FOUND, "Booking not found."))
                if not password or not await _run_in_executor(
                    verify_password, password.strip(), booking.password_hash
                ):
                    log.info("Refused delete of %s: wrong password", booking_id)
                    return Err(BookingError(BookingErrorCode.UNAUTHORIZED, "Incorrect password."))

                result = await session.execute(delete(Booking).where(Booking.id == booking_id))
                await session.commit()
                if result.rowcount == 0:
                    # Deleted by someone else between the lookup and the delete
                    return Err(BookingError(BookingErrorCode.NOT_FOUND, "Booking not found."))
        log.info("Deleted booking %s", booking_id)
        return Ok()

    async def delete_all(self) -> Result:
        with _storage_errors("clearing bookings"):
            async with self._sessions() as session:
                result = await session.execute(delete(Booking))
                await session.execute(delete(BookingDay))
                await session.commit()
        log.info("Cleared all bookings (%d removed)", result.rowcount)
        return Ok()

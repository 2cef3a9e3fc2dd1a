from datetime import date

import httpx
import pytest

from main import create_app
from store import BookingStore
from validation import BookingProposal

TODAY = date(2024, 1, 10)


def make_proposal(**overrides) -> BookingProposal:
    values = {
        "teamName": "Platform",
        "date": "2024-01-12",
        "startTime": "10:00",
        "duration": 60,
        "password": "hunter2",
    }
    values.update(overrides)
    return BookingProposal(**values)


@pytest.fixture
async def store(tmp_path):
    store = await BookingStore.open(
        f"sqlite+aiosqlite:///{tmp_path / 'bookings.sqlite'}",
        today=lambda: TODAY,
    )
    yield store
    await store.close()


@pytest.fixture
async def client(store):
    app = create_app(store)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

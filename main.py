import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import List

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field

import config
from models import Booking
from store import BookingStore, StorageError
from validation import BookingErrorCode, BookingProposal, Err, NewBooking

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(name)-16s %(levelname)-7s %(message)s",
)

log = logging.getLogger("booking.app")

# Everything not listed here is a 400
ERROR_STATUS = {
    BookingErrorCode.CONFLICT: status.HTTP_409_CONFLICT,
    BookingErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    BookingErrorCode.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
}


# Pydantic Schemas for Request/Response
class BookingPreview(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    team_name: str = Field(alias="teamName")
    booking_date: date = Field(alias="date")
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")
    duration: int
    start_minutes: int = Field(alias="startMinutes")
    end_minutes: int = Field(alias="endMinutes")

    @classmethod
    def from_booking(cls, booking: Booking | NewBooking):
        return cls(**{name: getattr(booking, name) for name in cls.model_fields})


class BookingOut(BookingPreview):
    id: str


class DeleteRequest(BaseModel):
    password: str | None = None


class BookingWindow(BaseModel):
    start: date
    end: date


def get_store(request: Request) -> BookingStore:
    return request.app.state.store


def error_response(result: Err) -> JSONResponse:
    status_code = ERROR_STATUS.get(result.code, status.HTTP_400_BAD_REQUEST)
    return JSONResponse(status_code=status_code, content={"message": result.error.message})


router = APIRouter()


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/api/window", response_model=BookingWindow)
async def get_window(store: BookingStore = Depends(get_store)):
    start, end = store.window()
    return BookingWindow(start=start, end=end)


@router.get("/api/bookings", response_model=List[BookingOut])
async def list_bookings(store: BookingStore = Depends(get_store)):
    bookings = await store.list()
    return [BookingOut.from_booking(b) for b in bookings]


@router.post("/api/bookings", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
async def create_booking(
    proposal: BookingProposal,
    store: BookingStore = Depends(get_store),
):
    result = await store.insert(proposal)
    if isinstance(result, Err):
        return error_response(result)
    return BookingOut.from_booking(result.value)


# Same rules as create, nothing persisted; lets the client check before submitting
@router.post("/api/bookings/check", response_model=BookingPreview)
async def check_booking(
    proposal: BookingProposal,
    store: BookingStore = Depends(get_store),
):
    result = await store.check(proposal)
    if isinstance(result, Err):
        return error_response(result)
    return BookingPreview.from_booking(result.value)


@router.delete("/api/bookings/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_booking(
    booking_id: str,
    payload: DeleteRequest | None = None,
    store: BookingStore = Depends(get_store),
):
    password = payload.password if payload else None
    result = await store.delete(booking_id, password)
    if isinstance(result, Err):
        return error_response(result)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/api/bookings", status_code=status.HTTP_204_NO_CONTENT)
async def delete_all_bookings(store: BookingStore = Depends(get_store)):
    await store.delete_all()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def create_app(store: BookingStore | None = None) -> FastAPI:
    """Build the app. A store passed in is used as-is and never closed here."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = store is None
        if owned:
            app.state.store = await BookingStore.open(config.DATABASE_URL)
        yield
        if owned:
            await app.state.store.close()

    app = FastAPI(title="Team Room Booking", lifespan=lifespan)
    if store is not None:
        app.state.store = store

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        log.info("Malformed request to %s: %s", request.url.path, exc.errors())
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": "The request body is malformed."},
        )

    @app.exception_handler(StorageError)
    async def storage_failure(request: Request, exc: StorageError):
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": "The booking database is unavailable. Please try again later."},
        )

    app.include_router(router)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=config.HOST, port=config.PORT)

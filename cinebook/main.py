import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from cinebook.db.init_db import create_database
from cinebook.db.base import Base
from cinebook.db.session import engine, SessionLocal
from cinebook.core.config import settings
from cinebook.core.exceptions import BookingError
from cinebook.api.v1.router import api_router

logger = logging.getLogger(__name__)


async def _expiry_sweep_loop(interval: int) -> None:
    """Background task: expire lapsed pending bookings every ``interval`` seconds."""
    from cinebook.services.sweeper import expire_pending_bookings_before_show

    while True:
        try:
            db = SessionLocal()
            try:
                expire_pending_bookings_before_show(db)
            finally:
                db.close()
        except Exception:
            logger.exception("Error during pending-booking sweep.")
        await asyncio.sleep(interval)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: Ensure DB exists and create tables
    create_database()
    Base.metadata.create_all(bind=engine)

    sweep_task = None
    if settings.SWEEPER_INTERVAL_SECONDS > 0:
        sweep_task = asyncio.create_task(_expiry_sweep_loop(settings.SWEEPER_INTERVAL_SECONDS))
    yield

    # Shutdown: cancel background task
    if sweep_task:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass


from fastapi.middleware.cors import CORSMiddleware

app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

# Set all CORS enabled origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    return JSONResponse(status_code=exc.status_code, content=exc.payload())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    message = str(exc) if settings.DEBUG else "Internal server error"
    return JSONResponse(
        status_code=500,
        content={"error": "internal_error", "message": message},
    )


app.include_router(api_router, prefix=settings.API_V1_STR)

@app.get("/")
def read_root():
    return {"Hello": "Cinebook"}

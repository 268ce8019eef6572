from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from time_tracking.core.exceptions import ErrorKind, TimeTrackingError
from time_tracking.core.logging import configure_logging
from time_tracking.models import change_log, time_entry, time_settings  # noqa: F401
from time_tracking.routers.auth import router as auth_router
from time_tracking.routers.settings import router as settings_router
from time_tracking.routers.time_entries import router as time_entries_router

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    ErrorKind.ALREADY_RUNNING: 409,
    ErrorKind.NOT_RUNNING: 409,
    ErrorKind.OVERLAP: 409,
    ErrorKind.LOCKED: 403,
    ErrorKind.INVALID_STATUS: 409,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.UNLOCK_NOT_AUTHORIZED: 403,
    ErrorKind.VALIDATION_FAILED: 422,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    yield


app = FastAPI(
    title="Time Tracking",
    lifespan=lifespan,
)


@app.middleware("http")
async def catch_unhandled_exceptions(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception:
        logger.exception("Unhandled exception")
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


@app.exception_handler(TimeTrackingError)
async def time_tracking_error_handler(request: Request, exc: TimeTrackingError):
    status_code = ERROR_STATUS_CODES.get(exc.kind, 400)
    logger.info(
        "Request rejected",
        extra={
            "error": exc.kind.value,
            "path": request.url.path,
            "company_id": getattr(request.state, "company_id", None),
            "user_id": getattr(request.state, "user_id", None),
        },
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error": exc.kind.value, "details": exc.details},
    )


app.include_router(auth_router)
app.include_router(time_entries_router)
app.include_router(settings_router)


@app.get("/")
def root():
    return {"status": "Time Tracking running"}


@app.get("/health")
def health():
    return {
        "status": "ok",
        "version": "1.0.0",
    }

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from classroom_scheduler.core.config import settings
from classroom_scheduler.core.errors import (
    AvailabilityCheckFailed,
    BookingConflict,
    BookingNotFound,
    DataServiceError,
    InvalidRange,
    InvalidTimeFormat,
)
from classroom_scheduler.api import display, timetable
from classroom_scheduler.core.logger import setup_logging, logger
from classroom_scheduler.services.realtime_service import realtime_service
from classroom_scheduler.services.time_utils import reference_now
from contextlib import asynccontextmanager

setup_logging()

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("🚀 Starting Classroom Scheduler Backend")
    realtime_enabled = bool(settings.REALTIME_ENABLED and settings.SUPABASE_URL and settings.SUPABASE_KEY)
    await realtime_service.start(subscribe=realtime_enabled)
    yield
    # Shutdown
    await realtime_service.stop()
    logger.info("🛑 Shutting down backend")

app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    lifespan=lifespan
)

def _error(status_code: int, message: str, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message, "detail": detail})

@app.exception_handler(InvalidTimeFormat)
@app.exception_handler(InvalidRange)
async def invalid_input_handler(request: Request, exc: Exception):
    return _error(422, "Invalid time input", str(exc))

@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    return _error(422, "Invalid booking data", str(exc))

@app.exception_handler(BookingConflict)
async def conflict_handler(request: Request, exc: BookingConflict):
    return _error(409, "Booking conflict", str(exc))

@app.exception_handler(BookingNotFound)
async def not_found_handler(request: Request, exc: BookingNotFound):
    return _error(404, "Not found", str(exc))

@app.exception_handler(AvailabilityCheckFailed)
async def availability_unknown_handler(request: Request, exc: AvailabilityCheckFailed):
    logger.warning(f"⚠️ Availability unknown, blocking booking action: {exc}")
    return _error(503, "Availability could not be confirmed", str(exc))

@app.exception_handler(DataServiceError)
async def data_service_handler(request: Request, exc: DataServiceError):
    return _error(502, "Data service error", str(exc))

# Global Exception Handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.opt(exception=exc).error(f"🔥 UNHANDLED ERROR: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={"message": "Internal Server Error", "detail": "An unexpected error occurred. Please contact support."}
    )

# Include routers
app.include_router(timetable.router, prefix=settings.API_V1_STR, tags=["Timetable"])
app.include_router(display.router, prefix=settings.API_V1_STR, tags=["Display"])

@app.get("/health")
async def health_check():
    return {"status": "ok", "environment": settings.ENVIRONMENT, "timestamp": reference_now().isoformat()}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("classroom_scheduler.main:app", host="0.0.0.0", port=settings.PORT, reload=True)

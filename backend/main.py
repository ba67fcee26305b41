from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text

from api.v1 import admin, auth, otp, upload
from core.config import settings
from core.errors import ServiceError, RateLimitedError
from db.base import initialize_database
from db.session import engine, SessionLocal
from utils.logging_config import configure_logging, RequestContextMiddleware
from utils.responses import error_json, no_store_json

# Configure logging with date-based files and TTL retention
logger = configure_logging("passcode_auth")

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.is_infrastructure:
        # Detail and cause stay in the server log; the caller gets the public message
        logger.error(
            f"{exc.kind.value} failure at {request.url.path}: {exc.detail or exc.message}",
            exc_info=exc.__cause__ is not None,
        )
    else:
        logger.info(f"{exc.kind.value} at {request.url.path}: {exc.message}")
    headers = None
    if isinstance(exc, RateLimitedError) and exc.retry_after:
        headers = {"Retry-After": str(exc.retry_after)}
    return error_json(exc.message, exc.http_status, headers=headers)


# Global exception handler to ensure 500s for unexpected errors
@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error at {request.url.path}: {exc}", exc_info=exc)
    return error_json("Internal server error", 500)


# Add logging context middleware to capture user_id and API path
app.add_middleware(RequestContextMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router, tags=["Authentication"])
app.include_router(otp.router, tags=["Verification"])
app.include_router(admin.router, tags=["Admin"])
app.include_router(upload.router, tags=["Uploads"])

# Locally stored images are served as static files
Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")


@app.on_event("startup")
async def startup_db_client():
    """Create tables as configured"""
    await initialize_database()
    logger.info("Application startup complete")


@app.on_event("shutdown")
async def shutdown_db_client():
    await engine.dispose()
    logger.info("Application shutdown complete")


@app.get("/")
async def root():
    return {"message": settings.APP_NAME, "version": settings.VERSION}


@app.get("/health")
async def health_check():
    # Actively check DB connectivity
    try:
        async with SessionLocal() as db:
            await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(f"Health SQL check failed: {e}")
        return error_json("Database unreachable", 503)
    return no_store_json({"status": "ok", "db": "connected"})

"""
DoseCheck Backend
FastAPI application exposing the scheduling and confirmation engine
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

# Configuration and database
from config import settings
from database import init_db, DatabaseHealthCheck
from api import include_routers
from tools.clock import utcnow

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


def sms_configured() -> bool:
    return bool(
        settings.TWILIO_ACCOUNT_SID
        and settings.TWILIO_AUTH_TOKEN
        and settings.TWILIO_MESSAGING_SERVICE_SID
    )


# ==================== LIFESPAN ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and report configuration gaps before serving"""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION} ({settings.ENV})")
    init_db()

    if not settings.CRON_SECRET_TOKEN:
        logger.warning("CRON_SECRET_TOKEN is not set; cron and admin triggers will reject every call")
    if settings.SMS_TEST_MODE:
        logger.warning("SMS test mode is on; reminders are logged, not sent")
    elif not sms_configured():
        logger.warning("Twilio is not configured; the reminder tick will answer 503")
    logger.info(
        f"Sessions live {settings.SESSION_TTL_MINUTES} min, follow-up after "
        f"{settings.FOLLOW_UP_AFTER_MINUTES} min, links to {settings.APP_BASE_URL}"
    )

    yield

    logger.info(f"Shutting down {settings.APP_NAME}")

# ==================== APP INITIALIZATION ====================

app = FastAPI(
    title=settings.APP_NAME,
    description="""
    ## DoseCheck API

    Medication adherence scheduling and confirmation engine.

    ### Flow
    - **Tick**: due schedules open a confirmation session and an SMS reminder is sent
    - **Confirm**: the patient scans their medication; the session records TAKEN events
    - **Sweep**: sessions past their TTL record MISSED events
    - **Reconcile**: one scan covering several doses fixes MISSED siblings in the same 15-minute bucket
    - **Score**: expected vs taken doses over a rolling period
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Attach modular API routers
include_routers(app, prefix=settings.API_PREFIX)


# ==================== EXCEPTION HANDLERS ====================

def error_response(status_code: int, message: Any, headers: Optional[dict] = None, **extra) -> JSONResponse:
    """Uniform error envelope for every non-2xx answer"""
    return JSONResponse(
        status_code=status_code,
        content={
            "error": True,
            "message": message,
            "status_code": status_code,
            "timestamp": utcnow().isoformat(),
            **extra
        },
        headers=headers
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")
    return error_response(exc.status_code, exc.detail, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Invalid request",
        details=jsonable_encoder(exc.errors())
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        str(exc) if settings.DEBUG else "An unexpected error occurred"
    )


# ==================== HEALTH ====================

@app.get("/", tags=["Health"])
async def root():
    """Liveness probe"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "healthy",
        "docs": app.docs_url
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Database reachability and schema, transport and cron configuration"""
    db_connected = DatabaseHealthCheck.is_connected()
    missing = DatabaseHealthCheck.missing_tables() if db_connected else []
    ready = db_connected and not missing and (settings.SMS_TEST_MODE or sms_configured())

    return {
        "status": "healthy" if ready else "degraded",
        "timestamp": utcnow().isoformat(),
        "checks": {
            "database": {
                "status": "up" if db_connected else "down",
                "dialect": settings.DATABASE_URL.split(":", 1)[0],
                "missing_tables": missing
            },
            "sms": {
                "test_mode": settings.SMS_TEST_MODE,
                "configured": sms_configured()
            },
            "cron": {
                "configured": bool(settings.CRON_SECRET_TOKEN)
            }
        },
        "scheduling": {
            "session_ttl_minutes": settings.SESSION_TTL_MINUTES,
            "follow_up_after_minutes": settings.FOLLOW_UP_AFTER_MINUTES,
            "reconcile_bucket_minutes": settings.RECONCILE_BUCKET_MINUTES,
            "default_timezone": settings.DEFAULT_TIMEZONE
        },
        "version": settings.APP_VERSION
    }

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )

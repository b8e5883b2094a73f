"""
Configuration management for DoseCheck
"""

from typing import Optional
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "DoseCheck"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENV: str = "development"

    # API
    API_PREFIX: str = "/api/v1"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str = "sqlite:///./dosecheck.db"
    DATABASE_ECHO: bool = False

    # Cron / admin triggers (Bearer token); unset means every trigger is rejected
    CRON_SECRET_TOKEN: Optional[str] = None

    # Links embedded in reminders point at {APP_BASE_URL}/scan/{token}
    APP_BASE_URL: str = "http://localhost:3000"
    DEFAULT_TIMEZONE: str = "America/New_York"

    # Scheduling
    SESSION_TTL_MINUTES: int = 120
    DEFAULT_ADVANCE_MINUTES: int = 15
    FOLLOW_UP_AFTER_MINUTES: int = 60

    # Event log
    RECONCILE_BUCKET_MINUTES: int = 15
    RECONCILE_ON_WRITE: bool = True
    ADHERENCE_WINDOW_DAYS: int = 30

    # Notifications
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_MESSAGING_SERVICE_SID: Optional[str] = None
    SMS_TEST_MODE: bool = False
    TRANSPORT_TIMEOUT_SECONDS: float = 10.0

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


class EngineConfig:
    """Fixed behaviour of the scheduling and confirmation engine"""

    # Fallback wall-clock times for named slots when the patient has no preference
    SLOT_DEFAULT_TIMES: dict[str, str] = {
        "morning": "06:00:00",
        "afternoon": "12:00:00",
        "evening": "18:00:00",
        "bedtime": "22:00:00",
    }

    # Every day of the week (bit 0 = Sunday)
    ALL_DAYS_MASK: int = 0b1111111

    # Delivery-status callbacks
    FAILED_DELIVERY_STATUSES: list[str] = ["failed", "undelivered"]
    CARRIER_FILTERED_ERROR_CODE: str = "30007"
    A2P_BLOCKED_ERROR_CODE: str = "30034"

    # Reconciliation provenance
    PACK_SCAN_REASON: str = "pack_scan_all_medications_taken"

    # Event sources
    SOURCE_SCAN: str = "qr_scan"
    SOURCE_EXPIRED_SESSION: str = "expired_session"
    SOURCE_BACKFILL: str = "backfill_expired_session"


# Database table names
class TableNames:
    PATIENTS = "patients"
    MEDICATIONS = "medications"
    SCHEDULES = "medication_schedules"
    CONFIRMATION_SESSIONS = "confirmation_sessions"
    MEDICATION_LOGS = "medication_logs"
    LOG_CORRECTIONS = "medication_log_corrections"
    REMINDER_DISPATCHES = "reminder_dispatches"
    DELIVERY_STATUS_LOGS = "sms_delivery_logs"
    OPERATIONAL_ALERTS = "operational_alerts"


settings = get_settings()
engine_config = EngineConfig()

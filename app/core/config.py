from typing import List, Optional

from atams import AtamsBaseSettings
from pydantic_settings import SettingsConfigDict


class Settings(AtamsBaseSettings):
    """
    Application Settings

    Inherits from AtamsBaseSettings which includes:
    - DATABASE_URL, DB_POOL_SIZE, DB_MAX_OVERFLOW, DB_POOL_RECYCLE, DB_POOL_TIMEOUT, DB_POOL_PRE_PING
    - LOGGING_ENABLED, LOG_LEVEL, LOG_TO_FILE, LOG_FILE_PATH
    - DEBUG

    All settings can be overridden via .env file or by redefining them here.
    Numeric ceilings for clock validation are defaults, not hard requirements:
    - MAX_LOCATION_ACCURACY_M: coarser fixes are rejected
    - CLOCK_SKEW_TOLERANCE_SECONDS: allowed lead of client timestamps over server time
    - MAX_PAST_TIMESTAMP_SECONDS: allowed lag behind server time, unset for no limit
    - MIN_SESSION_MINUTES / MAX_SESSION_HOURS: plausible session duration bounds
    - CIRCUIT_FAILURE_THRESHOLD / CIRCUIT_RECOVERY_SECONDS: breaker trip point and cooldown
    """
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    APP_NAME: str = "Clinical Attendance"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    API_V1_PREFIX: str = "/api/v1"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./clinical_attendance.db"
    DB_ECHO: bool = False

    # Identity tokens issued by the auth collaborator
    ATLAS_APP_CODE: str = "clinical-attendance"
    AUTH_JWT_SECRET: str = "change-me"
    AUTH_JWT_ALG: str = "HS256"
    PROXY_ROLES: List[str] = ["preceptor", "school_admin", "super_admin"]
    ADMIN_ROLES: List[str] = ["school_admin", "super_admin"]

    # Logging
    LOG_FILE_PATH: str = "logs/attendance.log"

    # Geofence settings
    GEOFENCE_STRICT_MODE: bool = False
    DEFAULT_GEOFENCE_RADIUS_M: int = 100
    MAX_LOCATION_ACCURACY_M: float = 500.0

    # Time validation
    CLOCK_SKEW_TOLERANCE_SECONDS: int = 30
    MAX_PAST_TIMESTAMP_SECONDS: Optional[int] = None
    MIN_SESSION_MINUTES: int = 5
    MAX_SESSION_HOURS: int = 24

    # Failure isolation
    CIRCUIT_FAILURE_THRESHOLD: int = 5
    CIRCUIT_RECOVERY_SECONDS: float = 60.0
    OPERATION_TIMEOUT_SECONDS: float = 10.0

    # Caches
    SITE_CACHE_TTL_SECONDS: float = 300.0
    STATUS_CACHE_TTL_SECONDS: float = 30.0


settings = Settings()

"""
VTRIA ERP Configuration
Core settings for the VTRIA engineering/manufacturing ERP API
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional
from pathlib import Path


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Application Info
    APP_NAME: str = "VTRIA ERP API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./vtria_erp.db"
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20
    AUTO_CREATE_TABLES: bool = True

    # Security
    SECRET_KEY: str = "your-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480
    MAX_FAILED_LOGINS: int = 5
    ACCOUNT_LOCK_MINUTES: int = 30
    # Peers allowed to set X-Forwarded-For; anyone else is identified by the socket address
    TRUSTED_PROXIES: List[str] = []

    # CORS
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",  # React frontend
        "http://localhost:3001",
    ]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Path = Path("logs")
    LOG_FILE: str = "app.log"
    ERROR_LOG_FILE: str = "error.log"
    ACCESS_LOG_FILE: str = "access.log"
    LOG_TO_FILE: bool = True

    # API Configuration
    API_PREFIX: str = "/api"
    DOCS_URL: str = "/docs"
    REDOC_URL: str = "/redoc"
    OPENAPI_URL: str = "/openapi.json"

    # Business Settings
    COMPANY_PREFIX: str = "VESPL"
    DEFAULT_TIMEZONE: str = "Asia/Kolkata"
    DEFAULT_LOCATION_RADIUS_METERS: int = 100
    DEFAULT_TAX_RATE: float = 18.0
    QUOTATION_VALIDITY_DAYS: int = 30

    # SLA monitoring
    ENABLE_SLA_SCHEDULER: bool = True
    SLA_WARNING_HOURS: float = 4.0
    SLA_WARNING_DEDUP_HOURS: float = 2.0
    SLA_CHECK_INTERVAL_MINUTES: int = 15
    NOTIFICATION_INTERVAL_MINUTES: int = 2
    ESCALATION_RETENTION_DAYS: int = 90
    NOTIFICATION_RETENTION_DAYS: int = 30

    # Audit / approval thresholds
    HIGH_VALUE_THRESHOLD: float = 50000.0
    APPROVAL_PERCENT_THRESHOLD: float = 10.0

    # Attendance
    WORK_START_TIME: str = "09:00"
    WORK_END_TIME: str = "18:00"
    LATE_GRACE_MINUTES: int = 15

    # Purchasing
    PRICE_VARIANCE_PERCENT: float = 5.0

    # Email Settings (for notifications)
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587

    @field_validator("LOG_DIR", mode="before")
    @classmethod
    def create_log_dir(cls, v):
        """Ensure logs directory exists"""
        path = Path(v) if isinstance(v, str) else v
        path.mkdir(exist_ok=True, parents=True)
        return path


# Global settings instance
settings = Settings()

from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./boothcore.db"
    DB_ECHO: bool = False

    # Application
    PROJECT_NAME: str = "Booth Reservation & Access Engine"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None

    # Background tasks
    ENABLE_BACKGROUND_TASKS: bool = True
    SWEEP_INTERVAL_SECONDS: float = 60.0
    DEVICE_POLL_INTERVAL_SECONDS: float = 300.0
    DEVICE_POLL_CONCURRENCY: int = 5

    # Lock gateway (IoT bridge)
    LOCK_GATEWAY_URL: Optional[str] = None
    LOCK_GATEWAY_TOKEN: Optional[str] = None
    DEVICE_TIMEOUT_SECONDS: float = 5.0
    DEVICE_OFFLINE_AFTER_SECONDS: int = 300
    LOW_BATTERY_THRESHOLD: int = 20
    TELEMETRY_MAX_SKEW_SECONDS: int = 60

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()

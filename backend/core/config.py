from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings
from typing import List, Optional

# Width of the passcodes.code column
MAX_OTP_LENGTH = 10

class Settings(BaseSettings):
    # App settings
    APP_NAME: str = "Passcode Auth API"
    VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Security settings
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    ADMIN_TOKEN_EXPIRE_MINUTES: int = 1440

    # Admin settings (static identity, never stored in the database)
    ADMIN_EMAIL: str
    ADMIN_PASSWORD: str
    ADMIN_USERNAME: str = "admin"
    ADMIN_ID: str = "admin"

    # Database settings (MySQL in production, SQLite for local runs)
    DATABASE_URL: str
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300
    DB_POOL_TIMEOUT: int = 10
    DB_CONNECT_TIMEOUT: int = 10
    DB_PRE_PING: bool = True

    # CORS settings
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_TTL_DAYS: int = 7

    # SMTP / Email settings
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM_EMAIL: Optional[str] = None
    SMTP_FROM_NAME: str = "Passcode Auth"
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False
    SMTP_TIMEOUT: int = 15
    SMTP_DEBUG: bool = False

    # One-time passcodes
    OTP_LENGTH: int = 6
    OTP_EXPIRES_MINUTES: int = 10
    PASSWORD_MIN_LENGTH: int = 6

    # Fixed-window limits per client IP
    RATE_LIMIT_ENABLED: bool = True
    # Peers allowed to set X-Forwarded-For; empty means the socket address is used as-is
    TRUSTED_PROXIES: List[str] = []
    LOGIN_RATE_LIMIT: int = 5
    LOGIN_RATE_WINDOW_SECONDS: int = 15 * 60
    SIGNUP_RATE_LIMIT: int = 3
    SIGNUP_RATE_WINDOW_SECONDS: int = 60 * 60
    OTP_RATE_LIMIT: int = 3
    OTP_RATE_WINDOW_SECONDS: int = 15 * 60

    # Image uploads
    UPLOAD_DIR: str = "uploads"
    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024
    MAX_UPLOAD_FILES: int = 5
    AZURE_BLOB_CONN_STRING: Optional[str] = None
    AZURE_BLOB_CONTAINER: str = "images"
    AZURE_BLOB_FOLDER: str = "uploads/images"

    class Config:
        env_file = ".env"
        case_sensitive = True


class PasscodePolicy(BaseModel):
    """Knobs consumed by the passcode services, built once at startup."""

    model_config = ConfigDict(frozen=True)

    code_length: int = Field(6, ge=1, le=MAX_OTP_LENGTH)
    validity_minutes: int = 10
    password_min_length: int = 6


# Create settings instance
settings = Settings()

# Validate required settings
if not settings.SECRET_KEY:
    raise ValueError("SECRET_KEY environment variable is required")

if not settings.ADMIN_EMAIL:
    raise ValueError("ADMIN_EMAIL environment variable is required")

if not settings.ADMIN_PASSWORD:
    raise ValueError("ADMIN_PASSWORD environment variable is required")

if not settings.DATABASE_URL:
    raise ValueError("DATABASE_URL environment variable is required")

if not 1 <= settings.OTP_LENGTH <= MAX_OTP_LENGTH:
    raise ValueError(f"OTP_LENGTH must be between 1 and {MAX_OTP_LENGTH}")

passcode_policy = PasscodePolicy(
    code_length=settings.OTP_LENGTH,
    validity_minutes=settings.OTP_EXPIRES_MINUTES,
    password_min_length=settings.PASSWORD_MIN_LENGTH,
)

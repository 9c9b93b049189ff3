# auth_api/app/core/config.py
import logging
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import EmailStr
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE_PATH = BASE_DIR / ".env"

class Settings(BaseSettings):

    # Core
    DATABASE_URL: str = "sqlite+aiosqlite:///./onboarding.db"
    DB_CREATE_TABLES: bool = True
    SECRET_KEY: str
    ALGORITHM: str = "HS256"

    # --- Session / Refresh tokens ---
    ACCESS_TOKEN_EXPIRE_DAYS: int = 7
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    JWT_ISSUER: str = "user-onboarding-api"
    JWT_AUDIENCE: str = "user-onboarding-client"
    # --- Fim tokens ---

    # Password hashing (work factor do bcrypt)
    BCRYPT_ROUNDS: int = 12

    # Email verification
    VERIFICATION_CODE_EXPIRE_MINUTES: int = 60

    # Password Reset
    RESET_PASSWORD_TOKEN_EXPIRE_MINUTES: int = 10
    RESET_PASSWORD_URL_BASE: str = "http://localhost:3000/reset-password"

    # Account Lockout
    LOGIN_MAX_FAILED_ATTEMPTS: int = 5
    LOGIN_LOCKOUT_MINUTES: int = 120

    # --- Configurações de Email (SMTP) ---
    EMAILS_ENABLED: bool = False
    EMAIL_HOST: str = "localhost"
    EMAIL_PORT: int = 587
    EMAIL_USE_TLS: bool = True
    EMAIL_USE_SSL: bool = False
    EMAIL_USERNAME: str | None = None
    EMAIL_PASSWORD: str | None = None
    EMAIL_FROM: EmailStr = "no-reply@example.com"
    EMAIL_FROM_NAME: str | None = "User Onboarding"
    # --- Fim SMTP ---

    # --- Profile images ---
    UPLOAD_DIR: str = str(BASE_DIR / "uploads")
    PUBLIC_MEDIA_URL: str = "http://localhost:8000/media"
    MEDIA_MOUNT_PATH: str = "/media"  # rota local que serve UPLOAD_DIR
    MAX_IMAGE_SIZE_BYTES: int = 5 * 1024 * 1024
    ALLOWED_IMAGE_TYPES: list[str] = ["image/jpeg", "image/jpg", "image/png", "image/gif"]
    # --- Fim images ---

    # HTTP
    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://localhost:8000",
    ]
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT: str = "100/15minutes"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str | None = None

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=ENV_FILE_PATH,
        env_file_encoding="utf-8",
        extra="ignore",
    )

try:
    settings = Settings()
except Exception as e:
    logging.error(f"FATAL: Erro ao carregar 'settings' a partir do .env em {ENV_FILE_PATH}: {e}")
    raise e

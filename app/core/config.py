# app/core/config.py
"""
Application configuration - loads from environment variables.
Single source of truth for all settings.
"""
import os
from typing import Optional
from urllib.parse import quote_plus
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables FIRST
BASE_DIR = Path(__file__).resolve().parent.parent.parent
env_path = BASE_DIR / '.env'
load_dotenv(dotenv_path=env_path)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# ────────────────────────────────────────────
# Runtime Environment
# ────────────────────────────────────────────
ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development").lower()
IS_SERVERLESS: bool = bool(os.getenv("VERCEL"))
IS_PRODUCTION: bool = IS_SERVERLESS or ENVIRONMENT == "production"

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:3000")

# ────────────────────────────────────────────
# Google OAuth / Gmail / Sheets
# ────────────────────────────────────────────
GOOGLE_CLIENT_ID: str = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET: str = os.getenv("GOOGLE_CLIENT_SECRET", "")
GOOGLE_REDIRECT_URI: str = os.getenv("GOOGLE_REDIRECT_URI", "")
GOOGLE_TOKEN_URI: str = "https://oauth2.googleapis.com/token"

SHEET_RANGE: str = os.getenv("SHEET_RANGE", "A:Z")
SMTP_HOST: str = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT: int = _env_int("SMTP_PORT", 587)

# ────────────────────────────────────────────
# Campaign Processing
# ────────────────────────────────────────────
# Smaller defaults apply on serverless hosts with a hard execution ceiling.
EMAIL_BATCH_SIZE: int = _env_int("EMAIL_BATCH_SIZE", 3 if IS_SERVERLESS else 5)
LEGACY_BATCH_SIZE: int = _env_int("EMAIL_BATCH_SIZE", 5 if IS_SERVERLESS else 10)
EMAIL_DELAY_MS: int = _env_int("EMAIL_DELAY_MS", 1000 if IS_SERVERLESS else 2000)
MAX_RETRIES: int = _env_int("MAX_RETRIES", 2)
RETRY_DELAY_MS: int = _env_int("RETRY_DELAY_MS", 2000)
MAX_PROCESSING_TIME_MS: int = _env_int("MAX_PROCESSING_TIME", 45000 if IS_SERVERLESS else 300000)
CONTINUATION_SAFETY_MARGIN_MS: int = _env_int("CONTINUATION_SAFETY_MARGIN_MS", 10000)
CONTINUATION_DELAY_MS: int = _env_int("CONTINUATION_DELAY_MS", 1000)
BATCH_PAUSE_MS: int = _env_int("BATCH_PAUSE_MS", 500)

# ────────────────────────────────────────────
# Database Configuration
# ────────────────────────────────────────────
DB_USER = os.getenv("DB_USER", "postgres")
DB_PASSWORD = os.getenv("DB_PASSWORD", "")
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "bulk_email_platform")
DATABASE_URL = os.getenv("DATABASE_URL")

# Build DATABASE_URL
if not DATABASE_URL:
    encoded_password = quote_plus(DB_PASSWORD)
    DATABASE_URL = f"postgresql://{DB_USER}:{encoded_password}@{DB_HOST}:{DB_PORT}/{DB_NAME}"

# SQLAlchemy requires postgresql://
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

# ────────────────────────────────────────────
# Token Encryption
# ────────────────────────────────────────────
ENCRYPTION_KEY: Optional[str] = os.getenv("ENCRYPTION_KEY")

if not ENCRYPTION_KEY:
    import warnings
    warnings.warn("ENCRYPTION_KEY not set! Using an insecure development key.")
    ENCRYPTION_KEY = "development-only-encryption-key-change-me"

# ────────────────────────────────────────────
# JWT Configuration
# ────────────────────────────────────────────
JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "")
JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
JWT_ACCESS_TOKEN_LIFETIME_DAYS: int = _env_int("JWT_ACCESS_TOKEN_LIFETIME_DAYS", 7)

if not JWT_SECRET_KEY:
    import warnings
    warnings.warn("JWT_SECRET_KEY not set!")

# ────────────────────────────────────────────
# Settings Class
# ────────────────────────────────────────────
class Settings:
    DATABASE_URL: str = DATABASE_URL
    ENVIRONMENT: str = ENVIRONMENT
    IS_SERVERLESS: bool = IS_SERVERLESS
    IS_PRODUCTION: bool = IS_PRODUCTION
    FRONTEND_URL: str = FRONTEND_URL
    GOOGLE_CLIENT_ID: str = GOOGLE_CLIENT_ID
    GOOGLE_CLIENT_SECRET: str = GOOGLE_CLIENT_SECRET
    GOOGLE_REDIRECT_URI: str = GOOGLE_REDIRECT_URI
    JWT_SECRET_KEY: str = JWT_SECRET_KEY
    JWT_ALGORITHM: str = JWT_ALGORITHM
    LOG_LEVEL: str = LOG_LEVEL
    EMAIL_BATCH_SIZE: int = EMAIL_BATCH_SIZE
    EMAIL_DELAY_MS: int = EMAIL_DELAY_MS
    MAX_RETRIES: int = MAX_RETRIES
    MAX_PROCESSING_TIME_MS: int = MAX_PROCESSING_TIME_MS

settings = Settings()

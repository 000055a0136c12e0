"""
Application configuration

SECURITY: Defaults are fail-safe for production.
- DEBUG defaults to False
- SECRET_KEY and DATABASE_URL have no defaults (will fail if not set)
- JWT cookie is HttpOnly + Secure unless explicitly relaxed for local development
- Rate limit strings ("5/minute") are parsed with limits at startup; a malformed value refuses to boot
"""
import json
import os
import logging
from typing import List

from limits import parse_many
from pydantic import ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

# Default CORS origins
DEFAULT_CORS_ORIGINS = [
    "http://localhost:5177",
    "http://127.0.0.1:5177",
    "http://localhost:5173",
]


class Settings(BaseSettings):
    # App - defaults are PRODUCTION safe
    APP_NAME: str = "Trip Planner"
    DEBUG: bool = False  # SECURE DEFAULT: off in production
    ENVIRONMENT: str = "production"  # Explicit env marker

    # Database - NO DEFAULT (will fail if not set)
    DATABASE_URL: str
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_RECYCLE: int = 3600  # 1 hour
    CREATE_TABLES_ON_STARTUP: bool = False

    # Auth - NO DEFAULT SECRET KEY (will fail if not set)
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    JWT_TTL_SECONDS: int = 3600
    BCRYPT_ROUNDS: int = 12

    # JWT cookie
    JWT_COOKIE_NAME: str = "JWT"
    COOKIE_DOMAIN: str = ""  # Empty = host-only cookie
    COOKIE_HTTPONLY: bool = True
    COOKIE_SECURE: bool = True  # Set to False for local dev without HTTPS
    COOKIE_SAMESITE: str = "lax"  # "strict", "lax", or "none"

    # CORS - accepts JSON array or comma-separated string
    CORS_ORIGINS: List[str] = DEFAULT_CORS_ORIGINS

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            if not v or v.strip() == "":
                return DEFAULT_CORS_ORIGINS
            # Try JSON first
            if v.startswith("["):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            # Fallback to comma-separated
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_LOGIN: str = "5/minute"  # keyed by username
    RATE_LIMIT_API: str = "100/minute"  # keyed by client IP
    RATE_LIMIT_PROTECTED_API: str = "10/minute"  # register / forgot / reset, keyed by client IP

    @field_validator("RATE_LIMIT_LOGIN", "RATE_LIMIT_API", "RATE_LIMIT_PROTECTED_API")
    @classmethod
    def validate_rate_limit(cls, v: str) -> str:
        items = parse_many(v)
        if len(items) != 1:
            raise ValueError(f"Rate limit '{v}' must describe exactly one window")
        if items[0].amount < 1:
            raise ValueError(f"Rate limit '{v}' must allow at least one request per window")
        return v

    # Redis (shared rate limit counters). Empty = in-process counters
    REDIS_URL: str = ""

    # Only honour X-Forwarded-For when running behind a trusted proxy
    TRUST_FORWARDED_FOR: bool = False

    # Reject free-text input that looks like SQL injection instead of only flagging it
    REJECT_SUSPICIOUS_INPUT: bool = False

    # Password reset
    PASSWORD_RESET_TTL_HOURS: int = 24
    FRONTEND_URL: str = "http://localhost:5177"
    RESET_TOKEN_CLEANUP_ENABLED: bool = True
    RESET_TOKEN_CLEANUP_INTERVAL_MINUTES: int = 60

    # Email (SendGrid)
    SENDGRID_API_KEY: str = ""
    SENDGRID_FROM_EMAIL: str = "no-reply@tripplanner.local"
    SENDGRID_FROM_NAME: str = "Trip Planner"

    @field_validator("COOKIE_SAMESITE")
    @classmethod
    def validate_samesite(cls, v: str) -> str:
        v = v.lower()
        if v not in ("strict", "lax", "none"):
            raise ValueError("COOKIE_SAMESITE must be one of: strict, lax, none")
        return v

    @model_validator(mode="after")
    def refuse_insecure_deployment(self):
        """Collect every unsafe setting for non-development environments and refuse to start."""
        problems = []

        if self.ENVIRONMENT != "development":
            # Browsers must never expose the JWT to scripts or send it over plain HTTP
            for flag in ("COOKIE_HTTPONLY", "COOKIE_SECURE"):
                if not getattr(self, flag):
                    problems.append(f"{flag}=false is only allowed with ENVIRONMENT=development")

        if self.ENVIRONMENT == "production":
            if self.DEBUG:
                problems.append("DEBUG=true is forbidden in production")
            if any(marker in self.SECRET_KEY.lower() for marker in INSECURE_SECRET_MARKERS):
                problems.append(
                    "SECRET_KEY looks like a placeholder. "
                    "Generate one with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
                )
            if any(host in self.DATABASE_URL for host in LOCAL_HOSTS):
                problems.append("DATABASE_URL points at localhost in production")

            for origin in self.CORS_ORIGINS:
                if origin == "*" or any(host in origin for host in LOCAL_HOSTS):
                    logger.warning(f"CORS origin '{origin}' should not be allowed in production")

        if problems:
            raise ValueError("Insecure configuration:\n" + "\n".join(f"  - {p}" for p in problems))

        return self

    class Config:
        env_file = ".env"
        case_sensitive = True


INSECURE_SECRET_MARKERS = ("your-secret-key", "change-in-production", "secret", "password", "changeme")
LOCAL_HOSTS = ("localhost", "127.0.0.1")

# Only these may be absent on a developer machine
DEV_FALLBACKS = {
    "DATABASE_URL": "sqlite+aiosqlite:///./trip_planner.db",
    "SECRET_KEY": "dev-only-key-not-for-deployment",
    "ENVIRONMENT": "development",
}


def _only_missing_secrets(error: ValidationError) -> bool:
    """True when the sole problem is an unconfigured database (and maybe key)."""
    missing = set()
    for err in error.errors():
        if err["type"] != "missing" or not err["loc"]:
            return False
        missing.add(err["loc"][0])
    return "DATABASE_URL" in missing and missing <= {"DATABASE_URL", "SECRET_KEY"}


def load_settings() -> Settings:
    """
    Build settings from the environment.

    A developer machine with no DATABASE_URL / SECRET_KEY gets a local SQLite
    database and a throwaway key. Any other failure, including an insecure
    cookie or debug flag, is raised as is.
    """
    try:
        return Settings()
    except ValidationError as e:
        if os.getenv("ENVIRONMENT", "development") != "development":
            raise
        if not _only_missing_secrets(e):
            raise
        logger.warning("Settings incomplete, using development fallbacks (local SQLite, throwaway key)")
        for name, value in DEV_FALLBACKS.items():
            os.environ.setdefault(name, value)
        return Settings()


settings = load_settings()

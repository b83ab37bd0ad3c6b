"""Application configuration management"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List
from urllib.parse import quote_plus

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode

# Base directory: repository root
_BASE_DIR = Path(__file__).resolve().parent.parent

_INSECURE_SECRETS = {
    "",
    "dev-access-secret-change-in-production-use-openssl-rand-hex-32",
    "dev-refresh-secret-change-in-production-use-openssl-rand-hex-32",
    "change-me",
}


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Application
    APP_NAME: str = "Payment Authentication Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # Database (PostgreSQL)
    DATABASE_URL: str = ""
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "authservice_db"
    POSTGRES_USER: str = "authservice"
    POSTGRES_PASSWORD: str = "authservice"
    DATABASE_POOL_SIZE: int = 30
    DATABASE_MAX_OVERFLOW: int = 20

    # Cache (Redis)
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_SOCKET_TIMEOUT: float = 5.0

    # Tokens
    ACCESS_SECRET: str = "dev-access-secret-change-in-production-use-openssl-rand-hex-32"
    REFRESH_SECRET: str = "dev-refresh-secret-change-in-production-use-openssl-rand-hex-32"
    ALGORITHM: str = "HS256"
    TOKEN_ISSUER: str = "https://auth.payment.local"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    REFRESH_TOKEN_STORE: str = "cache"  # cache | database
    ACCESS_TOKEN_COOKIE_NAME: str = "auth-token"
    REFRESH_TOKEN_COOKIE_NAME: str = "refresh-token"
    COOKIE_SECURE: bool = True
    COOKIE_SAMESITE: str = "none"  # strict | lax | none
    USER_CACHE_TTL_MINUTES: int = 30

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # CORS
    CORS_ORIGINS: Annotated[List[str], NoDecode] = ["http://localhost:3000"]

    # Database initialization discipline
    DB_INIT_MODE: str = "migrate"  # migrate | create_all | off
    DB_REQUIRE_HEAD: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, value: Any) -> Any:
        """
        Accept JSON array or comma-separated origins from env.

        Examples:
            CORS_ORIGINS=["http://localhost:3000","http://example.com"]
            CORS_ORIGINS=http://localhost:3000,http://example.com
        """
        if not isinstance(value, str):
            return value

        raw = value.strip()
        if not raw:
            return []

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None

        if isinstance(parsed, str):
            return [parsed]
        if isinstance(parsed, list):
            return [str(origin).strip() for origin in parsed if str(origin).strip()]

        return [origin.strip() for origin in raw.split(",") if origin.strip()]

    @field_validator("REFRESH_TOKEN_STORE")
    @classmethod
    def _check_refresh_token_store(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in ("cache", "database"):
            raise ValueError("REFRESH_TOKEN_STORE must be 'cache' or 'database'")
        return value

    @property
    def access_token_ttl_seconds(self) -> int:
        return self.ACCESS_TOKEN_EXPIRE_MINUTES * 60

    @property
    def refresh_token_ttl_seconds(self) -> int:
        return self.REFRESH_TOKEN_EXPIRE_MINUTES * 60

    @property
    def user_cache_ttl_seconds(self) -> int:
        return self.USER_CACHE_TTL_MINUTES * 60

    def get_log_file(self) -> str:
        p = self.LOG_FILE
        if not p or p.startswith(".."):
            return str(_BASE_DIR / "logs" / "app.log")
        return p

    def get_database_url(self) -> str:
        """
        Resolve database URL.

        Priority:
          1) Explicit DATABASE_URL
          2) Construct from POSTGRES_* parts with safe URL encoding
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL

        user = quote_plus(self.POSTGRES_USER)
        password = quote_plus(self.POSTGRES_PASSWORD)
        return (
            f"postgresql://{user}:{password}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    def validate_security_settings(self) -> None:
        """
        Validate runtime security defaults in production.

        Raises:
            ValueError: If insecure defaults are detected.
        """
        if self.ENVIRONMENT.lower() != "production":
            return

        for name in ("ACCESS_SECRET", "REFRESH_SECRET"):
            secret = getattr(self, name)
            if secret in _INSECURE_SECRETS or len(secret) < 32:
                raise ValueError(
                    f"Insecure {name} for production. Use a strong key (e.g. `openssl rand -hex 32`)."
                )

        if self.ACCESS_SECRET == self.REFRESH_SECRET:
            raise ValueError("ACCESS_SECRET and REFRESH_SECRET must be different keys.")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()

from __future__ import annotations

import os

APP_VERSION = "1.2.0"

# Secret keys that ship as defaults; startup refuses them outside development.
_DEFAULT_SECRET_KEYS = (
    "change-me-in-production",
    "dev-refresh-secret-change-in-production",
)


def _env_bool(name: str, default: str = "") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Settings:
    PROJECT_NAME: str = "Commit Graph"
    API_V1_PREFIX: str = "/api/v1"

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "production")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    POSTGRES_HOST: str = os.getenv("POSTGRES_HOST", "localhost")
    POSTGRES_PORT: str = os.getenv("POSTGRES_PORT", "5432")
    POSTGRES_DB: str = os.getenv("POSTGRES_DB", "commitgraph")
    POSTGRES_USER: str = os.getenv("POSTGRES_USER", "commitgraph")
    POSTGRES_PASSWORD: str = os.getenv("POSTGRES_PASSWORD", "commitgraph")
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")
    DB_COMMAND_TIMEOUT: float = float(os.getenv("DB_COMMAND_TIMEOUT", "10"))

    RESET_DB: bool = _env_bool("RESET_DB")

    SECRET_KEY: str = os.getenv("SECRET_KEY", "change-me-in-production")
    REFRESH_SECRET_KEY: str = os.getenv(
        "REFRESH_SECRET_KEY", "dev-refresh-secret-change-in-production"
    )
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "15"))
    REFRESH_TOKEN_EXPIRE_DAYS: int = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))

    # Browser client that OAuth callbacks redirect back to
    CLIENT_URL: str = os.getenv("CLIENT_URL", "http://localhost:5173")
    ALLOWED_ORIGINS: list[str] = [
        o.strip()
        for o in os.getenv("ALLOWED_ORIGINS", os.getenv("CLIENT_URL", "http://localhost:5173")).split(",")
        if o.strip()
    ]
    COOKIE_SECURE: bool = _env_bool("COOKIE_SECURE")

    # Passwordless auto-login for local development only
    DEV_MODE: bool = _env_bool("DEV_MODE")

    GOOGLE_CLIENT_ID: str = os.getenv("GOOGLE_CLIENT_ID", "")
    GOOGLE_CLIENT_SECRET: str = os.getenv("GOOGLE_CLIENT_SECRET", "")
    GITHUB_CLIENT_ID: str = os.getenv("GITHUB_CLIENT_ID", "")
    GITHUB_CLIENT_SECRET: str = os.getenv("GITHUB_CLIENT_SECRET", "")

    # Upper bound for outbound calls (OAuth providers)
    HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )


settings = Settings()

"""Application configuration using Pydantic Settings."""

from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "PlanLab"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    # If database_url_override is set (e.g., for Neon with SSL), it takes precedence
    database_url_override: str | None = None
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "planlab"
    postgres_password: str = ""
    postgres_db: str = "planlab"

    @computed_field
    @property
    def database_url(self) -> str:
        """Get async database URL. Uses override if provided, otherwise constructs from parts."""
        if self.database_url_override:
            url = self.database_url_override
            # Replace scheme for async driver
            if url.startswith("postgresql://"):
                url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
            elif url.startswith("postgres://"):
                url = url.replace("postgres://", "postgresql+asyncpg://", 1)
            # asyncpg doesn't accept query params via URL, SSL goes through connect_args
            if "?" in url:
                url = url.split("?")[0]
            return url
        return f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"

    @computed_field
    @property
    def database_requires_ssl(self) -> bool:
        """Check if the database connection requires SSL (for Neon, etc.)."""
        if self.database_url_override:
            return "sslmode=require" in self.database_url_override or "ssl=require" in self.database_url_override
        return False

    @computed_field
    @property
    def database_url_sync(self) -> str:
        """Get sync database URL (for Alembic). Uses override if provided, otherwise constructs from parts."""
        if self.database_url_override:
            url = self.database_url_override
            if url.startswith("postgres://"):
                url = url.replace("postgres://", "postgresql://", 1)
            elif url.startswith("postgresql+asyncpg://"):
                url = url.replace("postgresql+asyncpg://", "postgresql://", 1)
            return url
        return f"postgresql://{self.postgres_user}:{self.postgres_password}@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"

    # Identity provider (hosted auth issues HS256 access tokens)
    identity_jwt_secret: str  # Required - project JWT secret from the auth provider
    identity_jwt_algorithm: str = "HS256"
    identity_jwt_audience: str = "authenticated"

    # Access policy (comma-separated email lists)
    teacher_email_allowlist: str = ""
    student_test_email_allowlist: str = ""
    allowed_email_domain: str | None = None  # "umsa.bo" or "@umsa.bo"

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    # Anthropic API
    anthropic_api_key: str

    # LLM Configuration
    llm_model: str = "claude-sonnet-4-20250514"
    llm_max_tokens: int = 2000
    llm_max_attempts: int = 3

    # Brainstorm stage
    brainstorm_min_ideas: int = 10
    recent_history_max_chars: int = 6000


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def parse_email_list(raw: str | None) -> frozenset[str]:
    """Split a comma-separated env value into lowercased emails."""
    if not raw:
        return frozenset()
    return frozenset(e.strip().lower() for e in raw.split(",") if e.strip())


def normalize_domain(raw: str | None) -> str | None:
    """Accept "umsa.bo" or "@umsa.bo"; empty means no restriction."""
    value = (raw or "").strip().lower()
    if not value:
        return None
    return value[1:] if value.startswith("@") else value


@dataclass(frozen=True)
class AccessPolicy:
    """
    Read-only view of the allowlist/domain configuration.

    Built once from Settings at startup and passed to the access gate,
    so tests can inject their own policy instead of touching env vars.
    """

    teacher_emails: frozenset[str] = frozenset()
    student_test_emails: frozenset[str] = frozenset()
    allowed_domain: str | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "AccessPolicy":
        return cls(
            teacher_emails=parse_email_list(settings.teacher_email_allowlist),
            student_test_emails=parse_email_list(settings.student_test_email_allowlist),
            allowed_domain=normalize_domain(settings.allowed_email_domain),
        )


@lru_cache
def get_access_policy() -> AccessPolicy:
    """Get the process-wide access policy."""
    return AccessPolicy.from_settings(get_settings())


def sanitize_error(error: Exception, *, generic_message: str = "An internal error occurred.") -> str:
    """
    Return a user-safe error message.

    In development, returns the full exception string for debugging.
    In staging/production, returns a generic message to avoid leaking internals.
    """
    settings = get_settings()
    if settings.environment == "development":
        return str(error)
    return generic_message

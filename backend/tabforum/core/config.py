"""Application configuration with validation."""

from enum import Enum

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class ConfigurationError(Exception):
    """Raised when application configuration is invalid for the environment."""
    pass


class Settings(BaseSettings):
    """
    Application settings with validation.

    Every field can be overridden through an environment variable of the
    same name (case-insensitive) or a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment (development/production)"
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///./tabforum.db",
        description="Database connection URL"
    )
    # Connection pool tuning (PostgreSQL only; ignored for SQLite).
    db_pool_size: int = Field(
        default=5,
        description="Number of persistent database connections"
    )
    db_max_overflow: int = Field(
        default=10,
        description="Extra connections allowed during traffic bursts"
    )
    db_pool_timeout: int = Field(
        default=30,
        description="Seconds to wait for a connection from the pool before raising"
    )
    db_pool_recycle: int = Field(
        default=1800,
        description="Seconds before a connection is recycled"
    )

    # Listing and pagination
    default_per_page: int = Field(
        default=30,
        description="Page size used when the caller does not send per_page"
    )
    max_per_page: int = Field(
        default=100,
        description="Upper bound accepted for per_page"
    )

    # Content trees
    # Number of levels returned by a tree walk, counting the root candidates.
    # With a parent_id anchor the anchor sits one level above and is not returned.
    tree_max_depth: int = Field(
        default=4,
        ge=1,
        le=4,
        description="Maximum depth of a content tree walk"
    )

    # Tabcoin economy
    content_default_earnings: int = Field(
        default=1,
        description="content:tabcoin credited to a content when it is first published"
    )
    relevant_global_window: int = Field(
        default=1000,
        description="Most recent root contents ranked by the global relevance listing"
    )
    prestige_window: int = Field(
        default=20,
        description="Recent contents considered by the default prestige calculator"
    )
    prestige_scale: int = Field(
        default=10,
        ge=1,
        description="Divisor applied to positive prestige totals"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: str = Field(
        default="json",
        description="Log output format: 'json' for structured, 'text' for human-readable"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard Python logging levels."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in ('json', 'text'):
            raise ValueError("Invalid log format. Must be 'json' or 'text'")
        return v_lower

    def validate_production_config(self) -> None:
        """Validate configuration for production environment.

        Raises:
            ConfigurationError: If production config is unsafe.
        """
        errors: list[str] = []

        if self.database_url.startswith("sqlite"):
            errors.append(
                "DATABASE_URL points to SQLite. "
                "Use PostgreSQL in production."
            )

        if self.default_per_page > self.max_per_page:
            errors.append(
                f"DEFAULT_PER_PAGE ({self.default_per_page}) is larger than "
                f"MAX_PER_PAGE ({self.max_per_page})."
            )

        if errors and self.environment == Environment.PRODUCTION:
            raise ConfigurationError(
                "Production configuration is invalid:\n  - " + "\n  - ".join(errors)
            )


# Global settings instance
settings = Settings()

"""Library configuration using pydantic-settings."""

from functools import lru_cache

from pydantic import computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from flcore.core.constants import (
    DEFAULT_CAPTCHA_TIMEOUT,
    DEFAULT_CAPTCHA_VERIFY_URL,
    DEFAULT_INSECURE_SECRET,
    DEFAULT_QUERY_LIMIT,
    DEFAULT_QUERY_ORDER,
    DEFAULT_SIGNED_ID_EXPIRE_MINUTES,
    MIN_SECRET_KEY_LENGTH,
)


class Settings(BaseSettings):
    """Library settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="FLCORE_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "fl-core"
    debug: bool = False
    environment: str = "development"  # development, staging, production

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Database
    database_url: str = "sqlite://"
    database_echo: bool = False

    # Signing key for signed global ids
    secret_key: str = DEFAULT_INSECURE_SECRET

    # Object references
    global_id_app: str = "flcore"
    signed_id_algorithm: str = "HS256"
    signed_id_expire_minutes: int = DEFAULT_SIGNED_ID_EXPIRE_MINUTES

    # Query defaults
    query_default_offset: int = 0
    query_default_limit: int = DEFAULT_QUERY_LIMIT
    query_default_order: str = DEFAULT_QUERY_ORDER

    # Services
    disable_access_checks: bool = False

    # CAPTCHA
    captcha_verify_url: str = DEFAULT_CAPTCHA_VERIFY_URL
    captcha_secret: str = ""
    captcha_timeout: float = DEFAULT_CAPTCHA_TIMEOUT
    disable_captcha: bool = False

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        """Validate the length of a custom secret key.

        The insecure default is accepted here and rejected by
        ``is_production``.

        Args:
            v: The secret key value

        Returns:
            The validated secret key

        Raises:
            ValueError: If a custom key is too short
        """
        if v != DEFAULT_INSECURE_SECRET and len(v) < MIN_SECRET_KEY_LENGTH:
            raise ValueError(f"SECRET_KEY must be at least {MIN_SECRET_KEY_LENGTH} characters.")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize the log level name.

        Args:
            v: The log level value

        Returns:
            The upper-cased level name

        Raises:
            ValueError: If the level is not a standard logging level
        """
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"invalid log level: {v}")
        return level

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_production(self) -> bool:
        """Check if running in production environment.

        Raises:
            ValueError: If using the insecure secret key in production
        """
        is_prod = self.environment == "production"
        if is_prod and self.secret_key == DEFAULT_INSECURE_SECRET:
            raise ValueError("SECRET_KEY must be set to a secure value in production.")
        return is_prod

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()

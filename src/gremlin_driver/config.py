"""Configuration management for the driver."""

from __future__ import annotations

from pydantic import Field, SecretStr, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from gremlin_driver.auth import Credentials
from gremlin_driver.errors import ConfigurationError
from gremlin_driver.retry import RetryPolicy


class DriverSettings(BaseSettings):
    """Driver settings, read from `GREMLIN_DRIVER_*` variables or `.env`."""

    model_config = SettingsConfigDict(
        env_prefix="GREMLIN_DRIVER_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Retry Configuration
    max_attempts: int = Field(default=3, ge=1, description="Sends per logical request, first one included")
    rate_limit_base_delay: float = Field(default=1.0, ge=0, description="Base backoff after a 429, in seconds")
    conflict_base_delay: float = Field(default=0.1, ge=0, description="Base backoff after a 596, in seconds")
    backoff_factor: float = Field(default=2.0, ge=1, description="Exponential backoff multiplier")
    max_delay: float = Field(default=30.0, ge=0, description="Cap for one backoff delay, in seconds")
    max_total_wait: float = Field(default=60.0, ge=0, description="Cap for all backoff delays of one request")
    jitter: float = Field(default=0.1, ge=0, description="Upper bound of the random delay added to each backoff")

    # Request Configuration
    request_timeout_seconds: float | None = Field(
        default=30.0, description="Idle timeout per request; unset or <= 0 disables it"
    )
    retired_id_capacity: int = Field(default=1024, ge=0, description="Removed request ids remembered for diagnostics")

    # Authentication
    username: str | None = Field(default=None, description="SASL PLAIN username")
    password: SecretStr | None = Field(default=None, description="SASL PLAIN password")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Log level")

    @model_validator(mode="after")
    def _check_credentials(self) -> DriverSettings:
        if (self.username is None) != (self.password is None):
            raise ValueError("username and password must be configured together")
        if self.rate_limit_base_delay < self.conflict_base_delay:
            raise ValueError("rate_limit_base_delay must not be shorter than conflict_base_delay")
        return self

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            rate_limit_base_delay=self.rate_limit_base_delay,
            conflict_base_delay=self.conflict_base_delay,
            backoff_factor=self.backoff_factor,
            max_delay=self.max_delay,
            max_total_wait=self.max_total_wait,
            jitter=self.jitter,
        )

    def credentials(self) -> Credentials | None:
        if self.username is None or self.password is None:
            return None
        return Credentials(self.username, self.password.get_secret_value())


def get_settings(**overrides: object) -> DriverSettings:
    """Load settings from the environment, applying keyword overrides.

    Raises:
        ConfigurationError: If the resulting settings are invalid.
    """
    try:
        return DriverSettings(**overrides)
    except ValidationError as error:
        raise ConfigurationError(str(error)) from error

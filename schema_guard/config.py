"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
VALID_LOG_FORMATS = {"auto", "json", "console"}


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SCHEMA_GUARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: str = "development"
    log_level: str = "INFO"
    log_format: str = "auto"  # auto: JSON in production, console elsewhere
    debug: bool = False

    # Execution
    parallel_enabled: bool = False  # Run the four validation stages on a thread pool
    max_workers: int = 4

    # Compiled schema cache
    schema_cache_enabled: bool = True
    schema_cache_size: int = 32  # Number of distinct schema fingerprints kept

    # Reporting
    max_context_record_ids: int = 50  # Cap on recordIds listed in aggregate alerts

    # Metrics & Observability
    metrics_enabled: bool = True
    metrics_prefix: str = "schema_guard"

    # Paths
    rules_path: Optional[str] = None  # Default YAML rule set for the CLI

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    def validate_for_startup(self) -> list[str]:
        """
        Validate configuration for production readiness.

        Returns a list of warnings/errors. Empty list means all validations passed.
        """
        issues: list[str] = []

        if self.is_production and self.debug:
            issues.append(
                "CRITICAL: Debug mode is enabled in production. "
                "Set SCHEMA_GUARD_DEBUG=false."
            )

        if self.max_workers < 1:
            issues.append(
                "CRITICAL: max_workers must be at least 1. "
                f"Current: {self.max_workers}"
            )

        if self.parallel_enabled and self.max_workers == 1:
            issues.append(
                "WARNING: Parallel validation enabled with a single worker. "
                "Stages will effectively run sequentially."
            )

        if self.schema_cache_enabled and self.schema_cache_size < 1:
            issues.append(
                "WARNING: Schema cache enabled with a non-positive size. "
                "Compiled contracts will be rebuilt on every call."
            )

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            issues.append(
                f"WARNING: Unknown log level '{self.log_level}'. Falling back to INFO."
            )

        if self.log_format.lower() not in VALID_LOG_FORMATS:
            issues.append(
                f"WARNING: Unknown log format '{self.log_format}'. Falling back to auto."
            )

        if self.max_context_record_ids < 0:
            issues.append(
                "WARNING: max_context_record_ids is negative. "
                "Record id lists will be empty."
            )

        return issues


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    def __init__(self, issues: list[str]):
        self.issues = issues
        message = "Configuration validation failed:\n" + "\n".join(f"  - {i}" for i in issues)
        super().__init__(message)


def validate_config(settings: Settings, strict: bool = False) -> None:
    """
    Validate configuration and log/raise issues.

    Args:
        settings: Settings instance to validate
        strict: If True, raise ConfigurationError on any critical issues

    Raises:
        ConfigurationError: If strict=True and critical issues found
    """
    from schema_guard.logging_config import get_logger

    logger = get_logger(__name__)

    issues = settings.validate_for_startup()

    critical_issues = [i for i in issues if i.startswith("CRITICAL")]
    warnings = [i for i in issues if i.startswith("WARNING")]

    for warning in warnings:
        logger.warning(warning.replace("WARNING: ", ""))

    for critical in critical_issues:
        logger.error(critical.replace("CRITICAL: ", ""))

    if strict and critical_issues:
        raise ConfigurationError(critical_issues)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

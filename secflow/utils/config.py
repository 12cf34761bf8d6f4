"""Configuration utility for secflow.

This module provides centralized configuration management with:
- Environment variables as the only source
- Type-safe access to configuration values
- Frozen settings objects that workers hand to each component's constructor
"""

import os
from dataclasses import dataclass
from typing import Any

from secflow.errors import ConfigurationError

DEFAULT_NATS_URL = "nats://localhost:4222"
DEFAULT_REPOSITORIES_SUBJECT = "github.repositories"
DEFAULT_VALID_REPOS_SUBJECT = "repos.valid"
DEFAULT_INVALID_REPOS_SUBJECT = "repos.invalid"
DEFAULT_PROBE_PATH = "appsec-config.yml"
DEFAULT_CRON_SCHEDULE = "0 0 * * 0"  # Weekly on Sunday at midnight
DEFAULT_MAX_IN_FLIGHT = 64
DEFAULT_DRAIN_IDLE_TIMEOUT_SECONDS = 1.0


def parse_config_value(value: str) -> str | bool | int | float:
    if value.lower() == "true":
        return True
    elif value.lower() == "false":
        return False
    else:
        # Try to parse as a number
        try:
            return int(value)
        except ValueError:
            try:
                return float(value)
            except ValueError:
                # Return as string
                return value


def get_config_value(key: str, default: Any = None) -> Any:
    """Get a configuration value from environment variables.

    Args:
        key: Configuration key name (e.g., "NATS_URL")
        default: Default value if key not found

    Returns:
        Configuration value or default
    """
    env_value = os.environ.get(key)
    if env_value is not None:
        return parse_config_value(env_value)

    return default


def get_config_value_str(key: str, default: str | None = None) -> str | None:
    """
    Get a configuration value from environment variables. But sometimes you just want a string.
    Empty values count as unset.
    """
    value = os.environ.get(key)
    if not value:
        return default
    return value


def require_config_value(key: str) -> str:
    value = os.environ.get(key)
    if not value:
        raise ConfigurationError(f"{key} environment variable is required")
    return value


def get_secflow_environment() -> str:
    """Get secflow environment from env var."""
    return get_config_value_str("SECFLOW_ENVIRONMENT", "local") or "local"


def get_github_token() -> str:
    return require_config_value("GITHUB_TOKEN")


def get_github_org() -> str:
    return require_config_value("GITHUB_ORG")


def get_nats_url() -> str:
    return get_config_value_str("NATS_URL", DEFAULT_NATS_URL) or DEFAULT_NATS_URL


def get_process_startup_messages() -> bool:
    """Startup backlog draining is on unless PROCESS_STARTUP_MESSAGES is explicitly false."""
    return get_config_value("PROCESS_STARTUP_MESSAGES", True) is not False


def get_run_on_startup() -> bool:
    """An immediate scan at startup is off unless RUN_ON_STARTUP is explicitly true."""
    return get_config_value("RUN_ON_STARTUP", False) is True


def _get_positive_number(key: str, default: int | float) -> int | float:
    value = get_config_value(key, default)
    if isinstance(value, bool) or not isinstance(value, int | float) or value <= 0:
        raise ConfigurationError(f"{key} must be a positive number, got {value!r}")
    return value


@dataclass(frozen=True)
class ValidatorSettings:
    """Everything the validator pipeline needs, resolved once at startup."""

    github_token: str
    nats_url: str = DEFAULT_NATS_URL
    source_subject: str = DEFAULT_REPOSITORIES_SUBJECT
    valid_subject: str = DEFAULT_VALID_REPOS_SUBJECT
    invalid_subject: str = DEFAULT_INVALID_REPOS_SUBJECT
    process_startup_messages: bool = True
    probe_path: str = DEFAULT_PROBE_PATH
    max_in_flight: int = DEFAULT_MAX_IN_FLIGHT
    drain_idle_timeout_seconds: float = DEFAULT_DRAIN_IDLE_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls) -> "ValidatorSettings":
        """Load validator settings from environment variables.

        Raises:
            ConfigurationError: If GITHUB_TOKEN is missing or a numeric setting is invalid
        """
        return cls(
            github_token=get_github_token(),
            nats_url=get_nats_url(),
            source_subject=get_config_value_str("SOURCE_SUBJECT", DEFAULT_REPOSITORIES_SUBJECT)
            or DEFAULT_REPOSITORIES_SUBJECT,
            valid_subject=get_config_value_str("VALID_REPOS_SUBJECT", DEFAULT_VALID_REPOS_SUBJECT)
            or DEFAULT_VALID_REPOS_SUBJECT,
            invalid_subject=get_config_value_str(
                "INVALID_REPOS_SUBJECT", DEFAULT_INVALID_REPOS_SUBJECT
            )
            or DEFAULT_INVALID_REPOS_SUBJECT,
            process_startup_messages=get_process_startup_messages(),
            probe_path=get_config_value_str("PROBE_PATH", DEFAULT_PROBE_PATH) or DEFAULT_PROBE_PATH,
            max_in_flight=int(_get_positive_number("MAX_IN_FLIGHT", DEFAULT_MAX_IN_FLIGHT)),
            drain_idle_timeout_seconds=float(
                _get_positive_number(
                    "DRAIN_IDLE_TIMEOUT_SECONDS", DEFAULT_DRAIN_IDLE_TIMEOUT_SECONDS
                )
            ),
        )


@dataclass(frozen=True)
class CollectorSettings:
    """Everything the organization scanner and its schedule need."""

    github_org: str
    github_token: str
    nats_url: str = DEFAULT_NATS_URL
    subject: str = DEFAULT_REPOSITORIES_SUBJECT
    cron_schedule: str = DEFAULT_CRON_SCHEDULE
    run_on_startup: bool = False

    @classmethod
    def from_env(cls) -> "CollectorSettings":
        """Load collector settings from environment variables.

        Raises:
            ConfigurationError: If GITHUB_ORG or GITHUB_TOKEN is missing
        """
        return cls(
            github_org=get_github_org(),
            github_token=get_github_token(),
            nats_url=get_nats_url(),
            subject=get_config_value_str("NATS_SUBJECT", DEFAULT_REPOSITORIES_SUBJECT)
            or DEFAULT_REPOSITORIES_SUBJECT,
            cron_schedule=get_config_value_str("CRON_SCHEDULE", DEFAULT_CRON_SCHEDULE)
            or DEFAULT_CRON_SCHEDULE,
            run_on_startup=get_run_on_startup(),
        )

"""Environment variable validation and typed access."""

import os
import logging
from typing import Dict

logger = logging.getLogger(__name__)


class EnvironmentError(Exception):
    """Raised when required environment variables are missing or invalid."""
    pass


_POSITIVE_INT_VARS = {
    "SESSION_GAP_MINUTES": 30,
    "RECENT_RESULTS_LIMIT": 500,
}


def validate_environment() -> None:
    """Validate the service configuration and fill in defaults.

    Raises EnvironmentError if validation fails.
    """
    defaults = {
        "DB_PATH": os.getenv("DB_PATH") or "data.db",
    }

    # Apply defaults before validation so dependent modules see consistent values.
    for var, value in defaults.items():
        if not os.getenv(var):
            os.environ[var] = value
            logger.info("Environment variable %s not set; using default '%s'", var, value)

    optional_vars: Dict[str, str] = {
        "PASSCODE": "Admin dashboard passcode (falls back to the built-in default)",
        "STATS_DEBUG_SESSIONS": "Include reconstructed sessions in the stats payload",
    }

    invalid = []
    for var, default in _POSITIVE_INT_VARS.items():
        try:
            get_env_int(var, default)
        except EnvironmentError as exc:
            invalid.append(str(exc))
    if invalid:
        raise EnvironmentError("; ".join(invalid))

    for var, description in optional_vars.items():
        if not os.getenv(var):
            logger.warning("Optional environment variable not set: %s (%s)", var, description)


def get_env_bool(name: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on", "enabled"}


def get_env_int(name: str, default: int) -> int:
    """Get a positive integer from an environment variable."""
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        raise EnvironmentError(f"{name} must be an integer, got {value!r}")
    if parsed <= 0:
        raise EnvironmentError(f"{name} must be positive, got {parsed}")
    return parsed

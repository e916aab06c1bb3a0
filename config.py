"""
Configuration Module
====================
Centralized environment variable loading, validation, and access.
Validates restaurant configuration at startup to fail fast.

NO BUSINESS LOGIC - Pure configuration management only.
"""

import os
import logging
from typing import Optional, Dict, Any, List, FrozenSet, Tuple
from pathlib import Path
from decimal import Decimal, InvalidOperation
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from dotenv import load_dotenv


# ============================================================================
# LOGGING
# ============================================================================

logger = logging.getLogger(__name__)


# ============================================================================
# ENVIRONMENT LOADING
# ============================================================================

def load_environment():
    """
    Load environment variables from .env file if present.
    Safe to call multiple times.
    """
    env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)
        logger.info("Loaded environment from .env file")
    else:
        logger.info("No .env file found, using system environment variables")


# Load on module import
load_environment()


# ============================================================================
# CONFIGURATION EXCEPTION
# ============================================================================

class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


# ============================================================================
# VALIDATION HELPERS
# ============================================================================

WEEKDAY_NAMES = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


def _get_optional_env(key: str, default: str = None) -> Optional[str]:
    """
    Get optional environment variable.

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        Environment variable value or default
    """
    value = os.getenv(key, default)
    return value.strip() if value else default


def _get_bool_env(key: str, default: bool = False) -> bool:
    """
    Get boolean environment variable.

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        Boolean value
    """
    value = os.getenv(key, str(default)).lower()
    return value in ("true", "1", "yes", "on", "enabled")


def _get_int_env(key: str, default: int = None) -> Optional[int]:
    """
    Get integer environment variable.

    Raises:
        ConfigurationError: If value is not a valid integer
    """
    value = os.getenv(key)

    if not value:
        return default

    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(
            f"Invalid integer value for {key}: {value}"
        )


def _get_decimal_env(key: str, default: str = "0") -> Decimal:
    """
    Get decimal (money) environment variable.

    Raises:
        ConfigurationError: If value is not a valid non-negative amount
    """
    value = os.getenv(key) or default

    try:
        amount = Decimal(value.replace("$", "").replace(",", "").strip())
    except InvalidOperation:
        raise ConfigurationError(
            f"Invalid decimal value for {key}: {value}"
        )

    if amount < 0:
        raise ConfigurationError(f"{key} must not be negative: {value}")

    return amount.quantize(Decimal("0.01"))


def parse_clock_time(value: str, key: str = "time") -> int:
    """
    Parse an HH:MM string into minutes after midnight.

    Raises:
        ConfigurationError: If value is not a valid HH:MM time
    """
    try:
        hours, minutes = (int(part) for part in value.split(":"))
    except (ValueError, AttributeError):
        raise ConfigurationError(f"Invalid HH:MM value for {key}: {value}")

    if not (0 <= hours <= 24 and 0 <= minutes < 60) or hours * 60 + minutes > 24 * 60:
        raise ConfigurationError(f"Time out of range for {key}: {value}")

    return hours * 60 + minutes


# ============================================================================
# RESTAURANT CONFIGURATION
# ============================================================================

class RestaurantConfig:
    """Order intake and pricing configuration."""

    def __init__(self):
        self.accepting_orders = _get_bool_env("ACCEPTING_ORDERS", True)

        self.estimated_pickup_time_minutes = _get_int_env("ESTIMATED_PICKUP_TIME", 20)
        self.estimated_delivery_time_minutes = _get_int_env("ESTIMATED_DELIVERY_TIME", 40)

        for key, value in (
            ("ESTIMATED_PICKUP_TIME", self.estimated_pickup_time_minutes),
            ("ESTIMATED_DELIVERY_TIME", self.estimated_delivery_time_minutes),
        ):
            if value < 0:
                raise ConfigurationError(f"{key} must not be negative: {value}")

        self.minimum_delivery_order_value = _get_decimal_env(
            "MINIMUM_DELIVERY_ORDER_VALUE",
            "0"
        )

        time_zone = _get_optional_env("TIME_ZONE", "America/Mexico_City")
        try:
            self.timezone = ZoneInfo(time_zone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ConfigurationError(f"Unknown TIME_ZONE: {time_zone}")


class BusinessHoursConfig:
    """Weekly opening hours in the restaurant's local time."""

    def __init__(self):
        weekdays = (
            parse_clock_time(
                _get_optional_env("OPENING_HOURS_TUES_SAT", "13:00"),
                "OPENING_HOURS_TUES_SAT"
            ),
            parse_clock_time(
                _get_optional_env("CLOSING_HOURS_TUES_SAT", "22:00"),
                "CLOSING_HOURS_TUES_SAT"
            ),
        )
        sunday = (
            parse_clock_time(
                _get_optional_env("OPENING_HOURS_SUN", "13:00"),
                "OPENING_HOURS_SUN"
            ),
            parse_clock_time(
                _get_optional_env("CLOSING_HOURS_SUN", "21:00"),
                "CLOSING_HOURS_SUN"
            ),
        )

        closed = _get_optional_env("CLOSED_WEEKDAYS", "mon")
        if closed.lower() == "none":
            closed = ""
        self.closed_weekdays: FrozenSet[int] = frozenset(
            self._parse_weekday(name) for name in closed.split(",") if name.strip()
        )

        # weekday index (Monday == 0) -> (opening minute, closing minute)
        self.schedule: Dict[int, Tuple[int, int]] = {
            day: weekdays for day in range(6)
        }
        self.schedule[6] = sunday

        for day, (opening, closing) in self.schedule.items():
            if opening >= closing:
                raise ConfigurationError(
                    f"Opening time must precede closing time ({WEEKDAY_NAMES[day]})"
                )

    @staticmethod
    def _parse_weekday(name: str) -> int:
        key = name.strip().lower()[:3]
        if key not in WEEKDAY_NAMES:
            raise ConfigurationError(f"Invalid weekday in CLOSED_WEEKDAYS: {name}")
        return WEEKDAY_NAMES.index(key)


class LoggingConfig:
    """Logging configuration."""

    def __init__(self):
        self.log_level = _get_optional_env("LOG_LEVEL", "INFO").upper()

        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level not in valid_levels:
            raise ConfigurationError(
                f"Invalid LOG_LEVEL: {self.log_level}. "
                f"Must be one of: {', '.join(valid_levels)}"
            )


# ============================================================================
# MAIN CONFIGURATION CLASS
# ============================================================================

class Config:
    """
    Main configuration container.
    Loads and validates all configuration on initialization.
    """

    def __init__(self):
        """
        Initialize and validate all configuration.

        Raises:
            ConfigurationError: If any configuration value is invalid
        """
        try:
            self.restaurant = RestaurantConfig()
            self.hours = BusinessHoursConfig()
            self.logging = LoggingConfig()

            logger.info("Configuration loaded and validated successfully")

        except ConfigurationError as e:
            logger.error(f"Configuration error: {str(e)}")
            raise

    def get_safe_summary(self) -> Dict[str, Any]:
        """Get configuration summary for startup logs."""
        return {
            "accepting_orders": self.restaurant.accepting_orders,
            "estimated_pickup_time": self.restaurant.estimated_pickup_time_minutes,
            "estimated_delivery_time": self.restaurant.estimated_delivery_time_minutes,
            "minimum_delivery_order_value": str(self.restaurant.minimum_delivery_order_value),
            "time_zone": str(self.restaurant.timezone),
            "closed_weekdays": sorted(
                WEEKDAY_NAMES[day] for day in self.hours.closed_weekdays
            ),
            "log_level": self.logging.log_level,
        }


# ============================================================================
# SINGLETON INSTANCE
# ============================================================================

_config: Optional[Config] = None


def get_config() -> Config:
    """
    Get global configuration instance.

    Initializes on first call.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    global _config
    if _config is None:
        _config = Config()
    return _config


def reload_config() -> Config:
    """
    Reload configuration from environment.
    Useful for testing or dynamic reconfiguration.
    """
    global _config
    load_environment()
    _config = Config()
    logger.info("Configuration reloaded")
    return _config


def validate_configuration() -> List[str]:
    """
    Validate configuration and log a summary.

    Returns:
        Summary lines (also logged)
    """
    summary = get_config().get_safe_summary()

    lines = [f"{key}: {value}" for key, value in summary.items()]
    logger.info("Configuration Summary:")
    for line in lines:
        logger.info(f"  {line}")

    return lines


def configure_logging(level: Optional[str] = None):
    """Configure root logging from LOG_LEVEL (or an explicit level)."""
    logging.basicConfig(
        level=level or get_config().logging.log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


if __name__ == "__main__":
    try:
        configure_logging()
        validate_configuration()
        print("Configuration is valid")

    except ConfigurationError as e:
        print(f"Configuration Error: {e}")
        raise SystemExit(1)

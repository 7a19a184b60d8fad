"""Centralized logging configuration for neo-authz.

Verbosity is controlled from the environment so that permission decisions
can be traced in development without flooding production logs.
"""

import logging
import logging.config
import os
from enum import Enum


class LogLevel(str, Enum):
    """Supported log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogVerbosity(str, Enum):
    """Log verbosity modes."""
    QUIET = "QUIET"      # Only errors and critical
    NORMAL = "NORMAL"    # Standard logging (warnings and above)
    VERBOSE = "VERBOSE"  # Info level logging
    DEBUG = "DEBUG"      # Full debug logging


class LogFormat(str, Enum):
    """Log format options."""
    SIMPLE = "simple"
    DETAILED = "detailed"
    JSON = "json"


_FORMATS = {
    LogFormat.SIMPLE: "%(asctime)s - %(levelname)s - %(message)s",
    LogFormat.DETAILED: "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s",
    LogFormat.JSON: '{"time":"%(asctime)s","level":"%(levelname)s","module":"%(name)s","message":"%(message)s"}',
}


def get_log_level_from_verbosity(verbosity: str) -> str:
    """Map verbosity mode to log level."""
    verbosity_map = {
        LogVerbosity.QUIET: LogLevel.ERROR.value,
        LogVerbosity.NORMAL: LogLevel.WARNING.value,
        LogVerbosity.VERBOSE: LogLevel.INFO.value,
        LogVerbosity.DEBUG: LogLevel.DEBUG.value,
    }
    try:
        return verbosity_map[LogVerbosity(verbosity.upper())]
    except ValueError:
        return LogLevel.WARNING.value


class LoggingConfig:
    """Logging configuration manager."""

    # Chatty per-lookup modules, kept at WARNING unless debugging
    DEFAULT_QUIET_MODULES = [
        "neo_authz.features.permissions.services.grant_accessors",
        "neo_authz.features.cache.adapters",
    ]

    ERROR_ONLY_MODULES = [
        "asyncio",
    ]

    @classmethod
    def build(cls) -> dict:
        """Build a dictConfig mapping from environment variables."""
        log_verbosity = os.getenv("LOG_VERBOSITY", "NORMAL").upper()
        log_format = os.getenv("LOG_FORMAT", LogFormat.SIMPLE.value).lower()
        enable_sql_logging = os.getenv("ENABLE_SQL_LOGGING", "false").lower() == "true"
        enable_decision_logging = os.getenv("ENABLE_DECISION_LOGGING", "false").lower() == "true"

        effective_log_level = os.getenv("LOG_LEVEL", "").upper() or get_log_level_from_verbosity(log_verbosity)
        if effective_log_level not in LogLevel.__members__:
            effective_log_level = LogLevel.WARNING.value

        try:
            format_string = _FORMATS[LogFormat(log_format)]
        except ValueError:
            format_string = _FORMATS[LogFormat.SIMPLE]

        logging_config = {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": format_string,
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "level": effective_log_level,
                    "formatter": "default",
                    "stream": "ext://sys.stdout",
                },
            },
            "root": {
                "level": effective_log_level,
                "handlers": ["console"],
            },
            "loggers": {}
        }

        quiet_level = "WARNING" if effective_log_level != "DEBUG" else "DEBUG"
        for module in cls.DEFAULT_QUIET_MODULES:
            logging_config["loggers"][module] = {
                "level": quiet_level,
                "handlers": ["console"],
                "propagate": False,
            }

        for module in cls.ERROR_ONLY_MODULES:
            logging_config["loggers"][module] = {
                "level": "ERROR",
                "handlers": ["console"],
                "propagate": False,
            }

        if not enable_sql_logging:
            logging_config["loggers"]["asyncpg"] = {
                "level": "WARNING",
                "handlers": ["console"],
                "propagate": False,
            }

        # Fail-closed errors are logged at ERROR and pass regardless
        if enable_decision_logging:
            logging_config["loggers"]["neo_authz.features.permissions.services.authorization_service"] = {
                "level": "DEBUG",
                "handlers": ["console"],
                "propagate": False,
            }

        return logging_config

    @classmethod
    def configure(cls) -> None:
        """Configure logging based on environment variables."""
        logging_config = cls.build()
        logging.config.dictConfig(logging_config)

        logger = logging.getLogger(__name__)
        logger.debug(f"Logging configured: level={logging_config['root']['level']}")

    @classmethod
    def set_module_level(cls, module_name: str, level: str) -> None:
        """Set log level for a specific module."""
        logging.getLogger(module_name).setLevel(getattr(logging, level.upper()))


def setup_logging() -> None:
    """Setup logging configuration from environment variables.

    Call once at application startup; importing the library does not
    reconfigure the host application's logging.
    """
    LoggingConfig.configure()


def get_logger(name: str) -> logging.Logger:
    """Get a logger for the given module name."""
    return logging.getLogger(name)

"""
Logging configuration for Crypto Market Feed Service.
Supports both JSON and text logging formats.
"""

import logging
import logging.config
import sys
from typing import Dict, Any
from pythonjsonlogger import jsonlogger

from .config import settings


def setup_logging() -> None:
    """Setup structured logging for the application."""

    if settings.log_format == "json":
        logging_config = get_json_logging_config()
    else:
        logging_config = get_text_logging_config()

    logging.config.dictConfig(logging_config)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level))

    # Reduce noise from external libraries
    for noisy in ("httpx", "httpcore", "redis", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _handlers(formatter: str) -> Dict[str, Any]:
    return {
        "console": {
            "class": "logging.StreamHandler",
            "level": settings.log_level,
            "formatter": formatter,
            "stream": sys.stdout
        }
    }


def _loggers() -> Dict[str, Any]:
    return {
        "": {
            "handlers": ["console"],
            "level": settings.log_level,
            "propagate": False
        },
        "market_feed": {
            "handlers": ["console"],
            "level": settings.log_level,
            "propagate": False
        }
    }


def get_json_logging_config() -> Dict[str, Any]:
    """Get JSON logging configuration."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": jsonlogger.JsonFormatter,
                "format": "%(asctime)s %(name)s %(levelname)s %(message)s %(module)s %(funcName)s %(lineno)d",
                "datefmt": "%Y-%m-%d %H:%M:%S"
            }
        },
        "handlers": _handlers("json"),
        "loggers": _loggers()
    }


def get_text_logging_config() -> Dict[str, Any]:
    """Get text logging configuration."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "text": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s (%(filename)s:%(lineno)d)",
                "datefmt": "%Y-%m-%d %H:%M:%S"
            }
        },
        "handlers": _handlers("text"),
        "loggers": _loggers()
    }


def create_logger(module_name: str) -> logging.Logger:
    """Create a logger for a specific module under the service namespace."""
    if module_name.startswith("market_feed"):
        return logging.getLogger(module_name)
    return logging.getLogger(f"market_feed.{module_name}")

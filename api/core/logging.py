"""
Logging configuration for the API.

Usage:
    # Services that run inside a request should use the contextual logger so the
    # request correlation ID is prefixed automatically:
    from middleware.logging_middleware import get_logger
    logger = get_logger(__name__)

    # Everything else uses standard logging:
    import logging
    logger = logging.getLogger(__name__)
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

from core.config import settings

# Libraries that log every HTTP round trip at INFO
NOISY_LOGGERS = (
    "uvicorn.access",
    "uvicorn.error",
    "httpx",
    "httpcore",
    "openai",
    "google_genai",
    "botocore",
    "boto3",
    "urllib3",
    "replicate",
)

FILE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _rotating_handler(path: Path, level: int, fmt: str) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=10 * 1024 * 1024, backupCount=5)  # 10MB x 5
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def setup_logging():
    """Configure structlog and the stdlib root logger for the application."""

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    json_output = settings.log_format == "json"

    shared_processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        shared_processors.append(structlog.processors.JSONRenderer())
    else:
        shared_processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=shared_processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_format = "%(message)s" if json_output else "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    console_handler.setFormatter(logging.Formatter(console_format))
    root_logger.addHandler(console_handler)

    if settings.environment == "production":
        log_dir = Path("logs")
        log_dir.mkdir(exist_ok=True)
        root_logger.addHandler(_rotating_handler(log_dir / "api.log", logging.DEBUG, FILE_FORMAT))
        root_logger.addHandler(_rotating_handler(log_dir / "api_errors.log", logging.ERROR, FILE_FORMAT + "\n%(exc_info)s"))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(
        f"Logging configured: level={settings.log_level}, format={settings.log_format}, env={settings.environment}"
    )


def mask_secret(value: str) -> str:
    """Preview a credential without revealing it (first 7 and last 4 characters)."""
    if not value:
        return ""
    if len(value) > 11:
        return f"{value[:7]}...{value[-4:]}"
    return "***"

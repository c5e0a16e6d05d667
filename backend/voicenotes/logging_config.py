"""
Logging configuration for the pipeline.

Supports per-stage log levels via environment variables:
- LOG_LEVEL: Global log level (default: INFO)
- LOG_FORMAT: simple or structured (default: structured)
- LOG_LEVEL_<STAGE>: Override for one pipeline stage (e.g., LOG_LEVEL_ENGINE=DEBUG)
"""

import logging
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from voicenotes.config import Settings

PACKAGE = "voicenotes"

# Settings field suffix -> logger name
STAGE_LOGGERS = {
    "pipeline": "voicenotes.services.pipeline",
    "engine": "voicenotes.services.pipeline.retry_engine",
    "health": "voicenotes.services.pipeline.health_monitor",
    "cache": "voicenotes.services.pipeline.result_cache",
    "providers": "voicenotes.services.providers",
    "ai_clients": "voicenotes.services.ai_clients",
}

# Third-party loggers that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "anthropic", "uvicorn.access")


def short_logger_name(name: str) -> str:
    """
    Logger name relative to the package, without the ``services`` layer.

    Example:
        short_logger_name("voicenotes.services.pipeline.manager")  # "pipeline.manager"
        short_logger_name("voicenotes.api.routes")                 # "api.routes"
        short_logger_name("httpx")                                 # "httpx"
    """
    head, _, rest = name.partition(".")
    if head != PACKAGE or not rest:
        return name
    return rest.removeprefix("services.")


class StructuredFormatter(logging.Formatter):
    """
    Structured log formatter for easy parsing.

    Format: timestamp | level | logger | message
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, "%Y-%m-%d %H:%M:%S")

        message = (
            f"{timestamp} | "
            f"{record.levelname:8} | "
            f"{short_logger_name(record.name):30} | "
            f"{record.getMessage()}"
        )

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


def setup_logging(settings: "Settings") -> None:
    """
    Configure the root handler and per-stage levels.

    Args:
        settings: Application settings with log configuration
    """
    root_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "structured":
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    for stage, logger_name in STAGE_LOGGERS.items():
        level = getattr(settings, f"log_level_{stage}", None)
        if level:
            logging.getLogger(logger_name).setLevel(getattr(logging, level.upper(), root_level))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

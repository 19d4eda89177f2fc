import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from turnloop.config import Config

renderer = structlog.dev.ConsoleRenderer(colors=True)

processors = [
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="%H:%M:%S"),
    renderer,
]

_NOISY_LOGGERS = ("httpx", "httpcore", "anthropic", "openai", "google_genai", "botocore", "urllib3")


def configure_logging(config: "Config | None" = None):
    """Install the console renderer at the configured level. Call once at application startup."""
    if config is None:
        from turnloop.config import get_config

        config = get_config()
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, config.log_level.upper())),
        logger_factory=structlog.WriteLoggerFactory(file=sys.stderr),
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None):
    return structlog.get_logger(name or "turnloop")


def obfuscate(value: str) -> str:
    if len(value) <= 8:
        return "***"
    return f"{value[:4]}{'*' * min(len(value) - 8, 20)}{value[-4:]}"

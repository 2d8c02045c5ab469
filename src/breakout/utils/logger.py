"""
Structured logging for the breakout engine.

Wraps structlog with console/file output, JSON or pretty rendering and
context binding. Context is stored in ``contextvars`` so analyses running
concurrently in threads or tasks never see each other's context.

Example Usage:
    ```python
    from breakout.utils.logger import LogConfig, add_context, get_logger, setup_logging

    setup_logging(LogConfig(level="DEBUG", format="json"))
    logger = get_logger(__name__)

    with add_context(symbol="AAPL"):
        logger.info("analysis_started", bars=250)
    ```
"""

from contextlib import contextmanager
from dataclasses import dataclass
import logging
from pathlib import Path
import sys
from typing import TYPE_CHECKING, Any, Iterator, Literal

import structlog
from structlog.types import EventDict, Processor

if TYPE_CHECKING:
    from breakout.config.settings import LoggingSettings

APP_NAME = "breakout"


@dataclass
class LogConfig:
    """Configuration for the logging system.

    Attributes:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: "json" for machine consumption, "pretty" for development
        file_path: Optional log file; file output is always JSON
        include_timestamp: Whether to add ISO timestamps
        include_caller_info: Whether to add filename/lineno/func_name
        console_output: Whether to write to stdout
        max_string_length: Strings longer than this are truncated
        environment: Environment name (dev, staging, prod)
        app_version: Application version string
    """

    level: str = "INFO"
    format: Literal["json", "pretty"] = "pretty"
    file_path: str | None = None
    include_timestamp: bool = True
    include_caller_info: bool = True
    console_output: bool = True
    max_string_length: int = 1000
    environment: str = "dev"
    app_version: str = "0.1.0"

    @classmethod
    def from_settings(cls, settings: "LoggingSettings", **overrides: Any) -> "LogConfig":
        """Build a config from the environment-backed logging settings.

        Args:
            settings: LoggingSettings (level, format, file_path)
            **overrides: Any other LogConfig field
        """
        return cls(
            level=settings.level,
            format=settings.format,
            file_path=settings.file_path,
            **overrides,
        )


class _AppInfo:
    """Processor stamping app name, environment and version on each entry."""

    def __init__(self, environment: str, version: str):
        self.environment = environment
        self.version = version

    def __call__(self, logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict["app"] = APP_NAME
        event_dict["environment"] = self.environment
        event_dict["version"] = self.version
        return event_dict


class _Truncate:
    """Processor truncating long strings, including inside dicts and lists."""

    def __init__(self, max_length: int):
        self.max_length = max_length

    def _truncate(self, value: Any) -> Any:
        if isinstance(value, str) and len(value) > self.max_length:
            return f"{value[:self.max_length]}... [truncated]"
        if isinstance(value, dict):
            return {k: self._truncate(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return type(value)(self._truncate(item) for item in value)
        return value

    def __call__(self, logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
        return {key: self._truncate(value) for key, value in event_dict.items()}


def _build_processors(config: LogConfig, renderer: Processor) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        _AppInfo(config.environment, config.app_version),
        _Truncate(config.max_string_length),
    ]

    if config.include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso"))

    if config.include_caller_info:
        processors.append(
            structlog.processors.CallsiteParameterAdder(
                [
                    structlog.processors.CallsiteParameter.FILENAME,
                    structlog.processors.CallsiteParameter.LINENO,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                ]
            )
        )

    processors.extend(
        [
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ]
    )
    return processors


def setup_logging(config: LogConfig) -> None:
    """Configure structlog and the standard library root logger.

    Args:
        config: LogConfig instance with logging configuration
    """
    level = getattr(logging, config.level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if config.console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        root_logger.addHandler(console_handler)

    if config.file_path:
        file_path = Path(config.file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(file_path)
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        root_logger.addHandler(file_handler)

    # A file sink forces JSON so the file stays machine readable
    if config.format == "json" or config.file_path:
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=_build_processors(config, renderer),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance for the given name.

    Args:
        name: Logger name, typically __name__ of the calling module

    Returns:
        structlog BoundLogger
    """
    return structlog.get_logger(name)


@contextmanager
def add_context(**kwargs: Any) -> Iterator[None]:
    """Bind key-value pairs to every log entry emitted inside the block.

    Nested blocks stack; leaving a block restores the previous context.

    Args:
        **kwargs: Key-value pairs to add as context
    """
    tokens = structlog.contextvars.bind_contextvars(**kwargs)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)


def set_log_level(level: str) -> None:
    """Change the root logging level at runtime."""
    logging.getLogger().setLevel(getattr(logging, level.upper()))


def clear_context() -> None:
    """Drop all bound context variables."""
    structlog.contextvars.clear_contextvars()

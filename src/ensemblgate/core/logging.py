"""
Logging infrastructure for ensemblgate.

Provides:
- Structured JSON lines for log files
- Rich console output for the terminal
- Contextual logging that stamps server/release onto every record

Lifecycle events are logged with the event name as the message
(``cache_hit``, ``retry_scheduled``, ...) and their fields passed via
``extra``. Logging never feeds back into control flow.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

import orjson

if TYPE_CHECKING:
    from rich.console import Console

    from .config.models import LoggingConfig


ROOT_LOGGER = "ensemblgate"
PLAIN_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

LEVEL_STYLES: dict[int, str] = {
    logging.DEBUG: "dim",
    logging.INFO: "default",
    logging.WARNING: "yellow",
    logging.ERROR: "red",
    logging.CRITICAL: "bold red",
}

# Attributes every LogRecord carries; anything else came in via ``extra``
_RESERVED = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


def extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Structured fields attached to a record through ``extra``."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED and not key.startswith("_")
    }


# =============================================================================
# Formatters and Handlers
# =============================================================================


class JSONFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, event, fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        payload.update(extra_fields(record))

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return orjson.dumps(payload, default=str).decode("utf-8")


class RichConsoleHandler(logging.Handler):
    """Render records on a Rich console as ``[server] event key=value``."""

    def __init__(self, console: "Console | None" = None, level: int = logging.INFO):
        super().__init__(level)
        if console is None:
            from rich.console import Console
            console = Console(stderr=True)
        self.console = console

    @staticmethod
    def render_fields(fields: dict[str, Any]) -> str:
        if not fields:
            return ""
        return " [dim]" + " ".join(f"{key}={value}" for key, value in fields.items()) + "[/dim]"

    def emit(self, record: logging.LogRecord) -> None:
        try:
            style = LEVEL_STYLES.get(record.levelno, "default")
            fields = extra_fields(record)
            server = fields.pop("server", None)
            prefix = f"[cyan]\\[{server}][/cyan] " if server else ""

            self.console.print(
                f"{prefix}[{style}]{self.format(record)}[/{style}]{self.render_fields(fields)}",
                highlight=False,
            )

            if record.exc_info:
                self.console.print_exception()
        except Exception:
            self.handleError(record)


def _console_handler(rich_console: bool, json_format: bool) -> logging.Handler:
    if rich_console:
        handler: logging.Handler = RichConsoleHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        return handler

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(PLAIN_FORMAT))
    return handler


def _file_handler(log_file: Path | str, json_format: bool) -> logging.Handler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)  # files capture everything
    handler.setFormatter(
        JSONFormatter() if json_format else logging.Formatter(PLAIN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    )
    return handler


# =============================================================================
# Logger Configuration
# =============================================================================


def setup_logging(
    level: str = "INFO",
    log_file: Path | str | None = None,
    json_format: bool = True,
    rich_console: bool = True,
) -> logging.Logger:
    """Configure the ``ensemblgate`` logger hierarchy.

    Existing handlers are replaced, so calling this twice is safe.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional path for a log file
        json_format: JSON lines for the file (and the plain console)
        rich_console: Render console output with Rich

    Returns:
        The ``ensemblgate`` root logger
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(numeric_level)
    logger.handlers.clear()

    console = _console_handler(rich_console, json_format)
    console.setLevel(numeric_level)
    logger.addHandler(console)

    if log_file:
        logger.addHandler(_file_handler(log_file, json_format))

    return logger


def setup_logging_from_config(config: "LoggingConfig") -> logging.Logger:
    """Configure logging from the ``logging`` section of AppConfig."""
    return setup_logging(
        level=config.level,
        log_file=config.file,
        json_format=config.json_format,
        rich_console=config.rich_console,
    )


def get_logger(name: str | None = None) -> logging.Logger:
    """Get a logger under the ``ensemblgate`` hierarchy."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}" if name else ROOT_LOGGER)


# =============================================================================
# Contextual Logging Adapter
# =============================================================================


class ContextualLogger(logging.LoggerAdapter):
    """Logger adapter that stamps fixed context fields onto every record.

    Per-call ``extra`` fields win over the bound context.
    """

    def __init__(self, logger: logging.Logger, **context: Any):
        super().__init__(logger, {key: value for key, value in context.items() if value is not None})

    @property
    def context(self) -> dict[str, Any]:
        return dict(self.extra)

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs

    def with_context(self, **context: Any) -> "ContextualLogger":
        """Derive a logger with additional (or replaced) context fields."""
        return ContextualLogger(self.logger, **{**self.extra, **context})


def get_contextual_logger(name: str | None = None, **context: Any) -> ContextualLogger:
    """Get a contextual logger, e.g. ``get_contextual_logger("client", server="grch38")``."""
    return ContextualLogger(get_logger(name), **context)

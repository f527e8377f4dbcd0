"""Logging abstraction layer for the ZK terminal client.

Wraps stdlib logging with JSON and human-readable output, correlation IDs and
structured context. Transports bind their connection details once (host, port,
transport label) so every line they emit carries them without repeating the
``extra`` mapping at each call site.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import cast

from typing_extensions import override

__all__ = [
    "HumanReadableFormatter",
    "JSONFormatter",
    "ZKLogger",
    "get_logger",
    "hex_preview",
]

# Frames can carry user names and card numbers, only the head is logged.
HEX_PREVIEW_BYTES = 32


def hex_preview(data: bytes, limit: int = HEX_PREVIEW_BYTES) -> str:
    """Render the first ``limit`` bytes of a frame as spaced hex."""
    head = data[:limit].hex(" ")
    if len(data) > limit:
        return f"{head} ... (+{len(data) - limit} bytes)"
    return head


def _context_of(record: logging.LogRecord) -> Mapping[str, object] | None:
    extra_data = getattr(record, "extra_data", None)
    if isinstance(extra_data, Mapping) and extra_data:
        return cast("Mapping[str, object]", extra_data)
    return None


class JSONFormatter(logging.Formatter):
    """Formatter that outputs one JSON object per log record."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        # Import here to avoid circular dependency
        from zk_terminal.correlation import get_correlation_id

        log_data: dict[str, object] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }

        context = _context_of(record)
        if context:
            log_data["context"] = dict(context)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Formatter for terminals: timestamp, level, origin, correlation id, message, context."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(module)s:%(lineno)d] %(correlation_id)s > %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )

    @override
    def format(self, record: logging.LogRecord) -> str:
        # Import here to avoid circular dependency
        from zk_terminal.correlation import get_correlation_id

        correlation_id = get_correlation_id()
        record.correlation_id = f"[{correlation_id[:8]}]" if correlation_id else "[--------]"

        formatted = super().format(record)
        context = _context_of(record)
        if context:
            context_str = " | ".join(f"{k}={v}" for k, v in context.items())
            formatted = f"{formatted} | {context_str}"
        return formatted


class ZKLogger:
    """Structured logger with optional bound context.

    ``bind()`` returns a new ZKLogger sharing the same stdlib logger whose
    bound fields are merged under every call's ``extra``. Call-site keys win
    over bound keys.
    """

    def __init__(
        self,
        name: str,
        log_format: str = "human",
        json_file: str | Path | None = None,
        human_output: str | None = "stderr",
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Initialize ZKLogger.

        Args:
            name: Logger name (typically module name)
            log_format: Output format - "json", "human", or "both"
            json_file: Path for JSON output file (None or "" disables file output)
            human_output: "stdout", "stderr", or file path for human-readable output
            context: Fields attached to every record emitted through this instance

        """
        self.name: str = name
        self.logger: logging.Logger = logging.getLogger(name)
        self.log_format: str = log_format
        self.context: dict[str, object] = dict(context) if context else {}

        from zk_terminal.const import ZK_DEBUG

        if self.logger.level == logging.NOTSET:
            self.logger.setLevel(logging.DEBUG if ZK_DEBUG else logging.INFO)

        # Handlers are configured once per stdlib logger name
        if not self.logger.handlers:
            self._configure_handlers(json_file, human_output)

    def _configure_handlers(self, json_file: str | Path | None, human_output: str | None) -> None:
        handler_level = self.logger.level

        if self.log_format in ("json", "both") and json_file:
            try:
                json_path = Path(json_file)
                json_path.parent.mkdir(parents=True, exist_ok=True)
                json_handler = logging.FileHandler(json_path, mode="a")
                json_handler.setFormatter(JSONFormatter())
                json_handler.setLevel(handler_level)
                self.logger.addHandler(json_handler)
            except OSError as e:
                print(f"Warning: Failed to create JSON log file {json_file}: {e}", file=sys.stderr)

        if self.log_format in ("human", "both"):
            normalized_output = human_output or "stderr"
            if normalized_output == "stdout":
                human_handler: logging.Handler = logging.StreamHandler(sys.stdout)
            elif normalized_output == "stderr":
                human_handler = logging.StreamHandler(sys.stderr)
            else:
                try:
                    human_path = Path(normalized_output)
                    human_path.parent.mkdir(parents=True, exist_ok=True)
                    human_handler = logging.FileHandler(human_path, mode="a")
                except OSError as e:
                    print(f"Warning: Failed to create human log file {human_output}: {e}", file=sys.stderr)
                    human_handler = logging.StreamHandler(sys.stderr)

            human_handler.setFormatter(HumanReadableFormatter())
            human_handler.setLevel(handler_level)
            self.logger.addHandler(human_handler)

    def bind(self, **context: object) -> ZKLogger:
        """Return a logger that adds ``context`` to every record."""
        merged = {**self.context, **context}
        child = ZKLogger.__new__(ZKLogger)
        child.name = self.name
        child.logger = self.logger
        child.log_format = self.log_format
        child.context = merged
        return child

    def _payload(self, extra: Mapping[str, object] | None) -> Mapping[str, object] | None:
        if not self.context and not extra:
            return None
        merged = dict(self.context)
        if extra:
            merged.update(extra)
        return {"extra_data": merged}

    def _log(self, level: int, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        # stacklevel points module/lineno at the caller, not at this wrapper
        self.logger.log(level, msg, *args, extra=self._payload(extra), stacklevel=3)

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.DEBUG, msg, *args, extra=extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.INFO, msg, *args, extra=extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.WARNING, msg, *args, extra=extra)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.ERROR, msg, *args, extra=extra)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log at ERROR with the active exception's traceback."""
        self.logger.exception(msg, *args, extra=self._payload(extra), stacklevel=2)

    @property
    def handlers(self) -> list[logging.Handler]:
        return self.logger.handlers


def get_logger(
    name: str,
    log_format: str | None = None,
    json_file: str | Path | None = None,
    human_output: str | None = None,
) -> ZKLogger:
    """Get a ZKLogger, falling back to the ZK_LOG_* settings for anything not given.

    Args:
        name: Logger name
        log_format: Override default format ("json", "human", or "both")
        json_file: Override default JSON output file
        human_output: Override default human-readable output

    Returns:
        ZKLogger instance

    """
    from zk_terminal.const import (
        ZK_LOG_FORMAT,
        ZK_LOG_HUMAN_OUTPUT,
        ZK_LOG_JSON_FILE,
    )

    return ZKLogger(
        name=name,
        log_format=log_format or ZK_LOG_FORMAT,
        json_file=json_file or ZK_LOG_JSON_FILE or None,
        human_output=human_output or ZK_LOG_HUMAN_OUTPUT,
    )

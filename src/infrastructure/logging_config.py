"""Logging setup and command-scoped log context.

Every command logs through a `CommandLogAdapter`, which stamps the command's
identity (and, once known, the session and document it acts on) onto each
record as `extra=` attributes. The formatters below read those attributes back:
`StructuredFormatter` emits one JSON object per record for log shipping, and
`ContextFormatter` appends a compact `key=value` suffix for terminals.

Security Impact:
    - Context fields are identifiers only; clinical free text is never attached
    - Structured format enables audit and security monitoring
    - Third-party storage libraries are held at WARNING to keep SQL out of logs
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, MutableMapping, Optional, Tuple

# Record attributes carried over from the command context, in output order
CONTEXT_FIELDS: Tuple[str, ...] = ("command_name", "command_id", "session_id", "user_id", "document_id")

QUIET_LOGGERS: Tuple[str, ...] = ("duckdb", "pandas")

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
TEXT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def record_context(record: logging.LogRecord) -> Dict[str, str]:
    """Collect the command context attached to a record, skipping unset values."""
    context = {}
    for field_name in CONTEXT_FIELDS:
        value = getattr(record, field_name, None)
        if value is not None:
            context[field_name] = str(value)
    return context


class CommandLogAdapter(logging.LoggerAdapter):
    """Logger adapter that attaches command context to every record.

    Values passed through `extra=` on an individual call take precedence over
    the adapter's own context.

    Example Usage:
        ```python
        log = CommandLogAdapter(logger, command_id=command.command_id, command_name="AddDiagnosis")
        log = log.bind(session_id=session.session_id)
        log.info("Executing command", extra={"document_id": document_id})
        ```
    """

    def __init__(self, logger: logging.Logger, **context: Any):
        super().__init__(logger, {key: value for key, value in context.items() if value is not None})

    def bind(self, **context: Any) -> "CommandLogAdapter":
        """Return a new adapter with additional context; the original is unchanged."""
        merged = dict(self.extra)
        merged.update(context)
        return CommandLogAdapter(self.logger, **merged)

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(self.extra)
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs


class StructuredFormatter(logging.Formatter):
    """JSON formatter: one object per record, command context as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        log_data.update(record_context(record))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class ContextFormatter(logging.Formatter):
    """Human-readable formatter that appends command context as `key=value` pairs."""

    def __init__(self, fmt: str = TEXT_FORMAT, datefmt: str = TEXT_DATE_FORMAT):
        super().__init__(fmt, datefmt)

    def formatMessage(self, record: logging.LogRecord) -> str:
        text = super().formatMessage(record)
        context = record_context(record)
        if context:
            text += " [" + " ".join(f"{key}={value}" for key, value in context.items()) + "]"
        return text


def setup_logging(use_json: bool = False, log_level: str = "INFO", stream: Optional[Any] = None) -> logging.Handler:
    """Install a single stdout handler on the root logger.

    Parameters:
        use_json: Emit JSON records instead of text lines
        log_level: Level name; unknown names fall back to INFO
        stream: Output stream (defaults to stdout)

    Returns:
        logging.Handler: The installed handler
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(StructuredFormatter() if use_json else ContextFormatter())
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return handler

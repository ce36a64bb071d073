"""Log formatting for the telemetry server.

Records may carry telemetry context through ``extra=``: ``condition`` (a
``TelemetryCondition``), ``minute_ts`` and ``anomaly_id``. Both
formatters surface them next to the request correlation id.
"""

import json
import logging
from datetime import UTC, datetime

from server.middleware import CorrelationIDFilter

SERVICE_NAME = "ratewatch-server"
CONTEXT_FIELDS = ("condition", "minute_ts", "anomaly_id")

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

# Loggers that chatter at INFO for every request or webhook call.
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def _context(record: logging.LogRecord) -> dict[str, object]:
    found: dict[str, object] = {}
    for name in CONTEXT_FIELDS:
        value = getattr(record, name, None)
        if value is not None:
            found[name] = str(value) if name == "condition" else value
    return found


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "service": SERVICE_NAME,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        cid = getattr(record, "correlation_id", None)
        if cid:
            entry["correlation_id"] = cid
        entry.update(_context(record))
        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            entry["error"] = {
                "type": type(exc).__name__,
                "message": str(exc),
                "stacktrace": self.formatException(record.exc_info),
            }
        return json.dumps(entry, default=str)


class TelemetryTextFormatter(logging.Formatter):
    """Plain text with a ``key=value`` tail for request id and telemetry context."""

    def __init__(self) -> None:
        super().__init__(TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        tail = [f"{k}={v}" for k, v in _context(record).items()]
        cid = getattr(record, "correlation_id", None)
        if cid:
            tail.insert(0, f"rid={cid}")
        if not tail:
            return line
        head, sep, rest = line.partition("\n")
        return f"{head} [{' '.join(tail)}]{sep}{rest}"


def configure_logging(*, log_format: str = "text", debug: bool = False) -> None:
    """Install a single stream handler on the root logger."""
    level = logging.DEBUG if debug else logging.INFO
    root = logging.getLogger()
    root.setLevel(level)
    for existing in root.handlers[:]:
        root.removeHandler(existing)

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.addFilter(CorrelationIDFilter())
    handler.setFormatter(JSONFormatter() if log_format == "json" else TelemetryTextFormatter())
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

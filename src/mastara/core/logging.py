"""Root logging configuration.

Every module logs through ``logging.getLogger(__name__)``; this module only
installs the process-wide handler once at startup. Two output formats are
supported: a plain text line (development) and a one-line JSON object
(log shippers). Both carry the current request id when one is set.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from mastara.core.config import LogFormat

if TYPE_CHECKING:
    from mastara.core.config import Settings

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(request_id)s]: %(message)s"

# LogRecord attributes that are not user-supplied ``extra`` fields
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()
    | {"message", "asctime", "request_id"}
)


class RequestIDFilter(logging.Filter):
    """Attach the current X-Request-ID (or '-') to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        from mastara.api.middleware.request_id import get_request_id

        record.request_id = get_request_id() or "-"
        return True


class JSONFormatter(logging.Formatter):
    """Render records as single-line JSON, including ``extra`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(settings: Settings) -> None:
    """Install the root handler according to settings.

    Safe to call more than once; previous handlers installed by this
    function are replaced.
    """
    handler = logging.StreamHandler()
    handler.addFilter(RequestIDFilter())
    if settings.log_format == LogFormat.JSON:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        if getattr(existing, "_mastara_handler", False):
            root.removeHandler(existing)
    handler._mastara_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(settings.log_level)

    # SQL echo is controlled by DatabaseSettings.echo, keep the engine logger quiet otherwise
    if not settings.database.echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

from __future__ import annotations

import datetime as dt
import json
import logging
from typing import Any, Dict, Optional

_SECRET_FIELDS = {"credential", "access_token", "token"}


class StructuredLogger(logging.LoggerAdapter):
    """
    JSON-per-line logger.

    Fields bound with :meth:`bind` (cache key parts, provider name) are merged
    into every event emitted through the returned adapter.
    """

    def log_event(self, level: int, event: str, **fields: Any) -> None:
        if not self.logger.isEnabledFor(level):
            return
        stamp = dt.datetime.now(dt.timezone.utc).isoformat()
        payload: Dict[str, Any] = {"event": event, "ts": stamp}
        payload.update(self.extra or {})
        payload.update(fields)
        for name in _SECRET_FIELDS & payload.keys():
            payload[name] = "***"
        message = json.dumps(payload, default=str, separators=(",", ":"))
        self.logger.log(level, message)

    def bind(self, **fields: Any) -> "StructuredLogger":
        merged = dict(self.extra or {})
        merged.update(fields)
        return StructuredLogger(self.logger, merged)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format="%(message)s")


def get_logger(name: str, level: Optional[str] = None) -> StructuredLogger:
    if level:
        configure_logging(level)
    base = logging.getLogger(name)
    return StructuredLogger(base, {})


__all__ = ["StructuredLogger", "configure_logging", "get_logger"]

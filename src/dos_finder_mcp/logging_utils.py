from datetime import datetime, timezone
import json
import logging
import sys
from typing import Optional

from .config import LOG_JSON, LOG_LEVEL


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in ("event", "category", "actor", "log_file", "evicted"):
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def configure_logging(level: Optional[str] = None, json_format: bool = LOG_JSON) -> None:
    # stdout carries the MCP transport and the report, so log to stderr
    root = logging.getLogger()
    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stderr)
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    root.setLevel(getattr(logging, (level or LOG_LEVEL).upper(), logging.WARNING))
    root.addHandler(handler)

# logging_utils.py
# Single-line JSON logs for the flight status board, one object per record

import json
import logging
import os
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

# Correlation ids. Tasks copy the context they are created in, so the windows
# of one fan-out log with the request id of the /request call that started them.
_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_rendezvous_key: ContextVar[Optional[str]] = ContextVar("rendezvous_key", default=None)

SERVICE_NAME = os.getenv("SERVICE_NAME", "flightstatus")
ENV = os.getenv("APP_ENV", "dev")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Optional log file (e.g. tailed by Promtail); stdout only when unset
LOG_FILE = os.getenv("LOG_FILE", "")

# Attributes every LogRecord carries; structured fields must not shadow them
_RESERVED_LOG_FIELDS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


def _correlation_ids() -> Dict[str, str]:
    ids: Dict[str, str] = {}
    rid = _request_id.get()
    if rid:
        ids["request_id"] = rid
    key = _rendezvous_key.get()
    if key:
        ids["rendezvous_key"] = key
    return ids


class JSONLineFormatter(logging.Formatter):
    """
    Fixed envelope, then the correlation ids of the current context, then the
    structured fields passed through `extra`:

        {"ts": "...", "level": "INFO", "logger": "flightstatus.planner",
         "service": "flightstatus", "env": "dev", "message": "fanout_dispatched",
         "request_id": "...", "event": "fanout_dispatched", "key": "fs:4:..."}
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "service": SERVICE_NAME,
            "env": ENV,
            "message": record.getMessage(),
        }
        payload.update(_correlation_ids())

        for key, value in record.__dict__.items():
            if key.startswith("_") or key in payload or key in _RESERVED_LOG_FIELDS:
                continue
            payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def configure_logging(level: Optional[str] = None) -> None:
    """Install the JSON handlers on the root logger. Later calls are no-ops."""
    root = logging.getLogger()
    if getattr(root, "_json_configured", False):
        return

    root.setLevel(level or LOG_LEVEL)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    file_error: Optional[OSError] = None
    if LOG_FILE:
        try:
            log_dir = os.path.dirname(LOG_FILE)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            handlers.append(logging.FileHandler(LOG_FILE))
        except OSError as e:
            file_error = e

    formatter = JSONLineFormatter()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    root._json_configured = True  # type: ignore[attr-defined]

    if file_error is not None:
        root.error(f"File logging disabled, cannot open {LOG_FILE}: {file_error}")


def new_request_id() -> str:
    rid = uuid.uuid4().hex
    _request_id.set(rid)
    return rid


def bind_rendezvous_key(key: Optional[str]) -> None:
    """Tag every later record of the current task with the rendezvous key."""
    _rendezvous_key.set(key)


def log_event(
    logger: logging.Logger,
    event: str,
    level: int = logging.INFO,
    **fields: Any,
) -> None:
    """
    Log `event` as the message and as an `event` field, with `fields` merged
    into the JSON line. A field named like a LogRecord attribute (filename,
    module, ...) is written as field_<name>.
    """
    extra: Dict[str, Any] = {"event": event}
    for key, value in fields.items():
        extra[f"field_{key}" if key in _RESERVED_LOG_FIELDS else key] = value
    logger.log(level, event, extra=extra)

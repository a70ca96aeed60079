"""Structured JSON logging.

Each orchestration cycle runs under its own run ID so every line it produces
(orchestrator, scrapers, retries, storage) can be grouped afterwards.
"""
import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict

from property_scraper.config import settings

run_id_var: ContextVar[str] = ContextVar("run_id", default="")

# Attributes passed through ``extra=`` that are copied into the JSON line
EXTRA_FIELDS = ("source", "url", "page", "attempt", "delay", "status", "duration")

NOISY_LOGGERS = ("sqlalchemy.engine", "urllib3", "httpx", "uvicorn.access")


def set_correlation_id(run_id: str | None = None) -> str:
    """Tag the current context (one orchestration cycle) with an ID."""
    cid = run_id or uuid.uuid4().hex[:12]
    run_id_var.set(cid)
    return cid


def get_correlation_id() -> str:
    return run_id_var.get()


class JSONFormatter(logging.Formatter):
    """One JSON object per line: time, level, logger, message, run ID, extras."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        run_id = run_id_var.get()
        if run_id:
            entry["run_id"] = run_id

        entry.update({key: record.__dict__[key] for key in EXTRA_FIELDS if key in record.__dict__})

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: str | None = None) -> None:
    """Send the root logger to stdout as JSON. Safe to call more than once."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, (level or settings.log_level).upper(), logging.INFO))

    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)

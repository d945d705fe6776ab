"""
Structured logging for research sessions.

Every line carries the session's correlation id. Pipeline telemetry passes
stage fields through ``extra=``; both formats surface them:

    logger.info("Stage merge end", extra={"stage": "merge", "result_count": 12})

Text:  ... | research-1a2b3c4d5e6f7a8b | merge | research.telemetry | Stage merge end [result_count=12]
JSON:  {"correlation_id": "research-...", "stage": "merge", "result_count": 12, ...}

Provider credentials are scrubbed from messages, arguments and extra fields
before any handler sees them.
"""

import logging
import os
import re
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

SERVICE_NAME = "poster-research"

# Rendered after the message in text mode, in this order, when present.
PIPELINE_FIELDS = (
    "event", "outcome", "reason", "queries", "candidates",
    "result_count", "credits_used", "latency_ms", "error",
)

SENSITIVE_KEYS = {
    "api_key", "x-api-key", "serper_api_key", "anthropic_api_key",
    "token", "secret", "authorization", "password",
}

_SECRET_PATTERNS = [
    re.compile(r"(api_key=)[^&\s]+", re.IGNORECASE),
    re.compile(r"(x-api-key['\"]?\s*[:=]\s*['\"]?)[^'\"\s,}]+", re.IGNORECASE),
    re.compile(r"(sk-ant-)[A-Za-z0-9_\-]+"),
]

_session_id: ContextVar[Optional[str]] = ContextVar("research_session_id", default=None)


def redact_secrets(text: Optional[str]) -> str:
    """Strip Serper/Anthropic credentials from free text."""
    if not text:
        return ""
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(r"\1[REDACTED]", text)
    return text


def get_correlation_id() -> Optional[str]:
    return _session_id.get()


def generate_correlation_id() -> str:
    return f"research-{uuid.uuid4().hex[:16]}"


class correlation_id_context:
    """Bind one research session's id for everything logged inside the block."""

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id or generate_correlation_id()
        self.token = None

    def __enter__(self):
        self.token = _session_id.set(self.correlation_id)
        return self.correlation_id

    def __exit__(self, exc_type, exc_val, exc_tb):
        _session_id.reset(self.token)


class SessionContextFilter(logging.Filter):
    """Stamps correlation_id on every record and a placeholder stage when none was given."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "none"
        if not getattr(record, "stage", None):
            record.stage = "-"
        return True


class SensitiveDataFilter(logging.Filter):
    """Redacts provider credentials from the message, its args and extra fields."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact_secrets(record.msg)
        if record.args:
            record.args = self._scrub(record.args)

        for key in list(record.__dict__):
            if key.lower() in SENSITIVE_KEYS:
                setattr(record, key, "[REDACTED]")
        return True

    def _scrub(self, data: Any) -> Any:
        if isinstance(data, dict):
            return {
                k: "[REDACTED]" if str(k).lower() in SENSITIVE_KEYS else self._scrub(v)
                for k, v in data.items()
            }
        if isinstance(data, (list, tuple)):
            return type(data)(self._scrub(item) for item in data)
        if isinstance(data, str):
            return redact_secrets(data)
        return data


class StageTextFormatter(logging.Formatter):
    """Plain-text lines with the pipeline fields appended as ``[key=value ...]``."""

    def __init__(self):
        super().__init__(
            "%(asctime)s | %(levelname)-8s | %(correlation_id)s | %(stage)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        pairs = [f"{key}={getattr(record, key)}" for key in PIPELINE_FIELDS if getattr(record, key, None) is not None]
        return f"{line} [{' '.join(pairs)}]" if pairs else line


class ResearchJsonFormatter(jsonlogger.JsonFormatter):
    """One JSON object per line; extra fields from telemetry are merged in as-is."""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["service"] = SERVICE_NAME
        log_record["correlation_id"] = getattr(record, "correlation_id", "none")
        if log_record.get("stage") == "-":
            log_record.pop("stage")
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)


def setup_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """
    Configure the root logger for a research run.

    ``level`` and ``log_format`` override LOG_LEVEL and LOG_FORMAT
    (``text`` or ``json``; text by default).
    """
    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    fmt = (log_format or os.getenv("LOG_FORMAT", "text")).lower()

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(
            ResearchJsonFormatter(
                "%(timestamp)s %(level)s %(logger)s %(correlation_id)s %(message)s",
                rename_fields={"timestamp": "@timestamp"},
            )
        )
    else:
        handler.setFormatter(StageTextFormatter())
    handler.addFilter(SessionContextFilter())
    handler.addFilter(SensitiveDataFilter())

    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    # httpx logs every request URL at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)

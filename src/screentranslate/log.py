"""Structured logging for screentranslate.

Console lines carry a clock, a 3-letter level, the event and key=value pairs:
    12:30:45 INF provider created engine=openai
    12:30:46 DBG translate complete engine=mtran latency_ms=84 count=3
    12:30:47 WRN primary failed, trying fallback primary=apple fallback=mtran
    12:30:48 ERR all engines failed errors=2

Credentials are masked and user text is reduced to its length before
rendering, so log files can be shared in bug reports.
"""

import logging
import sys
from datetime import datetime

import structlog

LEVEL_NAMES = {
    "debug": "DBG",
    "info": "INF",
    "warning": "WRN",
    "error": "ERR",
    "critical": "CRT",
}

# Values under these keys never reach the output.
REDACTED_KEYS = frozenset({"api_key", "apikey", "secret", "token", "authorization"})

# Logged as "<key>_len=N" instead of the content.
TEXT_KEYS = frozenset({"text", "texts", "prompt", "content"})

_debug_enabled = False


def _redact_secrets(logger, method_name, event_dict):
    for key, value in event_dict.items():
        if value and key.lower() in REDACTED_KEYS:
            event_dict[key] = "***"
    return event_dict


def _summarize_text(logger, method_name, event_dict):
    for key in TEXT_KEYS.intersection(event_dict):
        value = event_dict.pop(key)
        if isinstance(value, (list, tuple)):
            event_dict[f"{key}_len"] = sum(len(str(v)) for v in value)
        else:
            event_dict[f"{key}_len"] = len(str(value))
    return event_dict


def _level_to_3letter(logger, method_name, event_dict):
    level = event_dict.get("level", method_name)
    event_dict["level"] = LEVEL_NAMES.get(level, level.upper()[:3])
    return event_dict


def _add_clock(logger, method_name, event_dict):
    event_dict["timestamp"] = datetime.now().strftime("%H:%M:%S")
    return event_dict


def _format_value(value) -> str:
    if isinstance(value, float):
        return str(round(value, 3))
    if isinstance(value, str) and (not value or " " in value):
        return f'"{value}"'
    return str(value)


def _render_kv_pairs(logger, method_name, event_dict):
    """Render the event as 'timestamp LEVEL message key=value ...'."""
    head = [event_dict.pop("timestamp", ""), event_dict.pop("level", "???"), event_dict.pop("event", "")]
    pairs = [f"{key}={_format_value(value)}" for key, value in event_dict.items() if not key.startswith("_")]
    return " ".join(head + pairs)


def configure(level: str = "INFO", debug: bool = False) -> None:
    """Send log lines to stderr, leaving stdout to command output.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        debug: If True, forces DEBUG.
    """
    global _debug_enabled
    if debug:
        level = "DEBUG"
    _debug_enabled = level.upper() == "DEBUG"

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            _redact_secrets,
            _summarize_text,
            _add_clock,
            _level_to_3letter,
            _render_kv_pairs,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper(), logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a logger, optionally bound to a component name."""
    logger = structlog.get_logger()
    return logger.bind(component=name) if name else logger


def is_debug_enabled() -> bool:
    return _debug_enabled

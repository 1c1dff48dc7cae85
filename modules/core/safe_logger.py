# modules/core/safe_logger.py
"""
Logging setup for the prayer time engine.

Every module keeps using `logger = logging.getLogger(__name__)`; this file
only configures the root logger once (stdout, optional JSON lines) and
offers a one-line summary helper for stats.

USAGE:
    from modules.core.safe_logger import init_safe_logging, log_summary

    init_safe_logging(settings.log_level, use_structured=settings.log_json)
    log_summary("Prewarm", {"days": 7, "cache_entries": 7})
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

# =============================================================================
# CONFIGURATION
# =============================================================================

_initialized = False

DEFAULT_LOG_LEVEL = logging.INFO

DEFAULT_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'


# =============================================================================
# LOGGER INITIALIZATION
# =============================================================================

def init_safe_logging(
    level: Union[int, str] = DEFAULT_LOG_LEVEL,
    format_string: Optional[str] = None,
    use_structured: bool = False,
    force: bool = False
) -> logging.Logger:
    """
    Initialize logging once at startup (app.py, scripts).

    Args:
        level: Logging level, as int or name ("DEBUG", "info", ...)
        format_string: Custom format string (optional)
        use_structured: If True, emit one JSON object per line
        force: Reconfigure even if already initialized

    Returns:
        Root logger instance
    """
    global _initialized

    if _initialized and not force:
        return logging.getLogger()

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = DEFAULT_LOG_LEVEL

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(StructuredFormatter() if use_structured else logging.Formatter(format_string or DEFAULT_FORMAT))
    root_logger.addHandler(handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

    _initialized = True
    root_logger.info(f"🔒 Logging initialized (level={logging.getLevelName(level)}, structured={use_structured})")

    return root_logger


# =============================================================================
# STRUCTURED FORMATTER (Optional JSON output)
# =============================================================================

class StructuredFormatter(logging.Formatter):
    """JSON formatter: one log record per line, multi-line messages included."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage()
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_data'):
            log_entry["data"] = record.extra_data

        return json.dumps(log_entry, ensure_ascii=False, default=str)


# =============================================================================
# SUMMARY LOGGING
# =============================================================================

def log_summary(
    title: str,
    stats: Dict[str, Any],
    logger_name: str = None,
    level: str = "info"
) -> None:
    """
    Log a dict of statistics as one line: "📊 title | key: value | ...".

    Args:
        title: Summary title
        stats: Dictionary of statistics to log
        logger_name: Optional logger name
        level: Log level
    """
    logger = logging.getLogger(logger_name) if logger_name else logging.getLogger()
    log_func = getattr(logger, level.lower(), logger.info)

    stats_str = " | ".join(f"{k}: {v}" for k, v in stats.items())
    log_func(f"📊 {title} | {stats_str}")


__all__ = [
    'init_safe_logging',
    'log_summary',
    'StructuredFormatter',
]

"""
Error and outcome monitoring for PayGate.

Every record is a single JSON line on the "paygate.monitor" logger with an
"event" field (error, outcome or performance). Counts live in process memory
and are exposed through the /monitoring endpoint; they reset on restart.
"""

import logging
import time
import json
import traceback
from collections import Counter
from typing import Dict, Any, Optional
from functools import wraps
from datetime import datetime, timezone
from paygate.core.exceptions import BaseAppError

# Operations slower than this are logged at WARNING
SLOW_OPERATION_SECONDS = 5.0


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ErrorMonitor:
    """Counts failures per type and writes them as structured log records."""

    def __init__(self, logger_name: str = "paygate.monitor"):
        self.logger = logging.getLogger(logger_name)
        self.counts: Counter = Counter()

    def _emit(self, level: int, event: str, **fields: Any):
        record = {"event": event, **fields, "timestamp": _utc_now()}
        self.logger.log(level, json.dumps(record, default=str))

    def log_error(self, error: Exception, context: Optional[Dict[str, Any]] = None):
        """
        Count an unexpected exception and log it.

        Application errors below 500 are expected rejections and are logged
        without a traceback.
        """
        error_type = type(error).__name__
        self.counts[error_type] += 1

        fields = {
            "error_id": f"{error_type}_{int(time.time())}",
            "error_type": error_type,
            "error_message": str(error),
            "context": context or {},
            "count": self.counts[error_type],
        }
        if not isinstance(error, BaseAppError) or error.http_status_code >= 500:
            fields["stack_trace"] = traceback.format_exc()

        self._emit(logging.ERROR, "error", **fields)

    def log_outcome(
        self,
        operation: str,
        success: bool,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Log a payment or refund result; failures are counted as outcome:<error_code>."""
        if not success and error_code:
            self.counts[f"outcome:{error_code}"] += 1

        self._emit(
            logging.INFO if success else logging.WARNING,
            "outcome",
            operation=operation,
            success=success,
            error_code=error_code,
            context=context or {},
        )

    def log_performance(self, operation: str, duration: float, context: Optional[Dict[str, Any]] = None):
        level = logging.WARNING if duration > SLOW_OPERATION_SECONDS else logging.INFO
        self._emit(level, "performance", operation=operation, duration=duration, context=context or {})

    def get_error_summary(self) -> Dict[str, Any]:
        return {
            "error_counts": dict(self.counts),
            "total_errors": sum(self.counts.values()),
            "timestamp": _utc_now(),
            "mode": "ephemeral",
        }

    def reset(self):
        self.counts.clear()


# Global error monitor instance
error_monitor = ErrorMonitor()


def monitor_errors(operation_name: Optional[str] = None):
    """
    Decorator for coroutine functions: logs their duration on success and
    counts and re-raises anything they raise.
    """
    def decorator(func):
        op_name = operation_name or f"{func.__module__}.{func.__name__}"

        @wraps(func)
        async def wrapper(*args, **kwargs):
            started = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                error_monitor.log_error(e, {"operation": op_name, "duration": time.perf_counter() - started})
                raise
            error_monitor.log_performance(op_name, time.perf_counter() - started)
            return result

        return wrapper

    return decorator


def setup_monitoring(level: str = "INFO"):
    """Send log records to stdout as bare messages at the given level."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        handlers=[logging.StreamHandler()],
    )

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        if not isinstance(handler, logging.StreamHandler):
            root_logger.removeHandler(handler)

    logging.getLogger("paygate.monitor").info(json.dumps({
        "event": "system_startup",
        "level": level.upper(),
        "timestamp": _utc_now(),
    }))

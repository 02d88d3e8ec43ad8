"""
Rate limiter for PayGate.

Route limits are callables so slowapi reads them from the loaded
configuration on each request; values from .env apply once load_config()
has run at startup.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from paygate.core.config import get_config

# Global rate limiter instance
limiter = Limiter(key_func=get_remote_address, default_limits=["100 per minute"])


def payment_rate_limit() -> str:
    return get_config().rate_limit.payment_rate_limit


def api_rate_limit() -> str:
    return get_config().rate_limit.api_rate_limit

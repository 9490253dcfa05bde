from .logger import setup_logging, get_logger, ContextLogger
from .request_queue import (
    Priority,
    PriorityRequestQueue,
    RateLimitedError,
    RetriesExhaustedError,
    QueueClosedError,
    is_rate_limited,
)
from .utcnow import utcnow

__all__ = [
    # Logger
    "setup_logging",
    "get_logger",
    "ContextLogger",

    # Request queue
    "Priority",
    "PriorityRequestQueue",
    "RateLimitedError",
    "RetriesExhaustedError",
    "QueueClosedError",
    "is_rate_limited",

    # Time
    "utcnow",
]

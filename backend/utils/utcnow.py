"""UTC helpers.

Database columns hold **naive** UTC datetimes; this is the single place
that produces them.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current UTC time as a naive (tzinfo=None) datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

from datetime import datetime, timezone


def utcnow() -> datetime:
    """
    Naive UTC timestamp, matching how timestamps are stored.

    Every datetime column is declared with sa_type=DateTime (no timezone),
    so values written and read back are naive UTC on every backend.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)

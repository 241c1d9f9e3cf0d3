from datetime import datetime, timezone
from uuid import uuid4


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_run_id() -> str:
    """Return a short random id used to correlate the log lines of one run"""
    return uuid4().hex[:12]

"""
Utility functions for the approval flow engine.

Includes:
- Serial number generation for instances and tasks
- Pagination helpers
- UTC datetime helpers
"""

import secrets
import string
from datetime import datetime, timezone
from typing import Optional

_SERIAL_ALPHABET = string.ascii_uppercase + string.digits


def utc_now() -> datetime:
    """Return the current UTC time as a **naive** datetime.

    Timestamp columns are stored without time zone, so every comparison
    in the engine is done in naive UTC.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_serial_no(prefix: str, now: Optional[datetime] = None) -> str:
    """
    Generate a human-readable serial number such as ``WF20260101K3J9QA``.

    Args:
        prefix: Short prefix (``WF`` for instances, ``TK`` for tasks)
        now: Timestamp to embed; defaults to the current UTC time

    Returns:
        Prefix + YYYYMMDD + 6 random alphanumeric characters
    """
    now = now or utc_now()
    suffix = "".join(secrets.choice(_SERIAL_ALPHABET) for _ in range(6))
    return f"{prefix}{now:%Y%m%d}{suffix}"


def seconds_between(start: Optional[datetime], end: datetime) -> Optional[int]:
    """Whole seconds elapsed between two naive UTC timestamps."""
    if start is None:
        return None
    return int((end - start).total_seconds())


def calculate_offset(page: int = 1, per_page: int = 20) -> int:
    """
    Calculate database offset from page and per_page values.

    Args:
        page: Page number (1-indexed)
        per_page: Items per page

    Returns:
        Offset for database queries
    """
    return (page - 1) * per_page

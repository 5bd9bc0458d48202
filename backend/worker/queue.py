"""Delayed-job queue over Celery.

``enqueue`` dispatches a Celery task with a start delay and a retry policy
(attempts + exponential backoff). The policy travels with the job as the
``retry_policy`` keyword so the task can apply it when it fails.

Recurring schedules are keyed entries in ``celery_app.conf.beat_schedule``
so a schedule can be replaced or removed by key and enumerated.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional, Union

from celery.schedules import crontab, schedule
from croniter import croniter

from core.exceptions import ValidationError
from core.utils import utc_now
from worker.celery_app import celery_app

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    attempts: int = 1
    backoff_seconds: float = 0

    def delay_for(self, retry_number: int) -> float:
        """Exponential backoff: base, 2*base, 4*base, ..."""
        return self.backoff_seconds * (2 ** retry_number)

    def to_dict(self) -> dict:
        return {"attempts": self.attempts, "backoff": self.backoff_seconds}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "RetryPolicy":
        data = data or {}
        return cls(
            attempts=int(data.get("attempts", 1)),
            backoff_seconds=float(data.get("backoff", 0)),
        )

    def can_retry(self, retries_so_far: int) -> bool:
        return retries_so_far + 1 < self.attempts


@dataclass
class EnqueuedJob:
    id: str
    name: str
    payload: dict
    delay: float
    policy: RetryPolicy


def crontab_from_string(expr: str) -> crontab:
    """Parse a standard 5-field cron expression into a Celery crontab.

    Fields: minute hour day_of_month month_of_year day_of_week
    """
    if not croniter.is_valid(expr):
        raise ValidationError(f"Invalid cron expression: {expr!r}")
    parts = expr.strip().split()
    return crontab(
        minute=parts[0],
        hour=parts[1],
        day_of_month=parts[2],
        month_of_year=parts[3],
        day_of_week=parts[4],
    )


class JobQueue:
    """Thin facade over Celery used by the timeout scheduler."""

    def __init__(self, app=None):
        self.app = app or celery_app

    # ─── One-off jobs ─────────────────────────────────────

    def enqueue(
        self,
        name: str,
        payload: dict,
        delay: float = 0,
        attempts: int = 1,
        backoff: float = 0,
    ) -> EnqueuedJob:
        """Dispatch task ``name`` with keyword ``payload`` after ``delay`` seconds."""
        policy = RetryPolicy(attempts=max(1, attempts), backoff_seconds=backoff)
        kwargs = {**payload, "retry_policy": policy.to_dict()}
        result = self.app.signature(name, kwargs=kwargs).apply_async(countdown=delay)
        logger.info(f"Enqueued {name} ({result.id}) in {delay}s: {payload}")
        return EnqueuedJob(id=result.id, name=name, payload=payload, delay=delay, policy=policy)

    # ─── Recurring schedules ──────────────────────────────

    def add_schedule(
        self,
        key: str,
        task: str,
        every_seconds: Optional[float] = None,
        cron: Optional[str] = None,
        args: Optional[list] = None,
        kwargs: Optional[dict] = None,
    ) -> dict:
        """Register (or replace) the recurring schedule stored under ``key``."""
        if (every_seconds is None) == (cron is None):
            raise ValidationError("Provide exactly one of every_seconds or cron")
        if every_seconds is not None and every_seconds <= 0:
            raise ValidationError("every_seconds must be positive")

        entry = {
            "task": task,
            "schedule": crontab_from_string(cron) if cron else timedelta(seconds=every_seconds),
            "args": list(args or []),
            "kwargs": dict(kwargs or {}),
        }
        replaced = key in self.app.conf.beat_schedule
        self.app.conf.beat_schedule[key] = entry
        logger.info(f"{'Replaced' if replaced else 'Added'} schedule {key} -> {task}")
        return entry

    def remove_schedule(self, key: str) -> bool:
        removed = self.app.conf.beat_schedule.pop(key, None) is not None
        if removed:
            logger.info(f"Removed schedule {key}")
        return removed

    def list_schedules(self, now: Optional[datetime] = None) -> list[dict[str, Any]]:
        """Active schedules with their next run time (naive UTC)."""
        now = now or utc_now()
        items = []
        for key, entry in sorted(self.app.conf.beat_schedule.items()):
            items.append(
                {
                    "key": key,
                    "task": entry["task"],
                    "schedule": _describe(entry["schedule"]),
                    "next_run_at": _next_run(entry["schedule"], now),
                }
            )
        return items


def _describe(value: Union[crontab, timedelta, schedule, float]) -> str:
    if isinstance(value, crontab):
        return " ".join(
            [
                str(value._orig_minute),
                str(value._orig_hour),
                str(value._orig_day_of_month),
                str(value._orig_month_of_year),
                str(value._orig_day_of_week),
            ]
        )
    if isinstance(value, schedule):
        return f"every {value.run_every.total_seconds():g}s"
    if isinstance(value, timedelta):
        return f"every {value.total_seconds():g}s"
    return f"every {float(value):g}s"


def _next_run(value, now: datetime) -> Optional[datetime]:
    if isinstance(value, crontab):
        return croniter(_describe(value), now).get_next(datetime)
    if isinstance(value, schedule):
        return now + value.run_every
    if isinstance(value, timedelta):
        return now + value
    if isinstance(value, (int, float)):
        return now + timedelta(seconds=value)
    return None

"""
Daily submission gate.

A worker may hold at most one pending or approved photo submission per task
per calendar day, measured from the worker's local midnight. A rejection
reopens the day for a resubmission.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .config import config
from .errors import ValidationError
from .ledger import REASON_ALREADY_APPROVED, REASON_AWAITING_REVIEW
from .logging import logger
from .models import SubmissionStatus

REASON_CHECK_UNAVAILABLE = 'unable to verify today\'s submissions, please retry'


@dataclass(frozen=True)
class GateDecision:
    allowed: bool
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {'allowed': self.allowed, 'reason': self.reason}


def resolve_timezone(tz_name: Optional[str]) -> ZoneInfo:
    name = tz_name or config.DEFAULT_TIMEZONE
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(f"Unknown timezone '{name}'") from e


def day_window(now: datetime, tz_name: Optional[str] = None) -> Tuple[int, int, str]:
    """
    Calendar day containing `now` in the submitter's timezone.

    Returns:
        (start_epoch, end_epoch, day_key) where the window is [start, end)
        and day_key is the local date as YYYY-MM-DD
    """
    tz = resolve_timezone(tz_name)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    local_now = now.astimezone(tz)
    midnight = datetime(local_now.year, local_now.month, local_now.day, tzinfo=tz)
    next_day = midnight.date() + timedelta(days=1)
    next_midnight = datetime(next_day.year, next_day.month, next_day.day, tzinfo=tz)

    return int(midnight.timestamp()), int(next_midnight.timestamp()), midnight.date().isoformat()


class SubmissionGate:
    """Decides whether a worker may submit task evidence right now."""

    def __init__(self, ledger):
        self.ledger = ledger

    def check(self, task_id: str, submitter_id: str, now: Optional[datetime] = None,
              tz_name: Optional[str] = None) -> GateDecision:
        """
        Check the one-per-day rule for (task, submitter).

        Lookup failures deny the submission: a duplicate is harder to
        reconcile later than a retried request.
        """
        now = now or datetime.now(timezone.utc)
        start, end, day_key = day_window(now, tz_name)

        try:
            todays = self.ledger.list_for_day(task_id, submitter_id, start, end)
        except Exception as e:
            logger.error(f"Gate lookup failed for task {task_id}, submitter {submitter_id}: {e}")
            return GateDecision(allowed=False, reason=REASON_CHECK_UNAVAILABLE)

        if not todays:
            return GateDecision(allowed=True)

        latest = max(todays, key=lambda s: s.submitted_at)

        if latest.status == SubmissionStatus.REJECTED:
            return GateDecision(allowed=True)

        if latest.status == SubmissionStatus.PENDING:
            reason = REASON_AWAITING_REVIEW
        else:
            reason = REASON_ALREADY_APPROVED

        logger.info(f"Gate denied task {task_id} for {submitter_id} on {day_key}: {reason}")
        return GateDecision(allowed=False, reason=reason)

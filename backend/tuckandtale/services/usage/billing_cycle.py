"""
Billing cycle calculations for Stories Plus subscribers.

A cycle runs from the subscription's anchor day in one month to the same day
in the next. Months without that day (the 31st in April) use their last day.
"""

import calendar
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...config import settings
from ...models import Content, GenerationStatus, UserProfile

logger = logging.getLogger(__name__)

COUNTED_STATUSES = (GenerationStatus.COMPLETE.value, GenerationStatus.TEXT_COMPLETE.value)


@dataclass
class BillingCycle:
    cycle_start: datetime
    cycle_end: datetime
    days_remaining: int


@dataclass
class StoriesRemaining:
    has_remaining: bool
    used: int
    limit: int
    remaining: int
    days_until_reset: int = 0


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _anchor(year: int, month: int, day: int) -> datetime:
    """Midnight on ``day`` of the month, clamped to the month's last day."""
    while month < 1:
        month += 12
        year -= 1
    while month > 12:
        month -= 12
        year += 1
    last_day = calendar.monthrange(year, month)[1]
    return datetime(year, month, min(day, last_day), tzinfo=timezone.utc)


def calculate_billing_cycle(
    subscription_starts_at: datetime,
    now: Optional[datetime] = None,
    use_exact_timestamp: bool = False,
) -> BillingCycle:
    """
    Cycle boundaries around ``now`` for a subscription anchored on
    ``subscription_starts_at``.

    With ``use_exact_timestamp`` the first cycle starts at the subscription
    timestamp itself instead of midnight, so stories written earlier that day
    (before subscribing) are not counted against it.
    """
    starts_at = _as_utc(subscription_starts_at)
    now = _as_utc(now or datetime.now(timezone.utc))
    anchor_day = starts_at.day

    cycle_start = _anchor(now.year, now.month, anchor_day)
    if cycle_start > now:
        cycle_start = _anchor(now.year, now.month - 1, anchor_day)

    if use_exact_timestamp:
        starts_midnight = starts_at.replace(hour=0, minute=0, second=0, microsecond=0)
        if cycle_start == starts_midnight:
            cycle_start = starts_at

    cycle_end = _anchor(now.year, now.month, anchor_day)
    if cycle_end <= now:
        cycle_end = _anchor(now.year, now.month + 1, anchor_day)

    days_remaining = math.ceil((cycle_end - now).total_seconds() / 86400)

    return BillingCycle(
        cycle_start=cycle_start,
        cycle_end=cycle_end,
        days_remaining=max(0, days_remaining),
    )


def get_current_billing_cycle(user: UserProfile, now: Optional[datetime] = None) -> Optional[BillingCycle]:
    """Current cycle for an active subscriber, None for everyone else."""
    if user is None or user.subscription_status != "active" or not user.subscription_starts_at:
        return None
    return calculate_billing_cycle(user.subscription_starts_at, now=now, use_exact_timestamp=True)


def stories_in_current_cycle(db: Session, user: UserProfile, now: Optional[datetime] = None) -> int:
    cycle = get_current_billing_cycle(user, now=now)
    if cycle is None:
        return 0

    count = (
        db.query(func.count(Content.id))
        .filter(
            Content.user_id == user.id,
            Content.content_type == "story",
            Content.generation_status.in_(COUNTED_STATUSES),
            Content.created_at >= cycle.cycle_start,
            Content.created_at < cycle.cycle_end,
            Content.deleted_at.is_(None),
        )
        .scalar()
    )
    return count or 0


def has_stories_remaining(db: Session, user: UserProfile, now: Optional[datetime] = None) -> StoriesRemaining:
    used = stories_in_current_cycle(db, user, now=now)
    limit = settings.subscription_monthly_limit
    remaining = max(0, limit - used)
    cycle = get_current_billing_cycle(user, now=now)

    return StoriesRemaining(
        has_remaining=remaining > 0,
        used=used,
        limit=limit,
        remaining=remaining,
        days_until_reset=cycle.days_remaining if cycle else 0,
    )


def format_reset_message(days_remaining: int) -> str:
    if days_remaining == 0:
        return "Resets today"
    if days_remaining == 1:
        return "Resets tomorrow"
    return f"Resets in {days_remaining} days"

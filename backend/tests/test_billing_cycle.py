"""Tests for billing cycle boundaries and the subscriber story count."""

from datetime import datetime, timedelta, timezone

import pytest

from tuckandtale.config import settings
from tuckandtale.models import Content, UserProfile
from tuckandtale.services.usage import billing_cycle


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class TestCalculateBillingCycle:
    def test_mid_cycle(self):
        cycle = billing_cycle.calculate_billing_cycle(utc(2026, 1, 10, 9, 0), now=utc(2026, 3, 20))

        assert cycle.cycle_start == utc(2026, 3, 10)
        assert cycle.cycle_end == utc(2026, 4, 10)
        assert cycle.days_remaining == 21

    def test_before_anchor_day_uses_previous_month(self):
        cycle = billing_cycle.calculate_billing_cycle(utc(2026, 1, 10), now=utc(2026, 3, 5))

        assert cycle.cycle_start == utc(2026, 2, 10)
        assert cycle.cycle_end == utc(2026, 3, 10)

    def test_month_end_anchor_clamps(self):
        cycle = billing_cycle.calculate_billing_cycle(utc(2026, 1, 31), now=utc(2026, 4, 15))

        assert cycle.cycle_start == utc(2026, 3, 31)
        assert cycle.cycle_end == utc(2026, 4, 30)
        assert cycle.days_remaining == 15

    def test_clamped_february(self):
        cycle = billing_cycle.calculate_billing_cycle(utc(2026, 1, 31), now=utc(2026, 2, 28, 12, 0))

        assert cycle.cycle_start == utc(2026, 2, 28)
        assert cycle.cycle_end == utc(2026, 3, 31)

    def test_year_rollover(self):
        cycle = billing_cycle.calculate_billing_cycle(utc(2025, 6, 20), now=utc(2026, 1, 5))

        assert cycle.cycle_start == utc(2025, 12, 20)
        assert cycle.cycle_end == utc(2026, 1, 20)

    def test_exact_timestamp_in_first_cycle(self):
        starts_at = utc(2026, 3, 10, 15, 30)

        first = billing_cycle.calculate_billing_cycle(starts_at, now=utc(2026, 3, 20), use_exact_timestamp=True)
        later = billing_cycle.calculate_billing_cycle(starts_at, now=utc(2026, 4, 12), use_exact_timestamp=True)

        assert first.cycle_start == starts_at
        assert later.cycle_start == utc(2026, 4, 10)

    def test_naive_datetimes_treated_as_utc(self):
        cycle = billing_cycle.calculate_billing_cycle(datetime(2026, 1, 10), now=datetime(2026, 3, 20))

        assert cycle.cycle_start == utc(2026, 3, 10)

    @pytest.mark.parametrize("days,message", [
        (0, "Resets today"),
        (1, "Resets tomorrow"),
        (12, "Resets in 12 days"),
    ])
    def test_reset_message(self, days, message):
        assert billing_cycle.format_reset_message(days) == message


class TestStoriesInCycle:
    @pytest.fixture
    def subscriber(self, db, catalog):
        user = db.query(UserProfile).filter(UserProfile.id == catalog.user_id).one()
        user.subscription_status = "active"
        user.subscription_tier_id = settings.tier_stories_plus
        user.subscription_starts_at = utc(2026, 1, 10)
        db.commit()
        return user

    def _story(self, db, user_id, created_at, status="complete", deleted_at=None, content_type="story"):
        db.add(Content(user_id=user_id, title="S", content_type=content_type, generation_status=status,
                       created_at=created_at, deleted_at=deleted_at))
        db.commit()

    def test_counts_only_current_cycle(self, db, subscriber):
        self._story(db, subscriber.id, utc(2026, 3, 11))
        self._story(db, subscriber.id, utc(2026, 3, 15), status="text_complete")
        self._story(db, subscriber.id, utc(2026, 3, 9))  # previous cycle
        self._story(db, subscriber.id, utc(2026, 3, 12), deleted_at=utc(2026, 3, 13))
        self._story(db, subscriber.id, utc(2026, 3, 12), content_type="poem")

        assert billing_cycle.stories_in_current_cycle(db, subscriber, now=utc(2026, 3, 20)) == 2

    def test_has_stories_remaining(self, db, subscriber, monkeypatch):
        monkeypatch.setattr(settings, "subscription_monthly_limit", 2)
        self._story(db, subscriber.id, utc(2026, 3, 11))

        result = billing_cycle.has_stories_remaining(db, subscriber, now=utc(2026, 3, 20))
        assert result.has_remaining
        assert (result.used, result.limit, result.remaining) == (1, 2, 1)
        assert result.days_until_reset == 21

        self._story(db, subscriber.id, utc(2026, 3, 12))

        result = billing_cycle.has_stories_remaining(db, subscriber, now=utc(2026, 3, 20))
        assert not result.has_remaining
        assert result.remaining == 0

    def test_no_cycle_without_active_subscription(self, db, catalog):
        user = db.query(UserProfile).filter(UserProfile.id == catalog.user_id).one()

        assert billing_cycle.get_current_billing_cycle(user) is None
        assert billing_cycle.stories_in_current_cycle(db, user) == 0

"""
Usage Ledger

Gate check before a story is generated, and the bookkeeping that follows a
successful completion.

Gate rules:
- Stories Plus subscribers may generate until their billing cycle holds
  ``subscription_monthly_limit`` stories.
- Everyone else follows the paywall ladder: credits, then the free first
  story, then "generate then paywall" for story 2 and any purchased preview
  slots, then a paywall before generation.

The debit operations run only after a story has been saved. Each is called
at most once per completion and never retried.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ...config import settings
from ...models import Content, GenerationUsage, UserProfile
from . import billing_cycle

logger = logging.getLogger(__name__)

SUBSCRIPTION_LIMIT_REACHED = "subscription_limit_reached"
PAYWALL_REQUIRED = "paywall_required"

BEHAVIOR_FREE = "free"
BEHAVIOR_GENERATE_THEN_PAYWALL = "generate_then_paywall"
BEHAVIOR_PAYWALL_BEFORE_GENERATE = "paywall_before_generate"

GENERATION_TYPE_ILLUSTRATED = "story_illustrated"
GENERATION_TYPE_TEXT = "story_text"


@dataclass
class PaywallBehavior:
    story_number: int
    behavior: str
    can_generate: bool
    has_credits: bool = False
    has_subscription: bool = False
    free_trial_used: bool = False


@dataclass
class GenerationCheck:
    allowed: bool
    reason: Optional[str] = None
    paywall_behavior: Optional[PaywallBehavior] = None
    billing_cycle: Dict[str, Any] = field(default_factory=dict)

    @property
    def message(self) -> str:
        """Text shown to the user when the gate rejects a request."""
        if self.reason == SUBSCRIPTION_LIMIT_REACHED:
            limit = self.billing_cycle.get("limit") or settings.subscription_monthly_limit
            days = self.billing_cycle.get("days_until_reset") or 0
            return f"You've used all {limit} stories this month. Your limit resets in {days} days."
        if self.reason == PAYWALL_REQUIRED:
            return "Payment required to generate this story"
        return "Story generation limit reached"


def current_month_year(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m")


class UsageLedger:
    def __init__(self, db: Session):
        self.db = db

    def _get_user(self, user_id: str) -> Optional[UserProfile]:
        return self.db.query(UserProfile).filter(UserProfile.id == user_id).first()

    @staticmethod
    def has_active_subscription(user: UserProfile) -> bool:
        return (
            user is not None
            and user.subscription_status == "active"
            and user.subscription_tier_id == settings.tier_stories_plus
        )

    # -------------------------------------------------------------------------
    # Gate
    # -------------------------------------------------------------------------

    def get_paywall_behavior(self, user: UserProfile, include_illustrations: bool) -> PaywallBehavior:
        story_number = (user.total_stories_generated or 0) + 1
        free_trial_used = bool(user.free_trial_used)

        if self.has_active_subscription(user):
            # Monthly limit is checked separately against the billing cycle
            return PaywallBehavior(story_number, BEHAVIOR_FREE, True,
                                   has_subscription=True, free_trial_used=free_trial_used)

        if (user.generation_credits or 0) > 0:
            return PaywallBehavior(story_number, BEHAVIOR_FREE, True,
                                   has_credits=True, free_trial_used=free_trial_used)

        if story_number == 1 and not (include_illustrations and free_trial_used):
            return PaywallBehavior(story_number, BEHAVIOR_FREE, True, free_trial_used=free_trial_used)

        # Story 2, or story 1 with illustrations after the trial was spent
        if story_number <= 2:
            return PaywallBehavior(story_number, BEHAVIOR_GENERATE_THEN_PAYWALL, True,
                                   free_trial_used=free_trial_used)

        # Story 3+: only the preview slots the user has unlocked
        if story_number <= 2 + (user.purchased_story_count or 0):
            return PaywallBehavior(story_number, BEHAVIOR_GENERATE_THEN_PAYWALL, True,
                                   free_trial_used=free_trial_used)

        return PaywallBehavior(story_number, BEHAVIOR_PAYWALL_BEFORE_GENERATE, False,
                               free_trial_used=free_trial_used)

    def check_generation(self, user_id: str, include_illustrations: bool = True) -> GenerationCheck:
        """Decide whether ``user_id`` may start a new story right now."""
        user = self._get_user(user_id)
        if user is None:
            logger.warning(f"[USAGE] No profile for user {user_id}, requiring payment")
            return GenerationCheck(allowed=False, reason=PAYWALL_REQUIRED)

        behavior = self.get_paywall_behavior(user, include_illustrations)

        if behavior.has_subscription:
            stories = billing_cycle.has_stories_remaining(self.db, user)
            cycle_info = {
                "limit": stories.limit,
                "used": stories.used,
                "remaining": stories.remaining,
                "days_until_reset": stories.days_until_reset,
            }
            if not stories.has_remaining:
                logger.info(f"[USAGE] User {user_id} reached subscription limit ({stories.used}/{stories.limit})")
                return GenerationCheck(
                    allowed=False,
                    reason=SUBSCRIPTION_LIMIT_REACHED,
                    paywall_behavior=behavior,
                    billing_cycle=cycle_info,
                )
            return GenerationCheck(allowed=True, paywall_behavior=behavior, billing_cycle=cycle_info)

        if not behavior.can_generate:
            logger.info(f"[USAGE] User {user_id} needs to pay before story #{behavior.story_number}")
            return GenerationCheck(allowed=False, reason=PAYWALL_REQUIRED, paywall_behavior=behavior)

        return GenerationCheck(allowed=True, paywall_behavior=behavior)

    # -------------------------------------------------------------------------
    # Debits
    # -------------------------------------------------------------------------

    def increment_usage(self, user_id: str, include_illustrations: bool) -> int:
        """Bump this month's counter for the story type; returns the new count."""
        generation_type = GENERATION_TYPE_ILLUSTRATED if include_illustrations else GENERATION_TYPE_TEXT
        month_year = current_month_year()
        user = self._get_user(user_id)

        usage = (
            self.db.query(GenerationUsage)
            .filter(
                GenerationUsage.user_id == user_id,
                GenerationUsage.generation_type == generation_type,
                GenerationUsage.month_year == month_year,
            )
            .first()
        )
        if usage is None:
            usage = GenerationUsage(
                user_id=user_id,
                generation_type=generation_type,
                month_year=month_year,
                subscription_tier=user.subscription_tier_id if user else None,
                monthly_count=0,
            )
            self.db.add(usage)

        usage.monthly_count = (usage.monthly_count or 0) + 1
        usage.last_generated_at = datetime.now(timezone.utc)
        self.db.commit()

        logger.info(f"[USAGE] {generation_type} count for {user_id} in {month_year}: {usage.monthly_count}")
        return usage.monthly_count

    def increment_total_story_count(self, user_id: str) -> int:
        """Increment the lifetime story counter and return the new value."""
        user = self._get_user(user_id)
        if user is None:
            raise ValueError(f"User profile not found: {user_id}")

        user.total_stories_generated = (user.total_stories_generated or 0) + 1
        self.db.commit()
        return user.total_stories_generated

    def consume_generation_credit(self, user_id: str) -> bool:
        """Spend one purchased credit. False when there is none to spend."""
        user = self._get_user(user_id)
        if user is None or (user.generation_credits or 0) <= 0:
            logger.warning(f"[USAGE] No generation credit to consume for user {user_id}")
            return False

        user.generation_credits -= 1
        self.db.commit()
        logger.info(f"[USAGE] Consumed credit for {user_id}, {user.generation_credits} left")
        return True

    def mark_free_trial_used(self, user_id: str):
        user = self._get_user(user_id)
        if user is not None and not user.free_trial_used:
            user.free_trial_used = True
            self.db.commit()

    def mark_story_requires_paywall(self, story_id: str):
        content = self.db.query(Content).filter(Content.id == story_id).first()
        if content is None:
            raise ValueError(f"Story not found: {story_id}")
        content.requires_paywall = True
        self.db.commit()
        logger.info(f"[USAGE] Story {story_id} now requires paywall")

    def record_completion(
        self,
        user_id: str,
        story_id: str,
        include_illustrations: bool,
        check: GenerationCheck,
        use_credit: bool = False,
    ) -> int:
        """
        Apply every post-completion debit for one saved story.

        Returns the user's new lifetime story count.
        """
        behavior = check.paywall_behavior or PaywallBehavior(0, BEHAVIOR_FREE, True)

        self.increment_usage(user_id, include_illustrations)
        new_count = self.increment_total_story_count(user_id)

        if use_credit and behavior.has_credits:
            self.consume_generation_credit(user_id)

        if include_illustrations and not behavior.free_trial_used:
            self.mark_free_trial_used(user_id)

        if new_count == 2 and not behavior.has_subscription:
            self.mark_story_requires_paywall(story_id)

        return new_count

"""
Paywall API Endpoints

GET /api/paywall/check-generation: what happens if the user starts a story now
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
import logging

from ..database import get_db
from ..dependencies import get_current_user
from ..models import UserProfile
from ..services.usage import billing_cycle
from ..services.usage.usage_ledger import BEHAVIOR_PAYWALL_BEFORE_GENERATE, UsageLedger

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/check-generation")
async def check_generation(
    include_illustrations: bool = Query(True, alias="includeIllustrations"),
    current_user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Paywall and usage status for the current user's next story."""
    ledger = UsageLedger(db)
    check = ledger.check_generation(current_user.id, include_illustrations)
    behavior = ledger.get_paywall_behavior(current_user, include_illustrations)

    has_subscription = ledger.has_active_subscription(current_user)
    stories = billing_cycle.has_stories_remaining(db, current_user) if has_subscription else None

    return {
        # Paywall info
        "requiresPaywall": behavior.behavior == BEHAVIOR_PAYWALL_BEFORE_GENERATE,
        "paywallBehavior": behavior.behavior,
        "storyNumber": behavior.story_number,
        "hasCredits": behavior.has_credits,
        "hasSubscription": has_subscription,
        "freeTrialAvailable": not behavior.free_trial_used,

        # Gate result
        "canGenerate": check.allowed,
        "reason": check.reason,
        "message": None if check.allowed else check.message,

        # Usage for subscribers
        "storiesUsedThisMonth": stories.used if stories else None,
        "storiesRemaining": stories.remaining if stories else None,
        "monthlyLimit": stories.limit if stories else None,
        "daysUntilReset": stories.days_until_reset if stories else None,
        "resetMessage": billing_cycle.format_reset_message(stories.days_until_reset) if stories else None,

        # Credits for non-subscribers
        "generationCredits": current_user.generation_credits or 0,
    }

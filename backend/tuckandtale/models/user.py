from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.sql import func
from ..database import Base
import uuid


class UserProfile(Base):
    """Account-level story counters and subscription state.

    The row id is the auth provider's user id (the JWT ``sub`` claim).
    """
    __tablename__ = "user_profiles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, index=True)
    full_name = Column(String(100))

    # Subscription
    subscription_status = Column(String(30), default="inactive")  # active, trialing, canceled, inactive
    subscription_tier_id = Column(String(50), default="tier_free")
    subscription_starts_at = Column(DateTime(timezone=True), nullable=True)

    # Lifetime story counters (across all engines)
    total_stories_generated = Column(Integer, default=0, nullable=False)
    free_trial_used = Column(Boolean, default=False, nullable=False)
    generation_credits = Column(Integer, default=0, nullable=False)  # Single-story purchases
    purchased_story_count = Column(Integer, default=0, nullable=False)  # Unlocked preview slots

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<UserProfile(id={self.id}, email='{self.email}')>"

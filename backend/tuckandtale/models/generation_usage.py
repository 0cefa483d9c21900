from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from ..database import Base
import uuid


class GenerationUsage(Base):
    """Monthly generation counter for one user and generation type."""
    __tablename__ = "generation_usage"
    __table_args__ = (
        UniqueConstraint("user_id", "generation_type", "month_year", name="uq_generation_usage_month"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("user_profiles.id"), nullable=False, index=True)
    generation_type = Column(String(30), nullable=False)  # story_illustrated, story_text
    month_year = Column(String(7), nullable=False)  # YYYY-MM
    subscription_tier = Column(String(50))
    monthly_count = Column(Integer, default=0, nullable=False)
    last_generated_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<GenerationUsage(user_id={self.user_id}, type='{self.generation_type}', month='{self.month_year}', count={self.monthly_count})>"

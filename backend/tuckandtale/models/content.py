from sqlalchemy import Column, String, Text, DateTime, Boolean, ForeignKey, JSON
from sqlalchemy.sql import func
from ..database import Base
import enum
import uuid


class GenerationStatus(str, enum.Enum):
    TEXT_COMPLETE = "text_complete"  # Waiting on illustrations
    COMPLETE = "complete"


class Content(Base):
    __tablename__ = "content"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("user_profiles.id"), nullable=False, index=True)
    content_type = Column(String(30), nullable=False, default="story")

    title = Column(String(255), nullable=False)
    body = Column(Text)  # Paragraphs joined with blank lines
    theme = Column(String(100))
    age_appropriate_for = Column(JSON, default=[])

    generation_prompt = Column(Text)
    generation_metadata = Column(JSON, default={})
    include_illustrations = Column(Boolean, default=False)
    engine_version = Column(String(10), default="v3")
    generation_status = Column(String(30), default=GenerationStatus.COMPLETE.value)

    # Paywall
    requires_paywall = Column(Boolean, default=False, nullable=False)
    is_unlocked = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Content(id={self.id}, title='{self.title}', status='{self.generation_status}')>"

from sqlalchemy import Column, Integer, String, Text, Boolean, JSON
from ..database import Base
import enum
import uuid


class ParameterCategory(str, enum.Enum):
    GENRE = "genre"
    TONE = "tone"
    LENGTH = "length"
    GROWTH_TOPIC = "growth_topic"
    MORAL_LESSON = "moral_lesson"


class StoryParameter(Base):
    """Catalog row for a selectable story option (genre, tone, length, ...)."""
    __tablename__ = "story_parameters"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    category = Column(String(30), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    display_name = Column(String(100), nullable=False)
    description = Column(Text)
    # "metadata" is reserved on declarative classes
    parameter_metadata = Column("metadata", JSON, default={})
    sort_order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)

    def __repr__(self):
        return f"<StoryParameter(id={self.id}, category='{self.category}', name='{self.name}')>"

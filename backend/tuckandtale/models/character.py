from sqlalchemy import Column, String, Text, DateTime, ForeignKey, JSON
from sqlalchemy.sql import func
from ..database import Base
import uuid


class CharacterProfile(Base):
    __tablename__ = "character_profiles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("user_profiles.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    character_type = Column(String(50), nullable=False)  # child, pet, storybook_character, magical_creature
    appearance_description = Column(Text)

    # Descriptor selections (age, gender, hair, etc.)
    attributes = Column(JSON, default={})

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<CharacterProfile(id={self.id}, name='{self.name}', type='{self.character_type}')>"

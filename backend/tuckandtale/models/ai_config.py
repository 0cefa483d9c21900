from sqlalchemy import Column, String, Boolean, Float, JSON
from ..database import Base
import uuid


class AIConfig(Base):
    """Model configuration for one generation purpose (story_fun, story_growth, ...)."""
    __tablename__ = "ai_configs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(100), nullable=False, unique=True)
    purpose = Column(String(50), nullable=False, index=True)
    provider = Column(String(50), nullable=False, default="openai")
    model_id = Column(String(100), nullable=False)
    model_name = Column(String(100), nullable=False)

    # Sampling settings: temperature, top_p, frequency_penalty, presence_penalty, max_tokens
    settings = Column(JSON, default={})
    cost_per_generation = Column(Float, default=0.0)

    is_active = Column(Boolean, default=True)
    is_default = Column(Boolean, default=False)

    def __repr__(self):
        return f"<AIConfig(name='{self.name}', purpose='{self.purpose}', model='{self.model_id}')>"

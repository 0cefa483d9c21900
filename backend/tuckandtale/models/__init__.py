# Import Base from database first
from ..database import Base

# Import all models to ensure they're registered with SQLAlchemy
from .user import UserProfile
from .character import CharacterProfile
from .story_parameter import StoryParameter, ParameterCategory
from .ai_config import AIConfig
from .content import Content, GenerationStatus
from .cost_log import ApiCostLog, ProcessingStatus
from .generation_usage import GenerationUsage

__all__ = [
    "Base",
    "UserProfile",
    "CharacterProfile",
    "StoryParameter", "ParameterCategory",
    "AIConfig",
    "Content", "GenerationStatus",
    "ApiCostLog", "ProcessingStatus",
    "GenerationUsage",
]

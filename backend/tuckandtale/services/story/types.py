"""Request-scoped data types for V3 story generation."""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

LENGTHS = ("short", "medium", "long")


@dataclass
class CharacterInfo:
    id: str
    name: str
    character_type: str
    appearance_description: str = ""
    age: Optional[int] = None
    role: str = "friend"
    relationship: Optional[str] = None  # e.g. "Emma's brother"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "characterType": self.character_type,
            "appearanceDescription": self.appearance_description,
            "age": self.age,
            "role": self.role,
            "relationship": self.relationship,
        }


@dataclass
class StoryParameterInfo:
    id: str
    name: str
    display_name: str
    description: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GenerationRequest:
    mode: str
    characters: List[CharacterInfo]
    genre: StoryParameterInfo
    tone: StoryParameterInfo
    length: StoryParameterInfo
    growth_topic: Optional[StoryParameterInfo] = None
    moral_lesson: Optional[StoryParameterInfo] = None
    custom_instructions: Optional[str] = None

    @property
    def hero(self) -> CharacterInfo:
        return next((c for c in self.characters if c.role == "hero"), self.characters[0])


@dataclass
class StoryDocument:
    """The strictly parsed upstream response."""
    title: str
    paragraphs: List[str]
    moral: Optional[str] = None


@dataclass
class V3Paragraph:
    id: str
    text: str


@dataclass
class V3Story:
    title: str
    length: str
    paragraphs: List[V3Paragraph]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

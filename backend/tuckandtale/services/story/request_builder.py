"""
Generation Request Builder

Hydrates the ids a client sends (hero, supporting characters, catalog
parameters) into a GenerationRequest ready for prompt assembly.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ...models import CharacterProfile, StoryParameter
from .errors import CharacterNotFoundError, MissingParameterError
from .types import CharacterInfo, GenerationRequest, StoryParameterInfo

logger = logging.getLogger(__name__)

ROLE_BY_CHARACTER_TYPE = {
    "child": "friend",
    "pet": "pet",
    "storybook_character": "sidekick",
    "magical_creature": "friend",
}

SIBLING_LABELS = {
    "male": "brother",
    "female": "sister",
}


def infer_role(character_type: str) -> str:
    """Role for a supporting character, based on its type."""
    return ROLE_BY_CHARACTER_TYPE.get(character_type, "friend")


def _parse_age(attributes: Dict[str, Any]) -> Optional[int]:
    age = (attributes or {}).get("age")
    if age is None or age == "":
        return None
    try:
        return int(age)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring non-numeric character age: {age!r}")
        return None


class GenerationRequestBuilder:
    def __init__(self, db: Session, user_id: str):
        self.db = db
        self.user_id = user_id

    def build_request(self, params: Dict[str, Any]) -> GenerationRequest:
        """
        Build a GenerationRequest from validated request params.

        Args:
            params: dict with heroId, characterIds, mode, genreId, toneId, lengthId,
                growthTopicId, moralLessonId, customInstructions

        Raises:
            CharacterNotFoundError: hero id does not resolve
            MissingParameterError: genre, tone or length does not resolve
        """
        characters = self.fetch_characters(params["heroId"], params.get("characterIds") or [])

        parameter_ids = [
            params.get("genreId"),
            params.get("toneId"),
            params.get("lengthId"),
            params.get("growthTopicId"),
            params.get("moralLessonId"),
        ]
        parameter_ids = list({pid for pid in parameter_ids if pid})

        rows = self.db.query(StoryParameter).filter(StoryParameter.id.in_(parameter_ids)).all()
        by_id = {row.id: row for row in rows}

        genre = by_id.get(params.get("genreId"))
        tone = by_id.get(params.get("toneId"))
        length = by_id.get(params.get("lengthId"))

        if not genre or not tone or not length:
            missing = [
                name for name, row in (("genre", genre), ("tone", tone), ("length", length))
                if row is None
            ]
            logger.warning(f"[REQUEST_BUILDER] Missing story parameters: {missing}")
            raise MissingParameterError("Required story parameters not found")

        growth_topic = by_id.get(params.get("growthTopicId")) if params.get("growthTopicId") else None
        moral_lesson = by_id.get(params.get("moralLessonId")) if params.get("moralLessonId") else None

        return GenerationRequest(
            mode=params["mode"],
            characters=characters,
            genre=self._to_parameter_info(genre),
            tone=self._to_parameter_info(tone),
            length=self._to_parameter_info(length),
            growth_topic=self._to_parameter_info(growth_topic) if growth_topic else None,
            moral_lesson=self._to_parameter_info(moral_lesson) if moral_lesson else None,
            custom_instructions=params.get("customInstructions") or None,
        )

    def fetch_characters(self, hero_id: str, character_ids: List[str]) -> List[CharacterInfo]:
        """Fetch hero and supporting characters in one query, hero first.

        Only the requesting user's own characters are loaded; ids owned by
        anyone else behave as if they did not exist.
        """
        all_ids = [cid for cid in [hero_id, *character_ids] if cid]
        profiles = (
            self.db.query(CharacterProfile)
            .filter(
                CharacterProfile.id.in_(all_ids),
                CharacterProfile.user_id == self.user_id,
            )
            .all()
        )
        by_id = {profile.id: profile for profile in profiles}

        hero_profile = by_id.get(hero_id)
        if hero_profile is None:
            raise CharacterNotFoundError(f"Hero character not found: {hero_id}")

        characters = [self._to_character_info(hero_profile, role="hero")]
        for character_id in character_ids:
            if character_id == hero_id:
                continue
            profile = by_id.get(character_id)
            if profile is None:
                logger.warning(f"[REQUEST_BUILDER] Supporting character {character_id} not found, skipping")
                continue
            characters.append(self._to_character_info(profile, role=infer_role(profile.character_type)))

        self._label_siblings(characters, by_id)
        return characters

    def _label_siblings(self, characters: List[CharacterInfo], profiles: Dict[str, CharacterProfile]):
        children = [c for c in characters if c.character_type == "child"]
        if len(children) < 2:
            return

        first_name = children[0].name
        for child in children[1:]:
            gender = (profiles[child.id].attributes or {}).get("gender")
            child.relationship = f"{first_name}'s {SIBLING_LABELS.get(gender, 'sibling')}"

    @staticmethod
    def _to_character_info(profile: CharacterProfile, role: str) -> CharacterInfo:
        return CharacterInfo(
            id=profile.id,
            name=profile.name,
            character_type=profile.character_type,
            appearance_description=profile.appearance_description or "",
            age=_parse_age(profile.attributes),
            role=role,
        )

    @staticmethod
    def _to_parameter_info(row: StoryParameter) -> StoryParameterInfo:
        return StoryParameterInfo(
            id=row.id,
            name=row.name,
            display_name=row.display_name,
            description=row.description,
            metadata=row.parameter_metadata or {},
        )

"""
Story completion: strict parse, validation and persistence.

The incremental parse is only used to show text early. Once the upstream
stream has finished, the whole buffer is parsed again with ``json.loads`` and
validated here; only a document that passes is ever saved.
"""

import json
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models import Content, GenerationStatus
from .errors import EmptyGenerationError, MalformedGenerationError, PersistenceError
from .types import GenerationRequest, StoryDocument, V3Paragraph, V3Story, LENGTHS

logger = logging.getLogger(__name__)

ENGINE_VERSION = "v3"
DEFAULT_HERO_AGE = 6


def _first_value_wins(pairs):
    # Matches the streamed view, which only ever shows the first occurrence
    data: Dict[str, Any] = {}
    for key, value in pairs:
        data.setdefault(key, value)
    return data


def parse_story_document(raw: str) -> StoryDocument:
    """Strictly parse and validate the complete upstream response."""
    if not raw or not raw.strip():
        raise EmptyGenerationError()

    try:
        data = json.loads(raw, object_pairs_hook=_first_value_wins)
    except json.JSONDecodeError as e:
        raise MalformedGenerationError(f"Failed to parse story: {e}")

    if not isinstance(data, dict):
        raise MalformedGenerationError("Failed to parse story: response is not a JSON object")

    title = data.get("title")
    paragraphs = data.get("paragraphs")

    if not isinstance(title, str) or not title.strip():
        raise MalformedGenerationError("Invalid story response: missing title or paragraphs")
    if not isinstance(paragraphs, list) or len(paragraphs) == 0:
        raise MalformedGenerationError("Invalid story response: missing title or paragraphs")
    if not all(isinstance(p, str) for p in paragraphs):
        raise MalformedGenerationError("Invalid story response: paragraphs must be strings")

    moral = data.get("moral")
    if moral is not None and not isinstance(moral, str):
        logger.warning(f"[COMPLETION] Ignoring non-string moral of type {type(moral).__name__}")
        moral = None

    return StoryDocument(title=title, paragraphs=paragraphs, moral=moral)


def transform_to_v3_story(document: StoryDocument, length_name: str) -> V3Story:
    length = (length_name or "").lower()
    if length not in LENGTHS:
        length = "medium"
    return V3Story(
        title=document.title,
        length=length,
        paragraphs=[
            V3Paragraph(id=f"p{index + 1}", text=text.strip())
            for index, text in enumerate(document.paragraphs)
        ],
    )


def build_generation_metadata(
    story: V3Story,
    document: StoryDocument,
    request: GenerationRequest,
    include_illustrations: bool,
    config_name: str = "v3_generation_stream",
) -> Dict[str, Any]:
    return {
        "v3_story": story.to_dict(),
        "mode": request.mode,
        "genre_display": request.genre.display_name,
        "tone_display": request.tone.display_name,
        "length_display": request.length.display_name,
        "growth_topic_display": request.growth_topic.display_name if request.growth_topic else None,
        "moral": document.moral,
        "paragraphs": [p.text for p in story.paragraphs],
        "characters": [c.to_dict() for c in request.characters],
        "include_illustrations": include_illustrations,
        "ai_config_name": config_name,
    }


def save_story(
    db: Session,
    user_id: str,
    story: V3Story,
    document: StoryDocument,
    request: GenerationRequest,
    prompt: str,
    include_illustrations: bool,
    config_name: Optional[str] = None,
) -> str:
    """Insert the content row for a finished story and return its id."""
    hero_age = request.hero.age or DEFAULT_HERO_AGE
    generation_status = (
        GenerationStatus.TEXT_COMPLETE if include_illustrations else GenerationStatus.COMPLETE
    )

    content = Content(
        user_id=user_id,
        content_type="story",
        title=story.title,
        body="\n\n".join(p.text for p in story.paragraphs),
        theme=request.genre.name,
        age_appropriate_for=[hero_age, hero_age + 1, hero_age + 2],
        generation_prompt=prompt,
        generation_metadata=build_generation_metadata(
            story, document, request, include_illustrations,
            config_name or "v3_generation_stream",
        ),
        include_illustrations=include_illustrations,
        engine_version=ENGINE_VERSION,
        generation_status=generation_status.value,
    )

    try:
        db.add(content)
        db.commit()
        db.refresh(content)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[COMPLETION] Error saving story for user {user_id}: {e}", exc_info=True)
        raise PersistenceError(f"Failed to save story: {e}")

    logger.info(f"[COMPLETION] Saved story {content.id} ({len(story.paragraphs)} paragraphs, status={generation_status.value})")
    return content.id

"""Lookup of AIConfig rows by purpose."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models import AIConfig

logger = logging.getLogger(__name__)

STORY_PURPOSES = {
    "fun": "story_fun",
    "growth": "story_growth",
}


def purpose_for_mode(mode: str) -> str:
    return STORY_PURPOSES.get(mode, STORY_PURPOSES["fun"])


def get_default_config(db: Session, purpose: str) -> Optional[AIConfig]:
    """Active default config for a purpose, or None when none is configured."""
    config = (
        db.query(AIConfig)
        .filter(
            AIConfig.purpose == purpose,
            AIConfig.is_active == True,  # noqa: E712
            AIConfig.is_default == True,  # noqa: E712
        )
        .first()
    )
    if config is None:
        logger.error(f"No default AI config for purpose '{purpose}'")
    return config


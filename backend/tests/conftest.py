"""Shared fixtures: in-memory database and a small seeded catalog."""

import os
import sys
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tuckandtale.config import settings
from tuckandtale.database import Base
from tuckandtale.models import (
    AIConfig,
    CharacterProfile,
    ParameterCategory,
    StoryParameter,
    UserProfile,
)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def provider_key(monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", "sk-test")
    monkeypatch.setattr(settings, "text_provider_backend", "http")
    monkeypatch.setattr(settings, "prompt_debug", False)


@pytest.fixture
def catalog(db):
    """One user with three characters, a parameter catalog and both AI configs."""
    user = UserProfile(id="user-1", email="parent@example.com", full_name="Parent")
    db.add(user)

    db.add_all([
        CharacterProfile(id="h1", user_id="user-1", name="Emma", character_type="child",
                         appearance_description="A six-year-old girl with curly red hair",
                         attributes={"age": "6", "gender": "female"}),
        CharacterProfile(id="c2", user_id="user-1", name="Leo", character_type="child",
                         attributes={"age": "4", "gender": "male"}),
        CharacterProfile(id="c3", user_id="user-1", name="Biscuit", character_type="pet",
                         appearance_description="A scruffy brown terrier"),
    ])

    db.add_all([
        StoryParameter(id="g1", category=ParameterCategory.GENRE.value, name="adventure",
                       display_name="Adventure", description="An exciting journey"),
        StoryParameter(id="t1", category=ParameterCategory.TONE.value, name="cozy",
                       display_name="Cozy", description="Warm and calm"),
        StoryParameter(id="l1", category=ParameterCategory.LENGTH.value, name="Medium",
                       display_name="Medium", parameter_metadata={"word_count_min": 400, "word_count_max": 600}),
        StoryParameter(id="l-short", category=ParameterCategory.LENGTH.value, name="short",
                       display_name="Short", parameter_metadata={"wordsMin": 300, "wordsMax": 420}),
        StoryParameter(id="gt1", category=ParameterCategory.GROWTH_TOPIC.value, name="sharing",
                       display_name="Sharing", description="Taking turns with toys"),
        StoryParameter(id="m1", category=ParameterCategory.MORAL_LESSON.value, name="kindness",
                       display_name="Kindness", description="Small kind acts matter"),
    ])

    db.add_all([
        AIConfig(name="v3_story_fun", purpose="story_fun", provider="openai", model_id="gpt-4o-mini",
                 model_name="GPT-4o mini", settings={"temperature": 0.9}, is_active=True, is_default=True),
        AIConfig(name="v3_story_growth", purpose="story_growth", provider="openai", model_id="gpt-4o-mini",
                 model_name="GPT-4o mini", settings={}, is_active=True, is_default=True),
    ])
    db.commit()

    return SimpleNamespace(user_id="user-1", hero_id="h1", brother_id="c2", pet_id="c3")


@pytest.fixture
def other_family(db, catalog):
    """A second user whose character must stay out of user-1's stories."""
    db.add(UserProfile(id="user-2", email="other@example.com", full_name="Other Parent"))
    db.add(CharacterProfile(id="x1", user_id="user-2", name="Stranger", character_type="child",
                            appearance_description="Someone else's kid", attributes={"age": "7"}))
    db.commit()
    return SimpleNamespace(user_id="user-2", character_id="x1")


def story_params(**overrides):
    """A valid camelCase request body."""
    params = {
        "heroId": "h1",
        "characterIds": [],
        "mode": "fun",
        "genreId": "g1",
        "toneId": "t1",
        "lengthId": "l1",
        "growthTopicId": None,
        "moralLessonId": None,
        "customInstructions": None,
        "includeIllustrations": None,
        "useCredit": False,
    }
    params.update(overrides)
    return params

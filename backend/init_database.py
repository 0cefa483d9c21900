#!/usr/bin/env python3
"""
Initialize the Tuck and Tale database: create all tables and seed the story
parameter catalog and the default AI configs.
"""
import sys
from pathlib import Path

# Add backend directory to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))

from sqlalchemy import inspect
from sqlalchemy.orm import Session

from tuckandtale.database import Base, engine
from tuckandtale.models import AIConfig, ParameterCategory, StoryParameter

DEFAULT_PARAMETERS = [
    # (category, name, display_name, description, metadata)
    (ParameterCategory.GENRE, "adventure", "Adventure", "An exciting journey with something to discover", {}),
    (ParameterCategory.GENRE, "fantasy", "Fantasy", "Magic and wonder grounded in real sensory detail", {}),
    (ParameterCategory.GENRE, "mystery", "Gentle Mystery", "A small puzzle solved by noticing clues", {}),
    (ParameterCategory.GENRE, "everyday", "Everyday Life", "Home, school and family moments", {}),
    (ParameterCategory.TONE, "funny", "Funny", "Playful and silly with light humor", {}),
    (ParameterCategory.TONE, "cozy", "Cozy", "Warm, calm and comforting", {}),
    (ParameterCategory.TONE, "exciting", "Exciting", "Lively pacing with gentle suspense", {}),
    (ParameterCategory.LENGTH, "short", "Short", "About 3 minutes to read", {"word_count_min": 300, "word_count_max": 450}),
    (ParameterCategory.LENGTH, "medium", "Medium", "About 5 minutes to read", {"word_count_min": 400, "word_count_max": 600}),
    (ParameterCategory.LENGTH, "long", "Long", "About 8 minutes to read", {"word_count_min": 700, "word_count_max": 900}),
    (ParameterCategory.GROWTH_TOPIC, "sharing", "Sharing", "Taking turns and offering toys to others", {}),
    (ParameterCategory.GROWTH_TOPIC, "gentle_hands", "Gentle Hands", "Stopping, breathing, and using soft touches", {}),
    (ParameterCategory.GROWTH_TOPIC, "bedtime", "Going to Bed", "Following the bedtime routine calmly", {}),
    (ParameterCategory.MORAL_LESSON, "kindness", "Kindness", "Small kind acts make a big difference", {}),
    (ParameterCategory.MORAL_LESSON, "courage", "Courage", "Being brave even when you feel scared", {}),
]

DEFAULT_AI_CONFIGS = [
    {
        "name": "v3_story_fun",
        "purpose": "story_fun",
        "model_id": "gpt-4o-mini",
        "model_name": "GPT-4o mini",
        "settings": {"temperature": 0.8, "max_tokens": 2500, "top_p": 1.0,
                     "frequency_penalty": 0.3, "presence_penalty": 0.3},
    },
    {
        "name": "v3_story_growth",
        "purpose": "story_growth",
        "model_id": "gpt-4o-mini",
        "model_name": "GPT-4o mini",
        "settings": {"temperature": 0.7, "max_tokens": 2500, "top_p": 1.0,
                     "frequency_penalty": 0.3, "presence_penalty": 0.3},
    },
]


def seed_defaults(db: Session):
    """Insert catalog rows and AI configs that are not there yet."""
    added = 0
    for sort_order, (category, name, display_name, description, metadata) in enumerate(DEFAULT_PARAMETERS):
        exists = db.query(StoryParameter).filter(
            StoryParameter.category == category.value,
            StoryParameter.name == name,
        ).first()
        if exists:
            continue
        db.add(StoryParameter(
            category=category.value,
            name=name,
            display_name=display_name,
            description=description,
            parameter_metadata=metadata,
            sort_order=sort_order,
        ))
        added += 1

    for config in DEFAULT_AI_CONFIGS:
        if db.query(AIConfig).filter(AIConfig.name == config["name"]).first():
            continue
        db.add(AIConfig(provider="openai", is_active=True, is_default=True, **config))
        added += 1

    db.commit()
    return added


def init_database():
    """Initialize database with all tables."""
    existing_tables = inspect(engine).get_table_names()
    if existing_tables:
        print(f"Database already has {len(existing_tables)} tables: {', '.join(existing_tables)}")

    print("Creating missing tables...")
    Base.metadata.create_all(bind=engine)
    tables = inspect(engine).get_table_names()
    print(f"Tables: {', '.join(tables)}")

    db = Session(engine)
    try:
        added = seed_defaults(db)
        print(f"✓ Seeded {added} catalog rows and AI configs")
    except Exception as e:
        print(f"Error initializing database: {e}")
        db.rollback()
        raise
    finally:
        db.close()

    print(f"\n✅ Database initialized at: {engine.url}")


if __name__ == "__main__":
    init_database()

"""
Tests for story completion: strict parse, validation, transform and save.
"""

import json

import pytest

from tuckandtale.models import Content
from tuckandtale.services.story.completion import (
    parse_story_document,
    save_story,
    transform_to_v3_story,
)
from tuckandtale.services.story.errors import (
    EmptyGenerationError,
    MalformedGenerationError,
    PersistenceError,
)
from tuckandtale.services.story.projector import ParagraphEvent, StreamEventProjector, TitleEvent
from tuckandtale.services.story.request_builder import GenerationRequestBuilder
from tuckandtale.services.story.types import StoryDocument

from conftest import story_params


class TestParseStoryDocument:
    def test_valid_document(self):
        document = parse_story_document('{"title": "T", "paragraphs": ["a", "b"], "moral": "m"}')

        assert document == StoryDocument(title="T", paragraphs=["a", "b"], moral="m")

    def test_null_moral(self):
        document = parse_story_document('{"title": "T", "paragraphs": ["a"], "moral": null}')

        assert document.moral is None

    def test_non_string_moral_dropped(self):
        document = parse_story_document('{"title": "T", "paragraphs": ["a"], "moral": 42}')

        assert document.moral is None

    @pytest.mark.parametrize("raw", ["", "   ", "\n"])
    def test_empty_response_is_its_own_error(self, raw):
        with pytest.raises(EmptyGenerationError) as exc_info:
            parse_story_document(raw)

        assert "empty" in exc_info.value.message.lower()
        assert exc_info.value.kind == "empty_response"

    def test_truncated_document(self):
        with pytest.raises(MalformedGenerationError) as exc_info:
            parse_story_document('{"title": "T", "paragraphs": ["a", "unfinish')

        assert not isinstance(exc_info.value, EmptyGenerationError)
        assert exc_info.value.message.startswith("Failed to parse story")

    @pytest.mark.parametrize("raw", [
        '{"paragraphs": ["a"]}',
        '{"title": "", "paragraphs": ["a"]}',
        '{"title": "T", "paragraphs": []}',
        '{"title": "T"}',
        '{"title": "T", "paragraphs": "a"}',
    ])
    def test_missing_title_or_paragraphs(self, raw):
        with pytest.raises(MalformedGenerationError, match="missing title or paragraphs"):
            parse_story_document(raw)

    def test_paragraphs_must_be_strings(self):
        with pytest.raises(MalformedGenerationError):
            parse_story_document('{"title": "T", "paragraphs": ["a", 2]}')

    def test_array_document_rejected(self):
        with pytest.raises(MalformedGenerationError):
            parse_story_document('[{"title": "T"}]')


class TestDualParseConsistency:
    """Paragraphs shown while streaming match the strictly parsed document."""

    @pytest.mark.parametrize("size", [1, 6, 17])
    def test_streamed_paragraphs_match_final(self, size):
        raw = json.dumps({
            "title": "Moonbeam Wishes",
            "paragraphs": ["Emma ✨ looked up.", "Leo said \"wow\".", "They slept.\n"],
            "moral": None,
        })
        projector = StreamEventProjector()
        streamed = []
        for i in range(0, len(raw), size):
            streamed += [e.text for e in projector.feed(raw[i:i + size]) if isinstance(e, ParagraphEvent)]

        document = parse_story_document(projector.draft.raw_buffer)

        assert streamed == document.paragraphs

    @pytest.mark.parametrize("raw", [
        '{"title": "T", "paragraphs": ["a", "b"], "paragraphs": ["c"]}',
        '{"title": "T", "title": "Other", "paragraphs": ["a", "b"], "moral": "m", "moral": "n"}',
    ])
    def test_duplicate_keys_keep_first_value(self, raw):
        projector = StreamEventProjector()
        streamed = list(projector.feed(raw)) + list(projector.finish())

        document = parse_story_document(projector.draft.raw_buffer)

        assert [e.text for e in streamed if isinstance(e, ParagraphEvent)] == document.paragraphs == ["a", "b"]
        assert document.title == "T"
        assert [e.text for e in streamed if isinstance(e, TitleEvent)] == [document.title]


class TestTransform:
    def test_ids_and_trimming(self):
        story = transform_to_v3_story(StoryDocument("T", ["  one ", "two\n"]), "Short")

        assert story.length == "short"
        assert [(p.id, p.text) for p in story.paragraphs] == [("p1", "one"), ("p2", "two")]

    def test_unknown_length_falls_back_to_medium(self):
        story = transform_to_v3_story(StoryDocument("T", ["a"]), "epic")

        assert story.length == "medium"


class TestSaveStory:
    def _request(self, db, **overrides):
        return GenerationRequestBuilder(db, "user-1").build_request(story_params(**overrides))

    def test_saves_content_row(self, db, catalog):
        request = self._request(db)
        document = StoryDocument("The Brave Fox", ["One.", "Two."], moral="Be brave.")
        story = transform_to_v3_story(document, request.length.name)

        story_id = save_story(db, catalog.user_id, story, document, request, "PROMPT", include_illustrations=False)

        content = db.query(Content).filter(Content.id == story_id).one()
        assert content.title == "The Brave Fox"
        assert content.body == "One.\n\nTwo."
        assert content.theme == "adventure"
        assert content.age_appropriate_for == [6, 7, 8]
        assert content.generation_status == "complete"
        assert content.engine_version == "v3"
        assert content.generation_prompt == "PROMPT"
        assert content.requires_paywall is False

        metadata = content.generation_metadata
        assert metadata["v3_story"]["paragraphs"][0] == {"id": "p1", "text": "One."}
        assert metadata["moral"] == "Be brave."
        assert metadata["mode"] == "fun"
        assert metadata["genre_display"] == "Adventure"
        assert metadata["characters"][0]["name"] == "Emma"
        assert metadata["ai_config_name"] == "v3_generation_stream"

    def test_illustrated_story_waits_for_images(self, db, catalog):
        request = self._request(db)
        document = StoryDocument("T", ["a"])
        story = transform_to_v3_story(document, request.length.name)

        story_id = save_story(db, catalog.user_id, story, document, request, "P", include_illustrations=True)

        content = db.query(Content).filter(Content.id == story_id).one()
        assert content.generation_status == "text_complete"
        assert content.include_illustrations is True

    def test_default_age_without_hero_age(self, db, catalog):
        request = self._request(db)
        request.characters[0].age = None
        document = StoryDocument("T", ["a"])

        story_id = save_story(db, catalog.user_id, transform_to_v3_story(document, "medium"),
                              document, request, "P", include_illustrations=False)

        content = db.query(Content).filter(Content.id == story_id).one()
        assert content.age_appropriate_for == [6, 7, 8]

    def test_insert_failure_raises_persistence_error(self, db, catalog):
        request = self._request(db)
        document = StoryDocument("T", ["a"])
        story = transform_to_v3_story(document, "medium")
        # title is NOT NULL
        story.title = None

        with pytest.raises(PersistenceError, match="Failed to save story"):
            save_story(db, catalog.user_id, story, document, request, "P", include_illustrations=False)

        assert db.query(Content).count() == 0

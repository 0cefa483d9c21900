"""
Stream Event Projector

Folds tokenizer output into the three story events the client renders while
the story is being written: the title, each paragraph in order, and the moral.

Only top-level keys of the document are considered. The first ``title`` and
the first ``moral`` string win; later duplicates are ignored. Paragraph
indexes start at 0 and increase by one per array element.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Union

from .json_tokenizer import (
    DocumentEndToken,
    EndArrayToken,
    EndObjectToken,
    IncrementalJSONTokenizer,
    KeyToken,
    ScalarToken,
    StartArrayToken,
    StartObjectToken,
    StringToken,
    Token,
)

logger = logging.getLogger(__name__)


# =============================================================================
# EVENTS
# =============================================================================

@dataclass(frozen=True)
class TitleEvent:
    text: str

    def to_sse(self) -> Dict[str, Any]:
        return {"type": "title", "text": self.text}


@dataclass(frozen=True)
class ParagraphEvent:
    index: int
    text: str

    def to_sse(self) -> Dict[str, Any]:
        return {"type": "paragraph", "index": self.index, "text": self.text}


@dataclass(frozen=True)
class MoralEvent:
    text: str

    def to_sse(self) -> Dict[str, Any]:
        return {"type": "moral", "text": self.text}


StoryEvent = Union[TitleEvent, ParagraphEvent, MoralEvent]


# =============================================================================
# DRAFT STATE
# =============================================================================

class DraftState(str, enum.Enum):
    AWAITING_KEY = "awaiting_key"
    IN_TITLE = "in_title"
    IN_PARAGRAPHS = "in_paragraphs"  # After the "paragraphs" key, before or inside its array
    IN_MORAL = "in_moral"
    IN_OTHER = "in_other"  # Value of an unknown key, or a non-string title/moral
    DONE = "done"


@dataclass
class StreamingStoryDraft:
    """Per-request progress of an incrementally parsed story."""
    title_emitted: bool = False
    paragraph_index: int = 0
    moral_emitted: bool = False
    paragraphs_seen: bool = False  # Later "paragraphs" keys are ignored
    state: DraftState = DraftState.AWAITING_KEY
    paragraphs: List[str] = field(default_factory=list)
    tokenizer: IncrementalJSONTokenizer = field(default_factory=IncrementalJSONTokenizer)

    @property
    def raw_buffer(self) -> str:
        return self.tokenizer.raw_buffer


class StreamEventProjector:
    """Consumes tokens in order and yields story events."""

    def __init__(self, draft: StreamingStoryDraft = None):
        self.draft = draft or StreamingStoryDraft()
        self._depth = 0
        self._in_paragraph_array = False

    def feed(self, text: str) -> Iterator[StoryEvent]:
        """Tokenize a chunk and project the resulting tokens."""
        return self.project(self.draft.tokenizer.feed(text))

    def finish(self) -> Iterator[StoryEvent]:
        return self.project(self.draft.tokenizer.close())

    def project(self, tokens: Iterable[Token]) -> Iterator[StoryEvent]:
        for token in tokens:
            event = self._apply(token)
            if event is not None:
                yield event

    def _apply(self, token: Token):
        draft = self.draft

        if isinstance(token, StartObjectToken):
            self._depth += 1
            if self._depth == 2 and draft.state in (DraftState.IN_TITLE, DraftState.IN_MORAL):
                draft.state = DraftState.IN_OTHER
            return None

        if isinstance(token, StartArrayToken):
            self._depth += 1
            if self._depth == 2:
                if draft.state == DraftState.IN_PARAGRAPHS:
                    self._in_paragraph_array = True
                elif draft.state in (DraftState.IN_TITLE, DraftState.IN_MORAL):
                    draft.state = DraftState.IN_OTHER
            return None

        if isinstance(token, (EndObjectToken, EndArrayToken)):
            if isinstance(token, EndArrayToken) and self._depth == 2:
                self._in_paragraph_array = False
            self._depth -= 1
            if self._depth == 1:
                draft.state = DraftState.AWAITING_KEY
            elif self._depth == 0:
                draft.state = DraftState.DONE
            return None

        if isinstance(token, KeyToken):
            if self._depth == 1:
                if token.name == "paragraphs":
                    draft.state = DraftState.IN_OTHER if draft.paragraphs_seen else DraftState.IN_PARAGRAPHS
                    draft.paragraphs_seen = True
                    return None
                draft.state = {
                    "title": DraftState.IN_TITLE,
                    "moral": DraftState.IN_MORAL,
                }.get(token.name, DraftState.IN_OTHER)
            return None

        if isinstance(token, StringToken):
            if self._depth == 1:
                state = draft.state
                draft.state = DraftState.AWAITING_KEY
                if state == DraftState.IN_TITLE and not draft.title_emitted:
                    draft.title_emitted = True
                    return TitleEvent(token.value)
                if state == DraftState.IN_MORAL and not draft.moral_emitted:
                    draft.moral_emitted = True
                    return MoralEvent(token.value)
                return None
            if self._depth == 2 and self._in_paragraph_array:
                index = draft.paragraph_index
                draft.paragraph_index += 1
                draft.paragraphs.append(token.value)
                return ParagraphEvent(index, token.value)
            return None

        if isinstance(token, ScalarToken):
            if self._depth == 1:
                draft.state = DraftState.AWAITING_KEY
            return None

        if isinstance(token, DocumentEndToken):
            draft.state = DraftState.DONE
            return None

        return None

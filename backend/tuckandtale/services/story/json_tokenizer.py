"""
Incremental JSON Tokenizer

Push parser for a JSON object that arrives as an append-only text stream.
Chunks may split anywhere (inside strings, escapes or literals); each call to
``feed`` returns only the tokens that became unambiguously decodable.

The tokenizer is best-effort: on malformed input it stops emitting tokens and
records the error instead of raising. Whether the finished document is usable
is decided by the strict parse in ``completion.parse_story_document``.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Union

logger = logging.getLogger(__name__)


# =============================================================================
# TOKENS
# =============================================================================

@dataclass(frozen=True)
class StartObjectToken:
    pass


@dataclass(frozen=True)
class EndObjectToken:
    pass


@dataclass(frozen=True)
class StartArrayToken:
    pass


@dataclass(frozen=True)
class EndArrayToken:
    pass


@dataclass(frozen=True)
class KeyToken:
    name: str


@dataclass(frozen=True)
class StringToken:
    value: str


@dataclass(frozen=True)
class ScalarToken:
    """A number, ``true``, ``false`` or ``null``."""
    value: Any


@dataclass(frozen=True)
class DocumentEndToken:
    pass


Token = Union[
    StartObjectToken, EndObjectToken, StartArrayToken, EndArrayToken,
    KeyToken, StringToken, ScalarToken, DocumentEndToken,
]


# =============================================================================
# TOKENIZER
# =============================================================================

# Lexer modes
_PRELUDE = "prelude"  # Skipping anything before the opening brace
_VALUES = "values"    # Between tokens
_STRING = "string"    # Inside a string literal
_SCALAR = "scalar"    # Inside a number or literal name
_DONE = "done"
_FAILED = "failed"

# Container expectations
_KEY_OR_END = "key_or_end"
_KEY = "key"
_COLON = "colon"
_VALUE = "value"
_VALUE_OR_END = "value_or_end"
_COMMA_OR_END = "comma_or_end"

_WHITESPACE = " \t\r\n"
_SCALAR_CHARS = frozenset("0123456789+-.eEabcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ")
_STRING_SPECIAL = re.compile(r'["\\]')


class _Frame:
    __slots__ = ("kind", "expect")

    def __init__(self, kind: str, expect: str):
        self.kind = kind  # "object" or "array"
        self.expect = expect


class IncrementalJSONTokenizer:
    """
    Tokenize one JSON object from text chunks as they arrive.

    Usage::

        tokenizer = IncrementalJSONTokenizer()
        async for chunk in upstream:
            for token in tokenizer.feed(chunk):
                ...
        tokenizer.close()
        full_text = tokenizer.raw_buffer
    """

    def __init__(self):
        self._chunks: List[str] = []
        self._mode = _PRELUDE
        self._stack: List[_Frame] = []
        self._string_parts: List[str] = []
        self._escape_pending = False
        self._scalar_parts: List[str] = []
        self.error: Optional[str] = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def raw_buffer(self) -> str:
        """Everything fed so far, unmodified."""
        if len(self._chunks) > 1:
            self._chunks = ["".join(self._chunks)]
        return self._chunks[0] if self._chunks else ""

    @property
    def finished(self) -> bool:
        """True once the top-level object has been closed."""
        return self._mode == _DONE

    @property
    def failed(self) -> bool:
        return self._mode == _FAILED

    def feed(self, text: str) -> List[Token]:
        """Consume a chunk and return the tokens it completed."""
        if not text:
            return []
        self._chunks.append(text)

        tokens: List[Token] = []
        i = 0
        n = len(text)

        while i < n and self._mode not in (_DONE, _FAILED):
            if self._mode == _PRELUDE:
                start = text.find("{", i)
                if start == -1:
                    break
                i = start
                self._mode = _VALUES
                continue

            if self._mode == _STRING:
                i = self._scan_string(text, i, tokens)
                continue

            if self._mode == _SCALAR:
                i = self._scan_scalar(text, i, tokens)
                continue

            ch = text[i]
            if ch in _WHITESPACE:
                i += 1
            elif ch == '"':
                self._mode = _STRING
                self._string_parts = []
                self._escape_pending = False
                i += 1
            elif ch == "{":
                self._open("object", tokens)
                i += 1
            elif ch == "[":
                self._open("array", tokens)
                i += 1
            elif ch in "}]":
                self._close(ch, tokens)
                i += 1
            elif ch == ":":
                self._colon()
                i += 1
            elif ch == ",":
                self._comma()
                i += 1
            elif ch in _SCALAR_CHARS:
                if not self._expecting_value():
                    self._fail(f"unexpected literal at {ch!r}")
                    break
                self._mode = _SCALAR
                self._scalar_parts = []
            else:
                self._fail(f"unexpected character {ch!r}")

        return tokens

    def close(self) -> List[Token]:
        """Signal end of input. Returns any token completed by the end itself."""
        tokens: List[Token] = []
        if self._mode == _SCALAR:
            self._finish_scalar(tokens)
        if self._mode not in (_DONE, _FAILED):
            logger.debug(f"[JSON_TOKENIZER] Input ended before document was closed (mode={self._mode})")
        return tokens

    # -------------------------------------------------------------------------
    # Lexing helpers
    # -------------------------------------------------------------------------

    def _scan_string(self, text: str, i: int, tokens: List[Token]) -> int:
        n = len(text)
        if self._escape_pending:
            # The backslash ended the previous chunk
            self._string_parts.append(text[i])
            self._escape_pending = False
            i += 1

        while i < n:
            match = _STRING_SPECIAL.search(text, i)
            if match is None:
                self._string_parts.append(text[i:])
                return n

            pos = match.start()
            if pos > i:
                self._string_parts.append(text[i:pos])

            if text[pos] == '"':
                self._finish_string(tokens)
                return pos + 1

            # Backslash: keep the escape verbatim, json.loads decodes it later
            if pos + 1 < n:
                self._string_parts.append(text[pos:pos + 2])
                i = pos + 2
            else:
                self._string_parts.append("\\")
                self._escape_pending = True
                return n
        return n

    def _finish_string(self, tokens: List[Token]):
        raw = "".join(self._string_parts)
        self._string_parts = []
        self._mode = _VALUES
        try:
            value = json.loads(f'"{raw}"')
        except json.JSONDecodeError as e:
            self._fail(f"invalid string literal: {e}")
            return

        frame = self._stack[-1] if self._stack else None
        if frame and frame.kind == "object" and frame.expect in (_KEY_OR_END, _KEY):
            frame.expect = _COLON
            tokens.append(KeyToken(value))
        elif self._expecting_value():
            self._value_done()
            tokens.append(StringToken(value))
        else:
            self._fail("string in unexpected position")

    def _scan_scalar(self, text: str, i: int, tokens: List[Token]) -> int:
        n = len(text)
        start = i
        while i < n and text[i] in _SCALAR_CHARS:
            i += 1
        self._scalar_parts.append(text[start:i])
        if i < n:
            # A delimiter ends the literal; leave it for the main loop
            self._finish_scalar(tokens)
        return i

    def _finish_scalar(self, tokens: List[Token]):
        raw = "".join(self._scalar_parts)
        self._scalar_parts = []
        self._mode = _VALUES
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            self._fail(f"invalid literal {raw!r}")
            return
        self._value_done()
        tokens.append(ScalarToken(value))

    # -------------------------------------------------------------------------
    # Structure helpers
    # -------------------------------------------------------------------------

    def _expecting_value(self) -> bool:
        if not self._stack:
            return False
        frame = self._stack[-1]
        if frame.kind == "object":
            return frame.expect == _VALUE
        return frame.expect in (_VALUE, _VALUE_OR_END)

    def _value_done(self):
        if self._stack:
            self._stack[-1].expect = _COMMA_OR_END

    def _open(self, kind: str, tokens: List[Token]):
        if self._stack and not self._expecting_value():
            self._fail(f"unexpected {kind} start")
            return
        if not self._stack and kind != "object":
            self._fail("top-level value must be an object")
            return
        if kind == "object":
            self._stack.append(_Frame("object", _KEY_OR_END))
            tokens.append(StartObjectToken())
        else:
            self._stack.append(_Frame("array", _VALUE_OR_END))
            tokens.append(StartArrayToken())

    def _close(self, ch: str, tokens: List[Token]):
        kind = "object" if ch == "}" else "array"
        if not self._stack or self._stack[-1].kind != kind:
            self._fail(f"unbalanced {ch!r}")
            return
        frame = self._stack[-1]
        allowed = (_KEY_OR_END, _COMMA_OR_END) if kind == "object" else (_VALUE_OR_END, _COMMA_OR_END)
        if frame.expect not in allowed:
            self._fail(f"unexpected {ch!r}")
            return

        self._stack.pop()
        tokens.append(EndObjectToken() if kind == "object" else EndArrayToken())
        if self._stack:
            self._value_done()
        else:
            self._mode = _DONE
            tokens.append(DocumentEndToken())

    def _colon(self):
        frame = self._stack[-1] if self._stack else None
        if frame is None or frame.kind != "object" or frame.expect != _COLON:
            self._fail("unexpected ':'")
            return
        frame.expect = _VALUE

    def _comma(self):
        frame = self._stack[-1] if self._stack else None
        if frame is None or frame.expect != _COMMA_OR_END:
            self._fail("unexpected ','")
            return
        frame.expect = _KEY if frame.kind == "object" else _VALUE

    def _fail(self, reason: str):
        self._mode = _FAILED
        self.error = reason
        logger.debug(f"[JSON_TOKENIZER] Stopped tokenizing: {reason}")

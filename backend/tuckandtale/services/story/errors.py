"""
Story generation errors.

Every failure on the generation path is one of these. The streaming endpoint
turns them into a single SSE ``error`` event; the non-streaming endpoint maps
``kind`` onto an HTTP status.
"""

from typing import Optional


class StoryGenerationError(Exception):
    """Base class for all generation failures."""

    kind = "generation_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RequestValidationError(StoryGenerationError):
    """Missing or inconsistent request fields."""

    kind = "validation_error"


class CharacterNotFoundError(RequestValidationError):
    """The hero id did not resolve to a character profile."""

    kind = "character_not_found"


class MissingParameterError(RequestValidationError):
    """Genre, tone or length did not resolve to a catalog row."""

    kind = "missing_parameter"


class AuthorizationError(StoryGenerationError):
    kind = "unauthorized"

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class UsageLimitError(StoryGenerationError):
    """The usage gate rejected the request before any upstream call."""

    kind = "usage_limit"

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason


class ProviderNotConfiguredError(StoryGenerationError):
    kind = "provider_not_configured"


class UpstreamTransportError(StoryGenerationError):
    """Network failure or non-2xx response from the text provider."""

    kind = "upstream_error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedGenerationError(StoryGenerationError):
    """The completed document is not valid JSON or fails validation."""

    kind = "json_parsing_error"


class EmptyGenerationError(MalformedGenerationError):
    """The upstream stream finished without writing any content."""

    kind = "empty_response"

    def __init__(self, message: str = "AI returned an empty response"):
        super().__init__(message)


class PersistenceError(StoryGenerationError):
    kind = "persistence_error"

"""
Story Engine V3 API Endpoints

- POST /api/story-engine/v3/stream: generate a story over Server-Sent Events
- POST /api/story-engine/v3/generate: same pipeline, single JSON response
"""

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from typing import Any, Dict, List, Literal, Optional
import json
import logging

from ..dependencies import get_current_user, get_optional_user
from ..models import UserProfile
from ..services.story.errors import (
    AuthorizationError,
    MalformedGenerationError,
    PersistenceError,
    ProviderNotConfiguredError,
    RequestValidationError,
    StoryGenerationError,
    UpstreamTransportError,
    UsageLimitError,
)
from ..services.story.pipeline import StoryStreamPipeline, format_sse

logger = logging.getLogger(__name__)

router = APIRouter()

REQUIRED_FIELDS = ("heroId", "mode", "genreId", "toneId", "lengthId")

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


# --- Schemas ---

class StoryGenerationParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    hero_id: str = Field(alias="heroId")
    character_ids: List[str] = Field(default_factory=list, alias="characterIds")
    mode: Literal["fun", "growth"]
    genre_id: str = Field(alias="genreId")
    tone_id: str = Field(alias="toneId")
    length_id: str = Field(alias="lengthId")
    growth_topic_id: Optional[str] = Field(None, alias="growthTopicId")
    moral_lesson_id: Optional[str] = Field(None, alias="moralLessonId")
    custom_instructions: Optional[str] = Field(None, alias="customInstructions")
    include_illustrations: Optional[bool] = Field(None, alias="includeIllustrations")
    use_credit: bool = Field(False, alias="useCredit")

    def to_request_params(self) -> Dict[str, Any]:
        """camelCase dict, the shape the pipeline and cost log store"""
        return self.model_dump(by_alias=True)


def get_story_pipeline() -> StoryStreamPipeline:
    return StoryStreamPipeline()


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status.HTTP_400_BAD_REQUEST)


async def _parse_stream_body(request: Request):
    """Validated params, or the 400 response to send instead."""
    body = await request.body()
    if not body or not body.strip():
        return None, _bad_request("Empty request body")

    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"[V3_STREAM] JSON parse error: {e}")
        return None, _bad_request("Invalid request format")

    if not isinstance(data, dict):
        return None, _bad_request("Invalid request format")

    if any(not data.get(field) for field in REQUIRED_FIELDS):
        return None, _bad_request("Missing required fields")

    try:
        return StoryGenerationParams(**data), None
    except ValidationError as e:
        logger.warning(f"[V3_STREAM] Request validation failed: {e.errors()}")
        return None, _bad_request("Invalid request format")


# --- Endpoints ---

@router.post("/v3/stream")
async def stream_story(
    request: Request,
    current_user: Optional[UserProfile] = Depends(get_optional_user),
    pipeline: StoryStreamPipeline = Depends(get_story_pipeline),
):
    """
    Generate a V3 story and stream it as Server-Sent Events.

    Event types:
    - started: request accepted, generation starting
    - title: story title is known
    - paragraph: one paragraph, with its 0-based index
    - moral: story moral (fun mode, when present)
    - complete: story saved, carries storyId
    - error: generation stopped, carries message

    Body problems are answered with HTTP 400 before streaming starts.
    Everything else, including a missing login, arrives as an ``error`` event.
    """
    params, error_response = await _parse_stream_body(request)
    if error_response is not None:
        return error_response

    user_id = current_user.id if current_user else None
    logger.info(f"[V3_STREAM] Stream requested by {user_id or 'anonymous'} (mode={params.mode})")

    async def generate_stream():
        async for event in pipeline.stream(params.to_request_params(), user_id):
            yield format_sse(event)

    return StreamingResponse(
        generate_stream(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


def _error_response(error: StoryGenerationError) -> JSONResponse:
    if isinstance(error, AuthorizationError):
        return JSONResponse({"error": error.message}, status_code=status.HTTP_401_UNAUTHORIZED)
    if isinstance(error, RequestValidationError):
        return JSONResponse({"error": error.message, "type": error.kind}, status_code=status.HTTP_400_BAD_REQUEST)
    if isinstance(error, UsageLimitError):
        return JSONResponse(
            {"error": error.message, "reason": error.reason},
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        )
    if isinstance(error, ProviderNotConfiguredError):
        return JSONResponse({"error": error.message}, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    if isinstance(error, UpstreamTransportError):
        if error.status_code == 429:
            return JSONResponse(
                {
                    "error": "The AI service is experiencing high demand. Please wait a moment and try again.",
                    "type": "rate_limit_error",
                    "details": error.message,
                },
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            )
        return JSONResponse(
            {
                "error": "Story generation service temporarily unavailable. Please try again in a moment.",
                "type": "service_unavailable",
                "details": error.message,
            },
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )
    if isinstance(error, MalformedGenerationError):
        return JSONResponse(
            {
                "error": "Failed to parse the AI response. The generated content may be malformed.",
                "type": error.kind,
                "details": error.message,
            },
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    if isinstance(error, PersistenceError):
        return JSONResponse(
            {"error": error.message, "type": error.kind},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    return JSONResponse({"error": error.message}, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


@router.post("/v3/generate")
async def generate_story(
    params: StoryGenerationParams,
    current_user: UserProfile = Depends(get_current_user),
    pipeline: StoryStreamPipeline = Depends(get_story_pipeline),
):
    """Generate a V3 story and return it once it is saved."""
    try:
        result = await pipeline.generate(params.to_request_params(), current_user.id)
    except StoryGenerationError as e:
        logger.warning(f"[V3_GENERATE] Generation failed for {current_user.id} ({e.kind}): {e.message}")
        return _error_response(e)
    except Exception as e:
        logger.error(f"[V3_GENERATE] Unexpected error for {current_user.id}: {e}", exc_info=True)
        return JSONResponse(
            {
                "error": "An unexpected error occurred while generating your story. Please try again.",
                "type": "unknown_error",
            },
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return {
        "success": True,
        "storyId": result.story_id,
        "story": result.story.to_dict(),
        "moral": result.document.moral,
        "message": "Story generated successfully",
        "redirect": f"/dashboard/stories/v3/{result.story_id}",
    }

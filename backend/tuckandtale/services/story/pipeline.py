"""
Story Stream Pipeline

Runs one V3 story generation from validated request params to a saved story:

    gate check -> started -> request hydration -> prompt -> cost log (processing)
    -> upstream stream -> title/paragraph/moral events -> strict parse
    -> save -> ledger debits -> cost log (completed) -> complete

Every failure before the story is saved ends the run with exactly one
``error`` event and marks the cost-log entry failed. Failures in the
bookkeeping after the save are logged and otherwise ignored; the story exists
and the client still gets ``complete``.

If the client goes away mid-stream the upstream request is closed, nothing is
saved or debited, and the cost-log entry stays ``processing``.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, Optional

from sqlalchemy.orm import Session

from ...database import SessionLocal
from ..ai_config import get_default_config, purpose_for_mode
from ..llm.client import TextProviderClient
from ..llm.upstream_stream import UpstreamTextStream
from ..usage.cost_logger import CostLogger, GENERATE_OPERATION, STREAM_OPERATION
from ..usage.usage_ledger import GenerationCheck, UsageLedger
from .completion import ENGINE_VERSION, parse_story_document, save_story, transform_to_v3_story
from .errors import (
    AuthorizationError,
    ProviderNotConfiguredError,
    RequestValidationError,
    StoryGenerationError,
    UsageLimitError,
)
from .projector import StreamEventProjector
from .prompt_assembler import PromptAssembler, get_prompt_assembler
from .request_builder import GenerationRequestBuilder
from .types import StoryDocument, V3Story

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Generation failed"


def format_sse(event: Dict[str, Any]) -> str:
    """Encode one event as an SSE frame."""
    return f"data: {json.dumps(event)}\n\n"


@dataclass
class GenerationResult:
    """Filled in by a successful run."""
    story_id: Optional[str] = None
    story: Optional[V3Story] = None
    document: Optional[StoryDocument] = None
    events: list = field(default_factory=list)


class StoryStreamPipeline:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        upstream_factory: Callable[[TextProviderClient], UpstreamTextStream] = UpstreamTextStream,
        prompt_assembler: Optional[PromptAssembler] = None,
    ):
        self.session_factory = session_factory
        self.upstream_factory = upstream_factory
        self.prompt_assembler = prompt_assembler or get_prompt_assembler()

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    async def stream(self, params: Dict[str, Any], user_id: Optional[str]) -> AsyncIterator[Dict[str, Any]]:
        """
        Yield SSE event dicts for one generation.

        ``params`` is the validated request body (camelCase keys). ``user_id``
        is None when the caller is not authenticated.
        """
        with self.session_factory() as db:
            events = self._run(db, params, user_id, STREAM_OPERATION, GenerationResult())
            try:
                async for event in events:
                    yield event
            except StoryGenerationError as e:
                yield {"type": "error", "message": e.message}
            except Exception as e:
                logger.error(f"[V3_STREAM] Unexpected generation failure: {e}", exc_info=True)
                yield {"type": "error", "message": GENERIC_FAILURE_MESSAGE}
            finally:
                await events.aclose()

    async def generate(self, params: Dict[str, Any], user_id: str) -> GenerationResult:
        """Run the same pipeline without streaming. Raises StoryGenerationError."""
        result = GenerationResult()
        with self.session_factory() as db:
            async for event in self._run(db, params, user_id, GENERATE_OPERATION, result):
                result.events.append(event)
        return result

    # -------------------------------------------------------------------------
    # Core run
    # -------------------------------------------------------------------------

    async def _run(
        self,
        db: Session,
        params: Dict[str, Any],
        user_id: Optional[str],
        operation: str,
        result: GenerationResult,
    ) -> AsyncIterator[Dict[str, Any]]:
        if user_id is None:
            raise AuthorizationError()

        if params.get("mode") == "growth" and not params.get("growthTopicId"):
            raise RequestValidationError("growthTopicId is required for growth mode")

        gate_illustrations = params.get("includeIllustrations")
        if gate_illustrations is None:
            gate_illustrations = True
        include_illustrations = bool(params.get("includeIllustrations") or False)

        ledger = UsageLedger(db)
        check = ledger.check_generation(user_id, gate_illustrations)
        if not check.allowed:
            raise UsageLimitError(check.message, reason=check.reason)

        yield {"type": "started"}

        cost_logger = CostLogger(db)
        cost_log_id: Optional[str] = None

        try:
            request = GenerationRequestBuilder(db, user_id).build_request(params)
            prompt = self.prompt_assembler.build_prompt(request)

            ai_config = get_default_config(db, purpose_for_mode(request.mode))
            if ai_config is None:
                raise ProviderNotConfiguredError("Story generation service not configured")

            cost_log_id = cost_logger.start(
                user_id=user_id,
                provider=ai_config.provider,
                operation=operation,
                model_used=ai_config.model_name,
                character_profile_id=params.get("heroId"),
                generation_params=params,
                prompt_used=prompt,
                metadata={
                    "ai_config_name": ai_config.name,
                    "mode": request.mode,
                    "engine_version": ENGINE_VERSION,
                    "streaming": operation == STREAM_OPERATION,
                },
            )

            client = TextProviderClient(ai_config)
            upstream = self.upstream_factory(client)
            projector = StreamEventProjector()

            chunks = upstream.stream(prompt)
            chunk_count = 0
            try:
                async for chunk in chunks:
                    chunk_count += 1
                    for event in projector.feed(chunk):
                        yield event.to_sse()
                for event in projector.finish():
                    yield event.to_sse()
            finally:
                await chunks.aclose()

            raw = projector.draft.raw_buffer
            logger.info(
                f"[V3_STREAM] Upstream finished: chunks={chunk_count}, chars={len(raw)}, "
                f"paragraphs={projector.draft.paragraph_index}"
            )

            document = parse_story_document(raw)
            story = transform_to_v3_story(document, request.length.name)
            story_id = save_story(
                db, user_id, story, document, request, prompt, include_illustrations,
            )
        except asyncio.CancelledError:
            logger.warning(f"[V3_STREAM] Client disconnected for user {user_id}; cost log {cost_log_id} left processing")
            raise
        except StoryGenerationError as e:
            logger.warning(f"[V3_STREAM] Generation failed ({e.kind}): {e.message}")
            self._fail_cost_log(cost_logger, cost_log_id, e.message)
            raise
        except Exception as e:
            self._fail_cost_log(cost_logger, cost_log_id, str(e))
            raise

        result.story_id = story_id
        result.story = story
        result.document = document

        self._record_completion(ledger, user_id, story_id, include_illustrations, check, bool(params.get("useCredit")))
        self._complete_cost_log(cost_logger, cost_log_id, story_id)

        logger.info(f"[V3_STREAM] Story {story_id} complete for user {user_id}")
        yield {"type": "complete", "storyId": story_id}

    # -------------------------------------------------------------------------
    # Bookkeeping (never surfaces errors)
    # -------------------------------------------------------------------------

    @staticmethod
    def _record_completion(
        ledger: UsageLedger,
        user_id: str,
        story_id: str,
        include_illustrations: bool,
        check: GenerationCheck,
        use_credit: bool,
    ):
        try:
            ledger.record_completion(user_id, story_id, include_illustrations, check, use_credit=use_credit)
        except Exception as e:
            logger.error(f"[USAGE] Post-completion bookkeeping failed for story {story_id}: {e}", exc_info=True)
            ledger.db.rollback()

    @staticmethod
    def _complete_cost_log(cost_logger: CostLogger, cost_log_id: Optional[str], story_id: str):
        if cost_log_id is None:
            return
        try:
            cost_logger.complete(cost_log_id, story_id)
        except Exception as e:
            logger.error(f"[COST_LOG] Could not complete entry {cost_log_id}: {e}", exc_info=True)
            cost_logger.db.rollback()

    @staticmethod
    def _fail_cost_log(cost_logger: CostLogger, cost_log_id: Optional[str], message: str):
        if cost_log_id is None:
            return
        try:
            cost_logger.fail(cost_log_id, message)
        except Exception as e:
            logger.error(f"[COST_LOG] Could not mark entry {cost_log_id} failed: {e}", exc_info=True)
            cost_logger.db.rollback()

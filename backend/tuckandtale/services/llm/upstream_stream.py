"""
Upstream Text Stream

Opens a streaming chat completion and yields the content deltas as they
arrive. Two backends are available:

- ``http``: direct ``httpx`` request, reading the provider's SSE lines
- ``litellm``: ``litellm.acompletion(stream=True)``

Both raise ``UpstreamTransportError`` for network failures and non-2xx
responses. There are no retries.
"""

import json
import logging
import os
from typing import Any, AsyncIterator, Dict, Optional

import httpx
from litellm import acompletion

from ...config import settings
from ..story.errors import UpstreamTransportError
from .client import TextProviderClient

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
ERROR_BODY_LIMIT = 200


def parse_sse_line(line: str) -> Optional[str]:
    """
    Content delta carried by one upstream SSE line, if any.

    Returns ``DONE_SENTINEL`` for the terminating line and ``None`` for
    anything that carries no content (comments, keep-alives, garbled JSON).
    """
    if not line.startswith("data:"):
        return None
    data = line[5:].strip()
    if data == DONE_SENTINEL:
        return DONE_SENTINEL
    try:
        chunk = json.loads(data)
    except json.JSONDecodeError:
        logger.debug(f"[UPSTREAM] Skipping unparseable line: {data[:80]!r}")
        return None

    if not isinstance(chunk, dict):
        return None
    choices = chunk.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta") or {}
    content = delta.get("content") if isinstance(delta, dict) else None
    return content if isinstance(content, str) and content else None


def _get_prompt_debug_path(filename: str) -> str:
    logs_dir = os.path.dirname(os.path.abspath(settings.log_file))
    os.makedirs(logs_dir, exist_ok=True)
    return os.path.join(logs_dir, filename)


class UpstreamTextStream:
    """One streaming completion request against the text provider"""

    def __init__(
        self,
        client: TextProviderClient,
        backend: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client = client
        self.backend = backend or settings.text_provider_backend
        self.transport = transport  # Tests inject httpx.MockTransport here
        self.chunk_count = 0
        self.content_chars = 0

    def stream(self, prompt: str) -> AsyncIterator[str]:
        """Yield content deltas for ``prompt`` until the provider finishes."""
        self._write_prompt_debug(prompt)
        if self.backend == "litellm":
            return self._stream_litellm(prompt)
        return self._stream_http(prompt)

    async def _stream_http(self, prompt: str) -> AsyncIterator[str]:
        payload = self.client.get_streaming_params()
        payload["messages"] = self.client.build_messages(prompt)

        logger.info(f"[UPSTREAM] Opening stream to {self.client.endpoint_url} (model={self.client.model_name})")

        try:
            async with httpx.AsyncClient(timeout=self.client.timeout, transport=self.transport) as http_client:
                async with http_client.stream(
                    "POST",
                    self.client.endpoint_url,
                    json=payload,
                    headers=self.client.headers,
                ) as response:
                    if response.status_code < 200 or response.status_code >= 300:
                        await response.aread()
                        message = f"OpenAI API error: {response.status_code} - {response.text[:ERROR_BODY_LIMIT]}"
                        logger.error(f"[UPSTREAM] {message}")
                        raise UpstreamTransportError(message, status_code=response.status_code)

                    async for line in response.aiter_lines():
                        content = parse_sse_line(line)
                        if content is None:
                            continue
                        if content == DONE_SENTINEL:
                            break
                        self.chunk_count += 1
                        self.content_chars += len(content)
                        yield content
        except httpx.HTTPError as e:
            logger.error(f"[UPSTREAM] Transport failure: {e}", exc_info=True)
            raise UpstreamTransportError(f"Cannot connect to text provider: {e}")

        logger.info(f"[UPSTREAM] Stream complete: chunks={self.chunk_count}, content_chars={self.content_chars}")

    async def _stream_litellm(self, prompt: str) -> AsyncIterator[str]:
        params = self.client.get_litellm_params()
        params["messages"] = self.client.build_messages(prompt)

        logger.info(f"[UPSTREAM] Opening litellm stream (model={self.client.model_string})")

        try:
            response = await acompletion(**params)
            async for chunk in response:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    self.chunk_count += 1
                    self.content_chars += len(content)
                    yield content
        except UpstreamTransportError:
            raise
        except Exception as e:
            logger.error(f"[UPSTREAM] litellm streaming failed: {e}", exc_info=True)
            raise UpstreamTransportError(
                f"Text provider error: {str(e)[:ERROR_BODY_LIMIT]}",
                status_code=getattr(e, "status_code", None),
            )

        logger.info(f"[UPSTREAM] Stream complete: chunks={self.chunk_count}, content_chars={self.content_chars}")

    def _write_prompt_debug(self, prompt: str):
        if not settings.prompt_debug:
            return
        debug_data: Dict[str, Any] = {
            "messages": self.client.build_messages(prompt),
            "generation_parameters": self.client.sampling,
            "model": self.client.model_string,
        }
        try:
            with open(_get_prompt_debug_path("prompt_sent.json"), "w", encoding="utf-8") as f:
                json.dump(debug_data, f, indent=2, ensure_ascii=False)
        except OSError as e:
            logger.warning(f"Could not write prompt debug file: {e}")

"""
Text Provider Client

Resolves an AIConfig row plus application settings into the request
parameters for an OpenAI-style chat completion.
"""

import logging
from typing import Any, Dict, List, Optional

from ...config import settings
from ...models import AIConfig
from ..story.errors import ProviderNotConfiguredError

logger = logging.getLogger(__name__)

DEFAULT_SAMPLING = {
    "max_tokens": 2500,
    "temperature": 0.8,
    "top_p": 1.0,
    "frequency_penalty": 0.3,
    "presence_penalty": 0.3,
}


class TextProviderClient:
    """Chat-completion parameters for one configured model"""

    def __init__(
        self,
        ai_config: AIConfig,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        if ai_config is None:
            raise ProviderNotConfiguredError("Story generation service not configured")

        self.config_name = ai_config.name
        self.provider = ai_config.provider or "openai"
        self.model_name = ai_config.model_id

        self.api_key = api_key if api_key is not None else settings.openai_api_key
        if not self.api_key:
            raise ProviderNotConfiguredError("Story generation service not configured")

        self.base_url = (base_url or settings.text_provider_base_url).rstrip("/")
        self.timeout = timeout or settings.text_provider_timeout_seconds

        # Row settings override the defaults key by key
        overrides = ai_config.settings or {}
        self.sampling = {
            key: overrides[key] if overrides.get(key) is not None else default
            for key, default in DEFAULT_SAMPLING.items()
        }

        self.model_string = self._build_model_string()

    def _build_model_string(self) -> str:
        """Model string in the form litellm expects"""
        if self.provider == "openai":
            return self.model_name
        return f"{self.provider}/{self.model_name}"

    @property
    def endpoint_url(self) -> str:
        return f"{self.base_url}/chat/completions"

    def build_messages(self, prompt: str) -> List[Dict[str, str]]:
        if not prompt or not isinstance(prompt, str) or not prompt.strip():
            raise ValueError("Prompt must be a non-empty string")
        return [{"role": "user", "content": prompt}]

    def get_generation_params(self) -> Dict[str, Any]:
        """Body for a non-streaming request (HTTP backend)"""
        params = {
            "model": self.model_name,
            "response_format": {"type": "json_object"},
        }
        params.update(self.sampling)
        return params

    def get_streaming_params(self) -> Dict[str, Any]:
        params = self.get_generation_params()
        params["stream"] = True
        return params

    def get_litellm_params(self) -> Dict[str, Any]:
        """Keyword arguments for litellm.acompletion"""
        params = self.get_streaming_params()
        params["model"] = self.model_string
        params["api_key"] = self.api_key
        params["api_base"] = self.base_url
        params["timeout"] = self.timeout
        return params

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

"""
Completion providers for Living Canvas.

The orchestrator only knows the CompletionProvider interface: turn a system
prompt and a user prompt into text. Concrete providers talk to Ollama, OpenAI
or Anthropic over httpx and report every failure as a ProviderError.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from ..config import config
from ..errors import ProviderError

logger = logging.getLogger(__name__)


class CompletionProvider(ABC):
    """
    Abstract interface for anything that turns prompts into generated text.
    """

    model: str = ""

    @abstractmethod
    def complete(self, system_prompt: str, user_prompt: str) -> str:
        """
        Generate a completion.

        Args:
            system_prompt: Persona or instructions for the model (may be empty)
            user_prompt: The request itself

        Returns:
            The generated text

        Raises:
            ProviderError: If the request fails or is rejected
        """
        pass


class HTTPCompletionProvider(CompletionProvider):
    """
    Shared request handling for providers that speak JSON over HTTP.
    """

    name = "http"

    def __init__(self, model: str, base_url: str, timeout: Optional[float] = None,
                 max_tokens: Optional[int] = None, temperature: Optional[float] = None,
                 client: Optional[httpx.Client] = None):
        self.model = model
        self.base_url = base_url.rstrip('/')
        self.max_tokens = max_tokens or config.get("ai.max_tokens", 2000)
        self.temperature = temperature if temperature is not None else config.get("ai.temperature", 0.7)
        self.client = client or httpx.Client(timeout=timeout or config.ai_timeout)

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def close(self) -> None:
        self.client.close()

    def _post(self, path: str, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        logger.debug(f"Calling {self.name} API with model: {self.model}")
        try:
            response = self.client.post(f"{self.base_url}{path}", json=payload, headers=headers)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"{self.name} API error: {self._error_message(e.response)}",
                status_code=e.response.status_code
            ) from e
        except httpx.RequestError as e:
            raise ProviderError(f"Failed to connect to {self.name}: {e}") from e
        except ValueError as e:
            raise ProviderError(f"{self.name} returned an invalid response: {e}") from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.reason_phrase or response.text
        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        if isinstance(error, str):
            return error
        return response.reason_phrase or "request failed"


class OllamaProvider(HTTPCompletionProvider):
    """Local models served by Ollama's /api/generate endpoint."""

    name = "Ollama"

    def __init__(self, model: Optional[str] = None, host: Optional[str] = None, **kwargs: Any):
        super().__init__(model or config.model_name, host or config.ollama_host, **kwargs)

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        payload = {
            "model": self.model,
            "prompt": user_prompt,
            "stream": False,
            "options": {"temperature": self.temperature, "num_predict": self.max_tokens}
        }
        if system_prompt:
            payload["system"] = system_prompt

        result = self._post("/api/generate", payload)
        return result.get("response", "")


class OpenAIProvider(HTTPCompletionProvider):
    """OpenAI chat completions."""

    name = "OpenAI"

    def __init__(self, api_key: str, model: str = "gpt-3.5-turbo",
                 base_url: str = "https://api.openai.com", **kwargs: Any):
        if not api_key:
            raise ProviderError("OpenAI API key not configured. Please add it in the settings.")
        self.api_key = api_key
        super().__init__(model, base_url, **kwargs)

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        result = self._post(
            "/v1/chat/completions",
            {
                "model": self.model,
                "messages": messages,
                "max_tokens": self.max_tokens,
                "temperature": self.temperature
            },
            headers={"Authorization": f"Bearer {self.api_key}"}
        )
        choices = result.get("choices") or []
        if not choices:
            raise ProviderError("OpenAI returned no choices")
        return (choices[0].get("message") or {}).get("content") or ""


class AnthropicProvider(HTTPCompletionProvider):
    """Anthropic messages API."""

    name = "Anthropic"
    api_version = "2023-06-01"

    def __init__(self, api_key: str, model: str = "claude-3-haiku-20240307",
                 base_url: str = "https://api.anthropic.com", **kwargs: Any):
        if not api_key:
            raise ProviderError("Anthropic API key not configured. Please add it in the settings.")
        self.api_key = api_key
        super().__init__(model, base_url, **kwargs)

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": user_prompt}]
        }
        if system_prompt:
            payload["system"] = system_prompt

        result = self._post(
            "/v1/messages",
            payload,
            headers={"x-api-key": self.api_key, "anthropic-version": self.api_version}
        )
        parts = [part.get("text", "") for part in result.get("content") or [] if part.get("type") == "text"]
        if not parts:
            raise ProviderError("Anthropic returned no text content")
        return "".join(parts)


def provider_from_settings(settings: Any) -> CompletionProvider:
    """
    Build the provider for the active model selection.

    The model name picks the vendor: ``gpt-``/``text-`` models go to OpenAI,
    ``claude-`` models to Anthropic, anything else to the configured default.

    Args:
        settings: A SettingsStore (or any object with ``get(key, default)``)

    Returns:
        A ready-to-use CompletionProvider

    Raises:
        ProviderError: If the selected vendor has no API key configured
    """
    model = settings.get("defaultModel") or config.model_name

    if model.startswith("gpt-") or model.startswith("text-"):
        return OpenAIProvider(api_key=settings.get("openaiApiKey", ""), model=model)
    if model.startswith("claude-"):
        return AnthropicProvider(api_key=settings.get("anthropicApiKey", ""), model=model)

    provider = settings.get("provider") or config.provider_name
    if provider == "openai":
        return OpenAIProvider(api_key=settings.get("openaiApiKey", ""), model=model)
    if provider == "anthropic":
        return AnthropicProvider(api_key=settings.get("anthropicApiKey", ""), model=model)
    return OllamaProvider(model=model, host=settings.get("ollamaHost") or config.ollama_host)

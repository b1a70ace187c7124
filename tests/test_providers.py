"""
Unit tests for the completion providers.

HTTP traffic is served by httpx.MockTransport so no network is needed.
"""

import json
import unittest

import httpx

from livingcanvas.errors import ProviderError
from livingcanvas.execution.providers import (
    AnthropicProvider,
    OllamaProvider,
    OpenAIProvider,
    provider_from_settings,
)


def mock_client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestOllamaProvider(unittest.TestCase):
    """Test the Ollama /api/generate provider."""

    def test_complete_sends_prompt_and_system(self):
        captured = {}

        def handler(request):
            captured["url"] = str(request.url)
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"response": "Summary text", "done": True})

        provider = OllamaProvider(model="gemma3", host="http://ollama.test:11434/",
                                  client=mock_client(handler))

        result = provider.complete("Be brief.", "Summarize this")

        self.assertEqual(result, "Summary text")
        self.assertEqual(captured["url"], "http://ollama.test:11434/api/generate")
        self.assertEqual(captured["body"]["model"], "gemma3")
        self.assertEqual(captured["body"]["prompt"], "Summarize this")
        self.assertEqual(captured["body"]["system"], "Be brief.")
        self.assertFalse(captured["body"]["stream"])

    def test_empty_system_prompt_is_omitted(self):
        captured = {}

        def handler(request):
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"response": "ok"})

        provider = OllamaProvider(model="gemma3", host="http://ollama.test", client=mock_client(handler))
        provider.complete("", "Hi")

        self.assertNotIn("system", captured["body"])

    def test_connection_failure_becomes_provider_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = OllamaProvider(model="gemma3", host="http://ollama.test", client=mock_client(handler))

        with self.assertRaises(ProviderError) as ctx:
            provider.complete("", "Hi")

        self.assertIsNone(ctx.exception.status_code)
        self.assertIn("Failed to connect to Ollama", str(ctx.exception))


class TestOpenAIProvider(unittest.TestCase):
    """Test the OpenAI chat completions provider."""

    def test_complete(self):
        captured = {}

        def handler(request):
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"choices": [{"message": {"content": "Bonjour"}}]})

        provider = OpenAIProvider(api_key="sk-test", model="gpt-4o-mini", client=mock_client(handler))

        self.assertEqual(provider.complete("Translate.", "Hello"), "Bonjour")
        self.assertEqual(captured["auth"], "Bearer sk-test")
        self.assertEqual(captured["body"]["messages"], [
            {"role": "system", "content": "Translate."},
            {"role": "user", "content": "Hello"}
        ])

    def test_http_error_keeps_status_and_message(self):
        def handler(request):
            return httpx.Response(401, json={"error": {"message": "Incorrect API key provided"}})

        provider = OpenAIProvider(api_key="sk-bad", client=mock_client(handler))

        with self.assertRaises(ProviderError) as ctx:
            provider.complete("", "Hello")

        self.assertEqual(ctx.exception.status_code, 401)
        self.assertIn("Incorrect API key provided", ctx.exception.message)

    def test_missing_api_key(self):
        with self.assertRaises(ProviderError):
            OpenAIProvider(api_key="")

    def test_no_choices(self):
        provider = OpenAIProvider(
            api_key="sk-test",
            client=mock_client(lambda request: httpx.Response(200, json={"choices": []}))
        )

        with self.assertRaises(ProviderError):
            provider.complete("", "Hello")


class TestAnthropicProvider(unittest.TestCase):
    """Test the Anthropic messages provider."""

    def test_complete_joins_text_parts(self):
        captured = {}

        def handler(request):
            captured["headers"] = request.headers
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"content": [
                {"type": "text", "text": "Part one. "},
                {"type": "text", "text": "Part two."}
            ]})

        provider = AnthropicProvider(api_key="key", model="claude-3-haiku-20240307",
                                     client=mock_client(handler))

        self.assertEqual(provider.complete("Grade fairly.", "Essay"), "Part one. Part two.")
        self.assertEqual(captured["headers"]["x-api-key"], "key")
        self.assertEqual(captured["body"]["system"], "Grade fairly.")
        self.assertEqual(captured["body"]["messages"], [{"role": "user", "content": "Essay"}])

    def test_rate_limit(self):
        def handler(request):
            return httpx.Response(429, json={"error": {"type": "rate_limit_error", "message": "Slow down"}})

        provider = AnthropicProvider(api_key="key", client=mock_client(handler))

        with self.assertRaises(ProviderError) as ctx:
            provider.complete("", "Essay")

        self.assertEqual(ctx.exception.status_code, 429)
        self.assertIn("Slow down", str(ctx.exception))

    def test_invalid_json_response(self):
        provider = AnthropicProvider(
            api_key="key",
            client=mock_client(lambda request: httpx.Response(200, text="<html>oops</html>"))
        )

        with self.assertRaises(ProviderError):
            provider.complete("", "Essay")


class TestProviderSelection(unittest.TestCase):
    """Test choosing a provider from settings."""

    def test_model_prefix_selects_vendor(self):
        openai = provider_from_settings({"defaultModel": "gpt-4o", "openaiApiKey": "sk"})
        anthropic = provider_from_settings({"defaultModel": "claude-3-haiku-20240307", "anthropicApiKey": "k"})
        ollama = provider_from_settings({"defaultModel": "llama3", "ollamaHost": "http://gpu-box:11434"})

        self.assertIsInstance(openai, OpenAIProvider)
        self.assertIsInstance(anthropic, AnthropicProvider)
        self.assertIsInstance(ollama, OllamaProvider)
        self.assertEqual(ollama.model, "llama3")
        self.assertEqual(ollama.base_url, "http://gpu-box:11434")

    def test_explicit_provider_setting(self):
        provider = provider_from_settings({"defaultModel": "my-proxy-model", "provider": "openai",
                                           "openaiApiKey": "sk"})

        self.assertIsInstance(provider, OpenAIProvider)
        self.assertEqual(provider.model, "my-proxy-model")

    def test_missing_key_for_selected_vendor(self):
        with self.assertRaises(ProviderError):
            provider_from_settings({"defaultModel": "claude-3-opus-20240229"})


if __name__ == '__main__':
    unittest.main()

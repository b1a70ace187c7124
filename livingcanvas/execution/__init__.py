"""Block execution: completion providers and the run orchestrator."""

from .orchestrator import ClarifyResult, ExecutionOrchestrator, RunOutcome
from .providers import (
    AnthropicProvider,
    CompletionProvider,
    OllamaProvider,
    OpenAIProvider,
    provider_from_settings,
)

__all__ = [
    "ClarifyResult",
    "ExecutionOrchestrator",
    "RunOutcome",
    "AnthropicProvider",
    "CompletionProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "provider_from_settings"
]

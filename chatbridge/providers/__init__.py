"""Concrete provider adapters, one per backend wire format."""

from chatbridge.providers.deepseek import DeepSeekProvider
from chatbridge.providers.ollama import OllamaProvider
from chatbridge.providers.openai_compatible import OpenAICompatibleProvider

__all__ = ["DeepSeekProvider", "OllamaProvider", "OpenAICompatibleProvider"]

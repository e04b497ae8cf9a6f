"""Provider selection by id -- the only place adapters are constructed."""

from __future__ import annotations

import httpx

from chatbridge.config import KNOWN_PROVIDERS, ProvidersConfig
from chatbridge.errors import ConfigurationError
from chatbridge.log import logger
from chatbridge.provider import LLMProvider
from chatbridge.types import ProviderInfo

_AVAILABLE: tuple[ProviderInfo, ...] = (
    ProviderInfo(type="deepseek", name="DeepSeek (Remote API)"),
    ProviderInfo(type="ollama", name="Ollama (Local)"),
    ProviderInfo(type="openai-compatible", name="OpenAI Compatible (Local)"),
)


class ProviderFactory:
    """Build a provider adapter for a requested or the configured default id.

    ``transport`` is forwarded to the HTTP-based adapters (tests inject
    ``httpx.MockTransport`` here).
    """

    def __init__(self, config: ProvidersConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config
        self._transport = transport

    @property
    def default_provider(self) -> str:
        return self.config.default or "deepseek"

    def create_provider(self, provider_type: str | None = None) -> LLMProvider:
        kind = provider_type or self.default_provider
        if kind == "deepseek":
            from chatbridge.providers.deepseek import DeepSeekProvider
            provider: LLMProvider = DeepSeekProvider(self.config.deepseek)
        elif kind == "ollama":
            from chatbridge.providers.ollama import OllamaProvider
            provider = OllamaProvider(self.config.ollama, transport=self._transport)
        elif kind == "openai-compatible":
            from chatbridge.providers.openai_compatible import OpenAICompatibleProvider
            provider = OpenAICompatibleProvider(self.config.openai_compatible, transport=self._transport)
        else:
            raise ConfigurationError(
                f"Unknown provider type: {kind} (expected one of {', '.join(KNOWN_PROVIDERS)})"
            )
        logger.debug(f"Created provider {provider.name} (model={provider.model_config.model})")
        return provider

    @staticmethod
    def get_available_providers() -> list[ProviderInfo]:
        return list(_AVAILABLE)

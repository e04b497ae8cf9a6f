"""DeepSeek provider -- remote API through the LiteLLM SDK stream."""

from __future__ import annotations

import json
from collections.abc import Iterator, Sequence
from typing import Any

from chatbridge.config import DeepSeekConfig
from chatbridge.errors import ConfigurationError, ProviderError
from chatbridge.log import logger
from chatbridge.provider import LLMProvider, StreamTurn, to_wire_messages
from chatbridge.types import ChatMessage, ModelConfig


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def iter_content_parts(content: Any) -> Iterator[str]:
    """Flatten SDK message content: a string, or a list of strings / ``{text}`` parts."""
    if content is None:
        return
    if isinstance(content, str):
        yield content
        return
    if isinstance(content, (list, tuple)):
        for item in content:
            if isinstance(item, str):
                yield item
            else:
                text = _field(item, "text")
                if isinstance(text, str):
                    yield text


class DeepSeekProvider(LLMProvider):
    """Remote DeepSeek chat API. Requires an API key at construction."""

    name = "DeepSeek"

    def __init__(self, config: DeepSeekConfig) -> None:
        if not config.api_key:
            raise ConfigurationError("DEEPSEEK_API_KEY environment variable is required")
        self.model_config = ModelConfig(
            provider_id="deepseek",
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            api_key=config.api_key,
            base_url=config.api_base,
            request_timeout=config.request_timeout,
        )

    def _completion_kwargs(self, messages: Sequence[ChatMessage], stream: bool) -> dict[str, Any]:
        cfg = self.model_config
        model = cfg.model if "/" in cfg.model else f"deepseek/{cfg.model}"
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": to_wire_messages(messages),
            "max_tokens": cfg.max_tokens,
            "temperature": cfg.temperature,
            "api_key": cfg.api_key,
            "timeout": cfg.request_timeout,
            "stream": stream,
        }
        if cfg.base_url:
            kwargs["api_base"] = cfg.base_url
        return kwargs

    async def _stream(self, messages: Sequence[ChatMessage], turn: StreamTurn) -> None:
        from litellm import acompletion

        resp = await acompletion(**self._completion_kwargs(messages, stream=True))
        async for chunk in resp:
            choices = _field(chunk, "choices") or []
            if not choices:
                continue
            delta = _field(choices[0], "delta")
            for text in iter_content_parts(_field(delta, "content")):
                await turn.token(text)

    async def chat(self, messages: Sequence[ChatMessage]) -> str:
        from litellm import acompletion

        try:
            resp = await acompletion(**self._completion_kwargs(messages, stream=False))
        except Exception as e:
            logger.error(f"DeepSeek chat failed: {e}")
            raise ProviderError(f"DeepSeek request failed: {type(e).__name__}: {e}") from e
        choices = _field(resp, "choices") or []
        if not choices:
            return ""
        content = _field(_field(choices[0], "message"), "content")
        if content is None or isinstance(content, str):
            return content or ""
        parts = list(iter_content_parts(content))
        return "".join(parts) if parts else json.dumps(content, default=str)

"""OpenAI-compatible provider -- local HTTP, SSE frames ending in ``data: [DONE]``."""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

import httpx

from chatbridge.config import OpenAICompatibleConfig
from chatbridge.errors import ProviderError
from chatbridge.log import logger
from chatbridge.provider import LineBuffer, LLMProvider, StreamTurn, as_provider_error, to_wire_messages
from chatbridge.types import ChatMessage, ModelConfig

_DONE = "[DONE]"


class OpenAICompatibleProvider(LLMProvider):
    """Any server speaking the OpenAI ``/chat/completions`` API (LM Studio, vLLM, llama.cpp)."""

    name = "OpenAI Compatible"

    def __init__(
        self, config: OpenAICompatibleConfig, transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.model_config = ModelConfig(
            provider_id="openai-compatible",
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            api_key=config.api_key,
            base_url=config.base_url.rstrip("/"),
            request_timeout=config.request_timeout,
        )
        self._transport = transport

    @property
    def _url(self) -> str:
        return f"{self.model_config.base_url}/chat/completions"

    def _payload(self, messages: Sequence[ChatMessage], stream: bool) -> dict[str, Any]:
        cfg = self.model_config
        return {
            "model": cfg.model,
            "messages": to_wire_messages(messages),
            "stream": stream,
            "temperature": cfg.temperature,
            "max_tokens": cfg.max_tokens,
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=self.model_config.request_timeout,
            headers={"Authorization": f"Bearer {self.model_config.api_key}"},
        )

    async def _stream(self, messages: Sequence[ChatMessage], turn: StreamTurn) -> None:
        buffer = LineBuffer()
        async with self._client() as client:
            async with client.stream("POST", self._url, json=self._payload(messages, stream=True)) as resp:
                if resp.status_code >= 400:
                    body = await resp.aread()
                    raise ProviderError(
                        f"OpenAI-compatible server returned HTTP {resp.status_code}: "
                        f"{body[:200].decode('utf-8', 'replace')}",
                        status_code=resp.status_code,
                    )
                async for chunk in resp.aiter_bytes():
                    for line in buffer.feed(chunk):
                        await self._handle_line(line, turn)
                    if turn.finished:
                        return
        for line in buffer.flush():
            await self._handle_line(line, turn)

    async def _handle_line(self, line: str, turn: StreamTurn) -> None:
        line = line.strip()
        # Blank separators, comments (":") and "event:" lines carry no payload.
        if not line.startswith("data:"):
            return
        payload = line[5:].strip()
        if payload == _DONE:
            await turn.complete()
            return
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            logger.warning(f"Skipping malformed SSE frame: {payload[:200]}")
            return
        if not isinstance(data, dict):
            logger.warning(f"Skipping non-object SSE frame: {payload[:200]}")
            return
        if data.get("error"):
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else error
            raise ProviderError(f"OpenAI-compatible server error: {message}")
        choices = data.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return
        choice = choices[0]
        delta = choice.get("delta") or {}
        content = delta.get("content") if isinstance(delta, dict) else None
        if isinstance(content, str) and content:
            await turn.token(content)
        if choice.get("finish_reason") == "stop":
            await turn.complete()

    async def chat(self, messages: Sequence[ChatMessage]) -> str:
        try:
            async with self._client() as client:
                resp = await client.post(self._url, json=self._payload(messages, stream=False))
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise as_provider_error(self.name, e) from e
        choices = data.get("choices") or [{}]
        message = choices[0].get("message") or {}
        return message.get("content") or ""

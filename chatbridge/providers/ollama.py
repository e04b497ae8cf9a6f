"""Ollama provider -- local HTTP, newline-delimited JSON stream."""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

import httpx

from chatbridge.config import OllamaConfig
from chatbridge.errors import ProviderError
from chatbridge.log import logger
from chatbridge.provider import LineBuffer, LLMProvider, StreamTurn, as_provider_error, to_wire_messages
from chatbridge.types import ChatMessage, ModelConfig


class OllamaProvider(LLMProvider):
    """Ollama ``/api/chat``. Frames: ``{"message": {"content": ...}, "done": bool}``."""

    name = "Ollama"

    def __init__(self, config: OllamaConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.model_config = ModelConfig(
            provider_id="ollama",
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            base_url=config.base_url.rstrip("/"),
            request_timeout=config.request_timeout,
        )
        self._transport = transport

    @property
    def _url(self) -> str:
        return f"{self.model_config.base_url}/api/chat"

    def _payload(self, messages: Sequence[ChatMessage], stream: bool) -> dict[str, Any]:
        cfg = self.model_config
        return {
            "model": cfg.model,
            "messages": to_wire_messages(messages),
            "stream": stream,
            "options": {"temperature": cfg.temperature, "num_predict": cfg.max_tokens},
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self.model_config.request_timeout)

    async def _stream(self, messages: Sequence[ChatMessage], turn: StreamTurn) -> None:
        buffer = LineBuffer()
        async with self._client() as client:
            async with client.stream("POST", self._url, json=self._payload(messages, stream=True)) as resp:
                if resp.status_code >= 400:
                    body = await resp.aread()
                    raise ProviderError(
                        f"Ollama returned HTTP {resp.status_code}: {body[:200].decode('utf-8', 'replace')}",
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
        if not line:
            return
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            logger.warning(f"Skipping malformed Ollama frame: {line[:200]}")
            return
        if not isinstance(data, dict):
            logger.warning(f"Skipping non-object Ollama frame: {line[:200]}")
            return
        if data.get("error"):
            raise ProviderError(f"Ollama error: {data['error']}")
        message = data.get("message") or {}
        content = message.get("content") if isinstance(message, dict) else None
        if isinstance(content, str) and content:
            await turn.token(content)
        if data.get("done") is True:
            await turn.complete()

    async def chat(self, messages: Sequence[ChatMessage]) -> str:
        try:
            async with self._client() as client:
                resp = await client.post(self._url, json=self._payload(messages, stream=False))
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise as_provider_error(self.name, e) from e
        message = data.get("message") or {}
        return message.get("content") or ""

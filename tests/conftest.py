"""Shared test fixtures for the ChatBridge test suite."""
from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable, Iterable
from pathlib import Path
from typing import Any

import httpx
import pytest

from chatbridge.config import (
    ChatBridgeConfig,
    HistoryConfig,
    MemoryConfig,
    OpenAICompatibleConfig,
    ProvidersConfig,
    SkillsConfig,
    WebConfig,
)
from chatbridge.history import HistoryStore
from chatbridge.memory import MemoryStore
from chatbridge.provider import StreamCallbacks
from chatbridge.skills.registry import SkillRegistry


# ---- Fakes ----


class Recorder:
    """Captures every callback of one streamed turn, in order."""

    def __init__(self, fail_on_token: bool = False) -> None:
        self.events: list[tuple[str, Any]] = []
        self.fail_on_token = fail_on_token

    @property
    def tokens(self) -> list[str]:
        return [v for k, v in self.events if k == "token"]

    @property
    def errors(self) -> list[Exception]:
        return [v for k, v in self.events if k == "error"]

    @property
    def completions(self) -> int:
        return sum(1 for k, _ in self.events if k == "complete")

    @property
    def terminal_count(self) -> int:
        return self.completions + len(self.errors)

    def callbacks(self) -> StreamCallbacks:
        async def on_token(text: str) -> None:
            self.events.append(("token", text))
            if self.fail_on_token:
                raise RuntimeError("sink closed")

        def on_error(error: Exception) -> None:
            self.events.append(("error", error))

        def on_complete() -> None:
            self.events.append(("complete", None))

        return StreamCallbacks(on_token, on_error, on_complete)


class FakeWriter:
    """Stand-in for asyncio.StreamWriter that keeps everything written."""

    def __init__(self, fail_after: int | None = None) -> None:
        self.buffer = bytearray()
        self.closed = False
        self._writes = 0
        self._fail_after = fail_after

    def write(self, data: bytes) -> None:
        self._writes += 1
        if self._fail_after is not None and self._writes > self._fail_after:
            raise ConnectionResetError("client went away")
        self.buffer.extend(data)

    async def drain(self) -> None:
        await asyncio.sleep(0)

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        return None

    def sse_events(self) -> list[dict[str, Any]]:
        _, _, body = bytes(self.buffer).partition(b"\r\n\r\n")
        events = []
        for block in body.decode("utf-8").split("\n\n"):
            if block.startswith("data: "):
                events.append(json.loads(block[len("data: "):]))
        return events


# ---- Transport helpers ----


def chunked(parts: Iterable[bytes], error: Exception | None = None, hang: bool = False) -> AsyncIterator[bytes]:
    """Async byte stream: yields ``parts`` in order, then raises ``error`` or hangs."""

    async def gen() -> AsyncIterator[bytes]:
        for part in parts:
            yield part
            await asyncio.sleep(0)
        if error is not None:
            raise error
        if hang:
            await asyncio.sleep(3600)

    return gen()


def sse(*payloads: Any) -> bytes:
    """Encode OpenAI-style SSE frames; strings are sent verbatim after ``data: ``."""
    out = []
    for p in payloads:
        body = p if isinstance(p, str) else json.dumps(p, ensure_ascii=False)
        out.append(f"data: {body}\n\n")
    return "".join(out).encode()


def delta(text: str | None = None, finish_reason: str | None = None) -> dict[str, Any]:
    choice: dict[str, Any] = {"delta": {"content": text} if text is not None else {}}
    if finish_reason is not None:
        choice["finish_reason"] = finish_reason
    return {"choices": [choice]}


def ndjson(*frames: dict[str, Any]) -> bytes:
    return "".join(json.dumps(f, ensure_ascii=False) + "\n" for f in frames).encode()


class CapturingTransport(httpx.MockTransport):
    """MockTransport that also remembers every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []

        def _handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_handler)


def streaming_transport(
    parts: Iterable[bytes], status: int = 200, error: Exception | None = None, hang: bool = False,
) -> CapturingTransport:
    parts = list(parts)
    return CapturingTransport(lambda request: httpx.Response(status, content=chunked(parts, error, hang)))


# ---- Fixtures ----


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    ws = tmp_path / "workspace"
    ws.mkdir()
    return ws


@pytest.fixture
def history() -> HistoryStore:
    return HistoryStore()


@pytest.fixture
def memory() -> MemoryStore:
    store = MemoryStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def skill_registry() -> SkillRegistry:
    return SkillRegistry()


@pytest.fixture
def local_config(tmp_path: Path) -> ChatBridgeConfig:
    """Config whose default provider is the local OpenAI-compatible server."""
    return ChatBridgeConfig(
        providers=ProvidersConfig(
            default="openai-compatible",
            openai_compatible=OpenAICompatibleConfig(base_url="http://llm.test/v1", model="test-model"),
        ),
        history=HistoryConfig(dir=""),
        memory=MemoryConfig(path=":memory:"),
        skills=SkillsConfig(workspace=str(tmp_path / "workspace"), timeout=5),
        web=WebConfig(port=0),
    )

"""LLM provider abstraction -- one streaming contract over several wire formats.

Every adapter reports a streamed turn through ``StreamCallbacks``:
``on_token`` zero or more times with non-empty text, in backend order, then
exactly one of ``on_complete`` / ``on_error``. ``StreamTurn`` enforces that per
call, so adapters never share mutable state between turns.
"""

from __future__ import annotations

import asyncio
import codecs
import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from chatbridge.errors import ProviderError, StreamCancelled
from chatbridge.log import logger
from chatbridge.types import ChatMessage, ModelConfig


@dataclass
class StreamCallbacks:
    """Sinks for one streamed turn. Each may be a plain or a coroutine function."""

    on_token: Callable[[str], Any]
    on_error: Callable[[Exception], Any]
    on_complete: Callable[[], Any]


async def _invoke(fn: Callable[..., Any], *args: Any) -> None:
    result = fn(*args)
    if inspect.isawaitable(result):
        await result


class StreamTurn:
    """Per-call guard: drops empty tokens, fires one terminal callback at most."""

    def __init__(self, callbacks: StreamCallbacks) -> None:
        self._callbacks = callbacks
        self.finished = False
        self.token_count = 0

    async def token(self, text: str) -> None:
        if self.finished or not text:
            return
        self.token_count += 1
        await _invoke(self._callbacks.on_token, text)

    async def complete(self) -> None:
        if self.finished:
            return
        self.finished = True
        try:
            await _invoke(self._callbacks.on_complete)
        except Exception as e:
            logger.error(f"on_complete callback raised: {e}")

    async def fail(self, error: Exception) -> None:
        if self.finished:
            return
        self.finished = True
        try:
            await _invoke(self._callbacks.on_error, error)
        except Exception as e:
            logger.error(f"on_error callback raised: {e}")


class LineBuffer:
    """Reassemble newline-delimited frames from arbitrary byte chunks.

    Holds the trailing partial line between feeds; UTF-8 sequences split
    across chunk boundaries are decoded incrementally.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes) -> list[str]:
        self._pending += self._decoder.decode(chunk)
        *lines, self._pending = self._pending.split("\n")
        return lines

    def flush(self) -> list[str]:
        tail = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        return [tail] if tail.strip() else []


def to_wire_messages(messages: Sequence[ChatMessage]) -> list[dict[str, str]]:
    return [{"role": m.role, "content": m.content} for m in messages]


def as_provider_error(provider: str, error: Exception) -> ProviderError:
    """Normalize transport exceptions into ProviderError."""
    if isinstance(error, ProviderError):
        return error
    status = getattr(getattr(error, "response", None), "status_code", None)
    if isinstance(status, int):
        return ProviderError(f"{provider} returned HTTP {status}", status_code=status)
    return ProviderError(f"{provider} request failed: {type(error).__name__}: {error}")


async def run_cancellable(work: Awaitable[None], cancel: asyncio.Event | None) -> None:
    """Await ``work`` unless ``cancel`` is set first, then raise StreamCancelled."""
    if cancel is None:
        await work
        return
    if cancel.is_set():
        if inspect.iscoroutine(work):
            work.close()
        raise StreamCancelled()
    task = asyncio.ensure_future(work)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()
        await asyncio.gather(task, waiter, return_exceptions=True)
    if task.cancelled():
        raise StreamCancelled()
    task.result()


class LLMProvider(ABC):
    """Abstract LLM provider. One subclass per backend wire format."""

    name: str = ""
    model_config: ModelConfig

    async def stream_chat(
        self,
        messages: Sequence[ChatMessage],
        callbacks: StreamCallbacks,
        cancel: asyncio.Event | None = None,
    ) -> None:
        """Stream one turn. Never raises; every failure ends in ``on_error``."""
        turn = StreamTurn(callbacks)
        try:
            await run_cancellable(self._stream(messages, turn), cancel)
            # Backend closed the stream without an explicit completion frame.
            await turn.complete()
        except StreamCancelled as e:
            logger.info(f"{self.name} stream cancelled after {turn.token_count} tokens")
            await turn.fail(e)
        except Exception as e:
            error = as_provider_error(self.name, e)
            logger.warning(f"{self.name} stream failed after {turn.token_count} tokens: {error}")
            await turn.fail(error)

    @abstractmethod
    async def _stream(self, messages: Sequence[ChatMessage], turn: StreamTurn) -> None:
        """Read the backend stream, reporting tokens and completion through ``turn``.

        Raising is how an adapter reports a transport or protocol failure.
        """

    @abstractmethod
    async def chat(self, messages: Sequence[ChatMessage]) -> str:
        """Non-streaming completion. Raises ProviderError on backend failure."""

"""Chat turn orchestration -- provider stream in, uniform chunk stream out."""

from __future__ import annotations

import asyncio
import json
import re
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Literal

from chatbridge.errors import ChatBridgeError, StreamCancelled
from chatbridge.history import HistoryStore
from chatbridge.log import logger
from chatbridge.provider import StreamCallbacks
from chatbridge.provider_factory import ProviderFactory
from chatbridge.types import ChatMessage, ProviderInfo, StreamChunk

ChunkSink = Callable[[StreamChunk], Awaitable[None]]

_SQL_SYSTEM_PROMPT = """You are a SQL expert. Convert natural language queries to SQL based on the provided database schema.

Database Schema:
{schema}

Rules:
1. Return only the SQL query without any explanation
2. Use proper SQL syntax compatible with PostgreSQL
3. Include appropriate JOINs when needed
4. Use meaningful aliases for tables when necessary
5. Format the SQL with proper indentation"""

_CODE_FENCE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?```$", re.DOTALL)


@dataclass
class TurnResult:
    """How a streamed turn ended, for the caller's own bookkeeping."""

    status: Literal["completed", "error", "abandoned"]
    conversation_id: str
    message: ChatMessage | None = None
    error: str | None = None


class ChatService:
    """Drive one provider turn, accumulate the reply, persist, and report chunks.

    ``send`` receives ``token`` chunks as they arrive, then exactly one ``done``
    or ``error`` chunk. If ``send`` raises, the client is treated as gone: the
    turn is abandoned and no assistant message is persisted. Setting ``cancel``
    abandons the turn the same way, even after the last token.
    """

    def __init__(self, history: HistoryStore, providers: ProviderFactory) -> None:
        self.history = history
        self.providers = providers

    async def stream_chat(
        self,
        conversation_id: str,
        message: str,
        send: ChunkSink,
        provider_type: str | None = None,
        cancel: asyncio.Event | None = None,
    ) -> TurnResult:
        abandoned = False

        async def deliver(chunk: StreamChunk) -> None:
            nonlocal abandoned
            try:
                await send(chunk)
            except Exception:
                abandoned = True
                raise

        async def deliver_terminal(chunk: StreamChunk) -> None:
            if abandoned:
                return
            try:
                await deliver(chunk)
            except Exception as e:
                logger.info(f"Client left before final chunk of {conversation_id}: {e}")

        try:
            conversation = await self.history.append(conversation_id, ChatMessage(role="user", content=message))
        except OSError as e:
            logger.error(f"Cannot save user message for {conversation_id}: {e}")
            error = f"Failed to save message: {e}"
            await deliver_terminal(StreamChunk(type="error", data=error))
            return TurnResult(status="error", conversation_id=conversation_id, error=error)
        if conversation is None:
            error = f"Conversation {conversation_id} not found"
            await deliver_terminal(StreamChunk(type="error", data=error))
            return TurnResult(status="error", conversation_id=conversation_id, error=error)

        try:
            provider = self.providers.create_provider(provider_type)
        except ChatBridgeError as e:
            logger.error(f"Cannot start turn for {conversation_id}: {e}")
            await deliver_terminal(StreamChunk(type="error", data=str(e)))
            return TurnResult(status="error", conversation_id=conversation_id, error=str(e))

        history: Sequence[ChatMessage] = list(conversation.messages)
        parts: list[str] = []
        result = TurnResult(status="error", conversation_id=conversation_id)

        async def on_token(text: str) -> None:
            parts.append(text)
            await deliver(StreamChunk(type="token", data=text))

        async def on_error(error: Exception) -> None:
            result.status = "abandoned" if abandoned or isinstance(error, StreamCancelled) else "error"
            result.error = str(error)
            await deliver_terminal(StreamChunk(type="error", data=str(error)))

        async def on_complete() -> None:
            if cancel is not None and cancel.is_set():
                await on_error(StreamCancelled())
                return
            reply = ChatMessage(role="assistant", content="".join(parts))
            try:
                await self.history.append(conversation_id, reply)
            except OSError as e:
                logger.error(f"Cannot save reply for {conversation_id}: {e}")
                result.status = "error"
                result.error = f"Failed to save reply: {e}"
                await deliver_terminal(StreamChunk(type="error", data=result.error))
                return
            result.status = "completed"
            result.message = reply
            payload = json.dumps(
                {"message": reply.to_dict(), "conversationId": conversation_id}, ensure_ascii=False,
            )
            await deliver_terminal(StreamChunk(type="done", data=payload))

        logger.info(f"Turn started: conversation={conversation_id} provider={provider.name}")
        await provider.stream_chat(history, StreamCallbacks(on_token, on_error, on_complete), cancel=cancel)
        logger.info(
            f"Turn {result.status}: conversation={conversation_id} tokens={len(parts)}"
            + (f" error={result.error}" if result.error else "")
        )
        return result

    async def chat(self, messages: Sequence[ChatMessage], provider_type: str | None = None) -> str:
        provider = self.providers.create_provider(provider_type)
        return await provider.chat(messages)

    async def text_to_sql(self, schema: str, prompt: str, provider_type: str | None = None) -> str:
        messages = [
            ChatMessage(role="system", content=_SQL_SYSTEM_PROMPT.format(schema=schema)),
            ChatMessage(role="user", content=prompt),
        ]
        sql = (await self.chat(messages, provider_type)).strip()
        fenced = _CODE_FENCE.match(sql)
        return fenced.group(1).strip() if fenced else sql

    def get_available_providers(self) -> list[ProviderInfo]:
        return self.providers.get_available_providers()

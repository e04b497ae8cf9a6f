"""Conversation history -- in-memory store with optional JSONL persistence."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

from chatbridge.log import logger
from chatbridge.types import ChatMessage, Conversation, conversation_title, now_ms


class HistoryStore:
    """Keyed conversation store.

    Appends are serialized per conversation id through ``lock_for``; different
    conversations never contend. With ``history_dir`` set every conversation is
    mirrored to ``<id>.jsonl`` (metadata line, then one message per line).
    """

    def __init__(self, history_dir: Path | None = None) -> None:
        self.history_dir = history_dir
        self._conversations: dict[str, Conversation] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        if history_dir is not None:
            history_dir.mkdir(parents=True, exist_ok=True)
            self._load_all()

    def lock_for(self, conversation_id: str) -> asyncio.Lock:
        if conversation_id not in self._locks:
            self._locks[conversation_id] = asyncio.Lock()
        return self._locks[conversation_id]

    def create(self, first_message: str | None = None) -> Conversation:
        conversation = Conversation(
            title=conversation_title(first_message) if first_message else "New Conversation",
        )
        self._conversations[conversation.id] = conversation
        self._save(conversation)
        return conversation

    def get(self, conversation_id: str) -> Conversation | None:
        return self._conversations.get(conversation_id)

    def list(self) -> list[Conversation]:
        return sorted(self._conversations.values(), key=lambda c: c.updated_at, reverse=True)

    async def append(self, conversation_id: str, message: ChatMessage) -> Conversation | None:
        async with self.lock_for(conversation_id):
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                return None
            conversation.messages.append(message)
            conversation.updated_at = max(now_ms(), conversation.updated_at)
            if len(conversation.messages) == 1 and message.role == "user":
                conversation.title = conversation_title(message.content)
            self._save(conversation)
            return conversation

    def update_title(self, conversation_id: str, title: str) -> Conversation | None:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return None
        conversation.title = title
        conversation.updated_at = now_ms()
        self._save(conversation)
        return conversation

    def delete(self, conversation_id: str) -> bool:
        if self._conversations.pop(conversation_id, None) is None:
            return False
        self._locks.pop(conversation_id, None)
        path = self._path_for(conversation_id)
        if path is not None and path.exists():
            path.unlink()
        return True

    def clear(self) -> None:
        for conversation_id in list(self._conversations):
            self.delete(conversation_id)

    def _path_for(self, conversation_id: str) -> Path | None:
        if self.history_dir is None:
            return None
        safe = "".join(c for c in conversation_id if c.isalnum() or c in "-_")
        return self.history_dir / f"{safe}.jsonl"

    def _save(self, conversation: Conversation) -> None:
        path = self._path_for(conversation.id)
        if path is None:
            return
        with open(path, "w", encoding="utf-8") as f:
            meta = {
                "_type": "metadata",
                "id": conversation.id,
                "title": conversation.title,
                "created_at": conversation.created_at,
                "updated_at": conversation.updated_at,
            }
            f.write(json.dumps(meta, ensure_ascii=False) + "\n")
            for msg in conversation.messages:
                f.write(json.dumps(msg.to_dict(), ensure_ascii=False) + "\n")

    def _load_all(self) -> None:
        assert self.history_dir is not None
        for path in sorted(self.history_dir.glob("*.jsonl")):
            conversation = self._load(path)
            if conversation:
                self._conversations[conversation.id] = conversation
        if self._conversations:
            logger.info(f"Loaded {len(self._conversations)} conversations from {self.history_dir}")

    def _load(self, path: Path) -> Conversation | None:
        meta: dict = {}
        messages: list[ChatMessage] = []
        try:
            for line in path.read_text(encoding="utf-8").splitlines():
                if not line.strip():
                    continue
                data = json.loads(line)
                if data.get("_type") == "metadata":
                    meta = data
                else:
                    messages.append(ChatMessage.from_dict(data))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Corrupt conversation file {path}: {e}")
            return None
        if not meta.get("id"):
            logger.warning(f"Conversation file {path} has no metadata line, skipping")
            return None
        created = int(meta.get("created_at") or now_ms())
        return Conversation(
            id=meta["id"],
            title=meta.get("title") or "New Conversation",
            messages=messages,
            created_at=created,
            updated_at=int(meta.get("updated_at") or created),
        )

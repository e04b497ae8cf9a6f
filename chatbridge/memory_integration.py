"""Memory integration -- conversation, skill and preference snapshots with fixed TTLs.

Everything here is best effort: a storage failure is logged and the chat or
skill flow that triggered it carries on. Reads return None on failure.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Any

from chatbridge.log import logger
from chatbridge.memory import MemoryStore
from chatbridge.types import Conversation, now_ms

CONVERSATION_TTL = 3600
RECENT_MESSAGES_TTL = 1800
RECENT_MESSAGE_COUNT = 10
SKILL_RESULT_TTL = 7200
SKILL_CACHE_TTL = 300
USER_PREFERENCES_TTL = 86400
CONTEXT_TTL = 3600

_STORAGE_ERRORS = (sqlite3.Error, TypeError, ValueError)


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _cache_key(skill_id: str, parameters: dict[str, Any]) -> str:
    return f"skill_cache:{skill_id}:{json.dumps(parameters, sort_keys=True, ensure_ascii=False)}"


class MemoryIntegration:
    def __init__(self, memory: MemoryStore) -> None:
        self.memory = memory

    def store_conversation_context(self, conversation: Conversation) -> None:
        try:
            self.memory.put(
                f"conversation:{conversation.id}",
                conversation.to_dict(),
                category="conversations",
                metadata={
                    "conversationId": conversation.id,
                    "title": conversation.title,
                    "messageCount": len(conversation.messages),
                    "lastUpdatedAt": conversation.updated_at,
                },
                ttl_seconds=CONVERSATION_TTL,
            )
            recent = [m.to_dict() for m in conversation.messages[-RECENT_MESSAGE_COUNT:]]
            self.memory.put(
                f"recent_messages:{conversation.id}",
                recent,
                category="messages",
                metadata={"conversationId": conversation.id, "messageCount": len(recent)},
                ttl_seconds=RECENT_MESSAGES_TTL,
            )
            logger.debug(f"Stored conversation context for {conversation.id}")
        except _STORAGE_ERRORS as e:
            logger.error(f"Failed to store conversation context: {e}")

    def get_conversation_context(self, conversation_id: str) -> dict[str, Any] | None:
        return self._read(f"conversation:{conversation_id}", "conversation context")

    def get_recent_messages(self, conversation_id: str) -> list[dict[str, Any]] | None:
        return self._read(f"recent_messages:{conversation_id}", "recent messages")

    def store_skill_result(self, skill_id: str, parameters: dict[str, Any], result: Any) -> None:
        try:
            self.memory.put(
                f"skill_result:{skill_id}:{now_ms()}",
                result,
                category="skills",
                metadata={"skillId": skill_id, "parameters": parameters, "executedAt": _iso_now()},
                ttl_seconds=SKILL_RESULT_TTL,
            )
            self.memory.put(
                _cache_key(skill_id, parameters),
                result,
                category="skill_cache",
                metadata={"skillId": skill_id, "parameters": parameters, "cachedAt": _iso_now()},
                ttl_seconds=SKILL_CACHE_TTL,
            )
            logger.debug(f"Stored skill result for {skill_id}")
        except _STORAGE_ERRORS as e:
            logger.error(f"Failed to store skill result: {e}")

    def get_cached_skill_result(self, skill_id: str, parameters: dict[str, Any]) -> Any:
        try:
            key = _cache_key(skill_id, parameters)
        except _STORAGE_ERRORS as e:
            logger.error(f"Failed to build skill cache key: {e}")
            return None
        return self._read(key, "cached skill result")

    def store_user_preferences(self, user_id: str, preferences: dict[str, Any]) -> None:
        try:
            self.memory.put(
                f"user_preferences:{user_id}",
                preferences,
                category="user_data",
                metadata={"userId": user_id, "updatedAt": _iso_now()},
                ttl_seconds=USER_PREFERENCES_TTL,
            )
        except _STORAGE_ERRORS as e:
            logger.error(f"Failed to store user preferences: {e}")

    def get_user_preferences(self, user_id: str) -> dict[str, Any] | None:
        return self._read(f"user_preferences:{user_id}", "user preferences")

    def store_context_info(self, context_key: str, info: Any, category: str = "context") -> None:
        try:
            self.memory.put(
                f"{category}:{context_key}",
                info,
                category=category,
                metadata={"storedAt": _iso_now()},
                ttl_seconds=CONTEXT_TTL,
            )
        except _STORAGE_ERRORS as e:
            logger.error(f"Failed to store context info: {e}")

    def get_context_info(self, context_key: str, category: str = "context") -> Any:
        return self._read(f"{category}:{context_key}", "context info")

    def _read(self, key: str, what: str) -> Any:
        try:
            record = self.memory.get(key)
        except _STORAGE_ERRORS as e:
            logger.error(f"Failed to retrieve {what}: {e}")
            return None
        return record.value if record is not None else None

"""Core data structures."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Literal

MessageRole = Literal["system", "user", "assistant"]
ChunkType = Literal["token", "error", "done"]
ParameterType = Literal["string", "number", "boolean", "object", "array"]

_TITLE_MAX_LENGTH = 50


def generate_id() -> str:
    return uuid.uuid4().hex


def now_ms() -> int:
    return int(time.time() * 1000)


def conversation_title(text: str) -> str:
    """Derive a conversation title from the first user message."""
    first_line = text.strip().splitlines()[0].strip() if text.strip() else ""
    if not first_line:
        return "New Conversation"
    if len(first_line) > _TITLE_MAX_LENGTH:
        return first_line[:_TITLE_MAX_LENGTH].rstrip() + "..."
    return first_line


@dataclass(frozen=True)
class ChatMessage:
    """One message in a conversation. Sequence order is authoritative, not timestamp."""

    role: MessageRole
    content: str
    id: str = field(default_factory=generate_id)
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "role": self.role, "content": self.content, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatMessage:
        return cls(
            role=data.get("role", "user"),
            content=data.get("content", ""),
            id=data.get("id") or generate_id(),
            timestamp=int(data.get("timestamp") or now_ms()),
        )


@dataclass
class Conversation:
    id: str = field(default_factory=generate_id)
    title: str = "New Conversation"
    messages: list[ChatMessage] = field(default_factory=list)
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "messages": [m.to_dict() for m in self.messages],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class StreamChunk:
    """Outward streaming event. A turn ends with exactly one `error` or `done`."""

    type: ChunkType
    data: str

    @property
    def is_terminal(self) -> bool:
        return self.type != "token"

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type, "data": self.data}


@dataclass(frozen=True)
class ModelConfig:
    """Resolved per-provider settings. Built once at provider construction."""

    provider_id: str
    model: str
    temperature: float = 0.7
    max_tokens: int = 4096
    api_key: str = ""
    base_url: str = ""
    request_timeout: float = 60.0


@dataclass(frozen=True)
class ProviderInfo:
    type: str
    name: str

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type, "name": self.name}


@dataclass(frozen=True)
class SkillParameter:
    name: str
    type: ParameterType
    required: bool = False
    description: str = ""
    default_value: Any = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "type": self.type, "required": self.required}
        if self.description:
            data["description"] = self.description
        if self.default_value is not None:
            data["defaultValue"] = self.default_value
        return data


@dataclass(frozen=True)
class SkillDefinition:
    id: str
    name: str
    description: str
    parameters: tuple[SkillParameter, ...] = ()
    category: str = "general"
    version: str = "1.0.0"
    author: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "parameters": [p.to_dict() for p in self.parameters],
            "category": self.category,
            "version": self.version,
        }
        if self.author:
            data["author"] = self.author
        return data


@dataclass
class SkillExecutionRequest:
    skill_id: str
    parameters: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SkillExecutionRequest:
        params = data.get("parameters")
        return cls(
            skill_id=str(data.get("skillId") or data.get("skill_id") or ""),
            parameters=params if isinstance(params, dict) else {},
        )


@dataclass
class SkillExecutionResult:
    success: bool
    data: Any = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": self.success, "metadata": self.metadata}
        if self.data is not None:
            out["data"] = self.data
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass
class SkillExecutionResponse:
    result: SkillExecutionResult
    execution_time: int

    def to_dict(self) -> dict[str, Any]:
        return {"result": self.result.to_dict(), "executionTime": self.execution_time}


@dataclass
class MemoryRecord:
    """Expiring key-value record. `expires_at` is epoch seconds; None never expires."""

    key: str
    value: Any
    category: str | None = None
    metadata: dict[str, Any] | None = None
    id: str = field(default_factory=generate_id)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    expires_at: float | None = None

    def is_expired(self, now: float | None = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (time.time() if now is None else now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "value": self.value,
            "category": self.category,
            "metadata": self.metadata,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "expiresAt": self.expires_at,
        }

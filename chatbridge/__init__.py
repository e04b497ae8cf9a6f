"""ChatBridge - streaming chat backend over pluggable LLM providers, with skills and memory."""

from chatbridge.types import ChatMessage, Conversation, StreamChunk, SkillDefinition, SkillParameter
from chatbridge.provider import LLMProvider, StreamCallbacks
from chatbridge.provider_factory import ProviderFactory
from chatbridge.chat import ChatService
from chatbridge.skills import SkillExecutor, SkillRegistry
from chatbridge.app import ChatBridge

__all__ = [
    "ChatBridge",
    "ChatService",
    "ProviderFactory",
    "LLMProvider",
    "StreamCallbacks",
    "SkillRegistry",
    "SkillExecutor",
    "ChatMessage",
    "Conversation",
    "StreamChunk",
    "SkillDefinition",
    "SkillParameter",
]

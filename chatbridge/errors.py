"""Exception hierarchy."""

from __future__ import annotations


class ChatBridgeError(Exception):
    """Base class for all ChatBridge errors."""


class ConfigurationError(ChatBridgeError, ValueError):
    """Missing credential, unknown provider id, or otherwise unusable config.

    Raised at construction time, never deferred to first use.
    """


class ProviderError(ChatBridgeError, RuntimeError):
    """Backend transport or protocol failure."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StreamCancelled(ProviderError):
    """The caller cancelled a streaming turn."""

    def __init__(self, message: str = "stream cancelled") -> None:
        super().__init__(message)


class SkillError(ChatBridgeError):
    """Skill handler failure with a message safe to return to the caller."""

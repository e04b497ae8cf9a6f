"""Skill ABC -- a definition plus the handler that executes it."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from chatbridge.skills.registry import SkillRegistry
from chatbridge.types import SkillDefinition


class Skill(ABC):
    """Base class for built-in skills.

    Constructing a skill registers its definition with the given registry,
    exactly once.
    """

    def __init__(self, registry: SkillRegistry) -> None:
        registry.register(self.definition)

    @property
    @abstractmethod
    def definition(self) -> SkillDefinition: ...

    @property
    def id(self) -> str:
        return self.definition.id

    @abstractmethod
    async def execute(self, params: dict[str, Any]) -> Any:
        """Run the skill on already-validated parameters. Raise to report failure."""
        ...

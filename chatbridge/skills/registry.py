"""Skill registry -- in-memory catalog of skill definitions keyed by id."""

from __future__ import annotations

from chatbridge.log import logger
from chatbridge.types import SkillDefinition


class SkillRegistry:
    """Explicitly constructed catalog. One instance per process (or per test).

    Registering an id that already exists replaces the previous definition.
    """

    def __init__(self) -> None:
        self._skills: dict[str, SkillDefinition] = {}

    def register(self, definition: SkillDefinition) -> None:
        if definition.id in self._skills:
            logger.warning(f"Skill '{definition.id}' registered twice, replacing previous definition")
        self._skills[definition.id] = definition
        logger.info(f"Registered skill: {definition.name} ({definition.id})")

    def unregister(self, skill_id: str) -> None:
        if self._skills.pop(skill_id, None) is not None:
            logger.info(f"Unregistered skill: {skill_id}")

    def get(self, skill_id: str) -> SkillDefinition | None:
        return self._skills.get(skill_id)

    def get_all(self) -> list[SkillDefinition]:
        return list(self._skills.values())

    def get_by_category(self, category: str) -> list[SkillDefinition]:
        return [s for s in self._skills.values() if s.category == category]

    def has(self, skill_id: str) -> bool:
        return skill_id in self._skills

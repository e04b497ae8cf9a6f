"""Skills -- registry, executor, and the built-in skill set."""

from __future__ import annotations

from pathlib import Path

import httpx

from chatbridge.config import SkillsConfig
from chatbridge.skills.base import Skill
from chatbridge.skills.calculator import CalculatorSkill
from chatbridge.skills.database_query import DatabaseQuerySkill
from chatbridge.skills.executor import SkillExecutor
from chatbridge.skills.file_operations import FileOperationsSkill
from chatbridge.skills.registry import SkillRegistry
from chatbridge.skills.web_search import WebSearchSkill

__all__ = [
    "Skill",
    "SkillExecutor",
    "SkillRegistry",
    "build_skills",
]


def build_skills(
    registry: SkillRegistry,
    executor: SkillExecutor,
    config: SkillsConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[Skill]:
    """Register the built-in skills and wire their handlers into ``executor``."""
    skills: list[Skill] = [
        CalculatorSkill(registry),
        WebSearchSkill(
            registry,
            api_key=config.web_search_api_key,
            max_results_cap=config.max_search_results,
            transport=transport,
        ),
        FileOperationsSkill(registry, workspace=Path(config.workspace).expanduser()),
        DatabaseQuerySkill(registry, database=config.database),
    ]
    for skill in skills:
        executor.add_skill(skill)
    return skills

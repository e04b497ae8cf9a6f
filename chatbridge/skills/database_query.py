"""Database query skill -- read-only SELECT against a configured SQLite file."""

from __future__ import annotations

import asyncio
import base64
import sqlite3
from pathlib import Path
from typing import Any

from chatbridge.errors import SkillError
from chatbridge.log import logger
from chatbridge.skills.base import Skill
from chatbridge.skills.registry import SkillRegistry
from chatbridge.types import SkillDefinition, SkillParameter

_READ_ONLY_KEYWORDS = ("select", "with")


class DatabaseQuerySkill(Skill):
    """Runs one statement per call. The connection is opened with ``mode=ro``
    so SQLite itself refuses writes even if a statement slips past the
    keyword check."""

    def __init__(self, registry: SkillRegistry, database: str = "", max_rows: int = 500) -> None:
        self._database = database
        self._max_rows = max_rows
        super().__init__(registry)

    @property
    def definition(self) -> SkillDefinition:
        return SkillDefinition(
            id="database-query",
            name="Database Query",
            description="Executes database queries (read-only)",
            parameters=(
                SkillParameter(name="query", type="string", required=True, description="SQL query to execute"),
                SkillParameter(name="parameters", type="array", description="Query parameters", default_value=[]),
            ),
            category="data",
            version="1.0.0",
            author="System",
        )

    async def execute(self, params: dict[str, Any]) -> dict[str, Any]:
        if not self._database:
            raise SkillError("Database query not configured (no database path)")
        query = params["query"].strip().rstrip(";").strip()
        words = query.split(None, 1)
        if not words or words[0].lower() not in _READ_ONLY_KEYWORDS:
            raise SkillError("Only read-only SELECT queries are allowed")
        args = list(params.get("parameters") or [])

        columns, rows, truncated = await asyncio.to_thread(self._run, query, args)
        return {
            "query": query,
            "columns": columns,
            "rows": rows,
            "rowCount": len(rows),
            "truncated": truncated,
        }

    def _run(self, query: str, args: list[Any]) -> tuple[list[str], list[list[Any]], bool]:
        path = Path(self._database).expanduser().resolve()
        if not path.exists():
            raise SkillError(f"Database file not found: {self._database}")
        try:
            connection = sqlite3.connect(f"{path.as_uri()}?mode=ro", uri=True)
        except sqlite3.Error as e:
            raise SkillError(f"Cannot open database: {e}") from e
        try:
            cursor = connection.execute(query, args)
            columns = [d[0] for d in cursor.description or ()]
            fetched = cursor.fetchmany(self._max_rows + 1)
        except sqlite3.Error as e:
            logger.info(f"Query rejected by SQLite: {e}")
            raise SkillError(f"Query failed: {e}") from e
        finally:
            connection.close()
        truncated = len(fetched) > self._max_rows
        rows = [[_json_cell(cell) for cell in row] for row in fetched[: self._max_rows]]
        return columns, rows, truncated


def _json_cell(value: Any) -> Any:
    """BLOB cells come back as bytes; report them base64-encoded."""
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    return value

"""File operations skill -- read, write, list, exists and delete inside a workspace."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from chatbridge.errors import SkillError
from chatbridge.skills.base import Skill
from chatbridge.skills.registry import SkillRegistry
from chatbridge.types import SkillDefinition, SkillParameter

OPERATIONS = ("read", "write", "list", "exists", "delete")
_MAX_READ_BYTES = 1_000_000


def resolve_in_workspace(path: str, workspace: Path) -> Path:
    """Resolve ``path`` against ``workspace``; anything outside it is denied."""
    p = Path(path).expanduser()
    if not p.is_absolute():
        p = workspace / p
    p = p.resolve()
    if not p.is_relative_to(workspace.resolve()):
        raise SkillError(f"Access denied: {path} is outside the workspace")
    return p


class FileOperationsSkill(Skill):
    def __init__(self, registry: SkillRegistry, workspace: Path) -> None:
        self._workspace = workspace
        super().__init__(registry)

    @property
    def definition(self) -> SkillDefinition:
        return SkillDefinition(
            id="file-operations",
            name="File Operations",
            description="Performs basic file operations like reading, writing, and listing files",
            parameters=(
                SkillParameter(
                    name="operation",
                    type="string",
                    required=True,
                    description=f"Operation to perform ({', '.join(OPERATIONS)})",
                ),
                SkillParameter(name="path", type="string", description="File or directory path", default_value="."),
                SkillParameter(name="content", type="string", description="Content to write (write only)"),
            ),
            category="files",
            version="1.0.0",
            author="System",
        )

    async def execute(self, params: dict[str, Any]) -> dict[str, Any]:
        operation = params["operation"]
        if operation not in OPERATIONS:
            raise SkillError(f"Unsupported file operation: {operation}")
        self._workspace.mkdir(parents=True, exist_ok=True)
        path = resolve_in_workspace(params.get("path", "."), self._workspace)
        relative = path.relative_to(self._workspace.resolve()).as_posix() or "."
        result: dict[str, Any] = {"operation": operation, "path": relative}

        if operation == "exists":
            result["exists"] = path.exists()
        elif operation == "read":
            if not path.is_file():
                raise SkillError(f"File not found: {relative}")
            size = path.stat().st_size
            if size > _MAX_READ_BYTES:
                raise SkillError(f"File too large to read ({size} bytes)")
            result["content"] = path.read_text(encoding="utf-8", errors="replace")
            result["size"] = size
        elif operation == "write":
            content = params.get("content")
            if content is None:
                raise SkillError("The write operation requires a content parameter")
            if path.is_dir():
                raise SkillError(f"Cannot write to a directory: {relative}")
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
            result["size"] = path.stat().st_size
        elif operation == "list":
            if not path.is_dir():
                raise SkillError(f"Not a directory: {relative}")
            result["entries"] = [
                {
                    "name": item.name,
                    "type": "directory" if item.is_dir() else "file",
                    "size": item.stat().st_size if item.is_file() else None,
                }
                for item in sorted(path.iterdir())
            ]
        else:
            if not path.is_file():
                raise SkillError(f"File not found: {relative}")
            path.unlink()
            result["deleted"] = True
        return result

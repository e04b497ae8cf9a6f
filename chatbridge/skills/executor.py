"""Skill execution -- validate a parameter bag, dispatch, time, and wrap the outcome."""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

from chatbridge.log import logger
from chatbridge.skills.base import Skill
from chatbridge.skills.registry import SkillRegistry
from chatbridge.types import SkillExecutionRequest, SkillExecutionResponse, SkillExecutionResult, SkillParameter

Handler = Callable[[dict[str, Any]], Any]


def describe_type(value: Any) -> str:
    """Name a runtime value using the parameter type vocabulary."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _matches(expected: str, value: Any) -> bool:
    if expected == "string":
        return isinstance(value, str)
    if expected == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if expected == "boolean":
        return isinstance(value, bool)
    if expected == "array":
        return isinstance(value, (list, tuple))
    if expected == "object":
        return isinstance(value, dict)
    return True


def validate_parameters(specs: Sequence[SkillParameter], params: Mapping[str, Any]) -> list[str]:
    """Return every violation of ``specs`` by ``params``; empty means valid."""
    errors: list[str] = []
    for spec in specs:
        if spec.name not in params:
            if spec.required:
                errors.append(f"Missing required parameter: {spec.name}")
            continue
        value = params[spec.name]
        if not _matches(spec.type, value):
            errors.append(f"Parameter {spec.name} should be of type {spec.type}, got {describe_type(value)}")
    return errors


def apply_defaults(specs: Sequence[SkillParameter], params: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(params)
    for spec in specs:
        if spec.name not in merged and spec.default_value is not None:
            merged[spec.name] = spec.default_value
    return merged


def _failure(message: str) -> SkillExecutionResult:
    return SkillExecutionResult(success=False, error=message)


class SkillExecutor:
    """Run skills by id. ``execute`` never raises; every outcome is a response."""

    def __init__(
        self,
        registry: SkillRegistry,
        handlers: Mapping[str, Handler] | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.registry = registry
        self.timeout = timeout
        self._handlers: dict[str, Handler] = dict(handlers or {})

    def add_handler(self, skill_id: str, handler: Handler) -> None:
        self._handlers[skill_id] = handler

    def add_skill(self, skill: Skill) -> None:
        self.add_handler(skill.id, skill.execute)

    async def execute(self, request: SkillExecutionRequest) -> SkillExecutionResponse:
        start = time.monotonic()
        try:
            result = await self._run(request)
        except Exception:
            logger.exception(f"Unexpected failure executing skill '{request.skill_id}'")
            result = _failure("Internal error")
        elapsed = int((time.monotonic() - start) * 1000)
        result.metadata = {**result.metadata, "executionTime": elapsed, "skillId": request.skill_id}
        return SkillExecutionResponse(result=result, execution_time=elapsed)

    async def _run(self, request: SkillExecutionRequest) -> SkillExecutionResult:
        definition = self.registry.get(request.skill_id)
        if definition is None:
            return _failure(f"Skill with ID {request.skill_id} not found")
        if not isinstance(request.parameters, Mapping):
            return _failure("Parameter validation failed: parameters must be an object")

        errors = validate_parameters(definition.parameters, request.parameters)
        if errors:
            logger.info(f"Skill '{definition.id}' rejected: {'; '.join(errors)}")
            return _failure(f"Parameter validation failed: {', '.join(errors)}")

        params = apply_defaults(definition.parameters, request.parameters)
        handler = self._handlers.get(definition.id)
        try:
            if handler is None:
                data = _echo(definition.id, params)
            else:
                data = await asyncio.wait_for(_call(handler, params), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Skill '{definition.id}' timed out after {self.timeout:g}s")
            return _failure(f"Skill execution timed out after {self.timeout:g}s")
        except Exception as e:
            logger.warning(f"Skill '{definition.id}' failed: {e}")
            return _failure(str(e) or type(e).__name__)
        return SkillExecutionResult(success=True, data=data, metadata={"parameters": params})


async def _call(handler: Handler, params: dict[str, Any]) -> Any:
    result = handler(params)
    if inspect.isawaitable(result):
        result = await result
    return result


def _echo(skill_id: str, params: dict[str, Any]) -> dict[str, Any]:
    """Fallback for registered skills that have no handler."""
    return {
        "skillId": skill_id,
        "parameters": params,
        "executedAt": datetime.now(timezone.utc).isoformat(),
        "result": "Skill executed successfully",
    }

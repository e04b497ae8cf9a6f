"""Calculator skill -- arithmetic through a constrained AST walker, never eval()."""

from __future__ import annotations

import ast
import operator
import re
from datetime import datetime, timezone
from typing import Any

from chatbridge.errors import SkillError
from chatbridge.log import logger
from chatbridge.skills.base import Skill
from chatbridge.types import SkillDefinition, SkillParameter

_UNSAFE_CHARS = re.compile(r"[^-()\d/*+. ]")
_MAX_EXPRESSION_LENGTH = 256

_BINARY_OPS: dict[type, Any] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}
_UNARY_OPS: dict[type, Any] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


def sanitize_expression(expression: str) -> str:
    """Strip everything except digits, ``+ - * /``, parentheses, dots and spaces."""
    return _UNSAFE_CHARS.sub("", expression).strip()


def evaluate(expression: str) -> int | float:
    """Evaluate a sanitized arithmetic expression."""
    if not expression:
        raise SkillError("Expression is empty after removing unsupported characters")
    if len(expression) > _MAX_EXPRESSION_LENGTH:
        raise SkillError(f"Expression longer than {_MAX_EXPRESSION_LENGTH} characters")
    try:
        tree = ast.parse(expression, mode="eval")
        return _eval_node(tree.body)
    except (SyntaxError, RecursionError):
        raise SkillError(f"Invalid arithmetic expression: {expression}") from None


def _eval_node(node: ast.AST) -> int | float:
    if isinstance(node, ast.Constant) and type(node.value) in (int, float):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left = _eval_node(node.left)
        right = _eval_node(node.right)
        if isinstance(node.op, ast.Div) and right == 0:
            raise SkillError("Division by zero")
        return _BINARY_OPS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand))
    raise SkillError(f"Unsupported expression element: {type(node).__name__}")


class CalculatorSkill(Skill):
    @property
    def definition(self) -> SkillDefinition:
        return SkillDefinition(
            id="calculator",
            name="Calculator",
            description="Performs mathematical calculations",
            parameters=(
                SkillParameter(
                    name="expression",
                    type="string",
                    required=True,
                    description='Mathematical expression to evaluate (e.g., "2 + 3 * 4")',
                ),
            ),
            category="math",
            version="1.0.0",
            author="System",
        )

    async def execute(self, params: dict[str, Any]) -> dict[str, Any]:
        sanitized = sanitize_expression(params["expression"])
        try:
            result = evaluate(sanitized)
        except SkillError as e:
            logger.info(f"Calculation rejected for {sanitized!r}: {e}")
            raise
        return {
            "expression": sanitized,
            "result": result,
            "calculatedAt": datetime.now(timezone.utc).isoformat(),
        }

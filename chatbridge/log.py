"""Logging setup. Modules import ``logger`` from here, never from loguru directly."""

from __future__ import annotations

import re
import sys
from typing import Any

from loguru import logger

DEFAULT_FORMAT = "{time:HH:mm:ss} | {level:<7} | {name}:{line} | {message}"

# API keys and bearer tokens occasionally leak into exception text from SDKs.
_SECRET_PATTERNS = (
    re.compile(r"\bsk-[A-Za-z0-9_-]{8,}"),
    re.compile(r"(?i)(bearer\s+)[A-Za-z0-9._~+/=-]{8,}"),
    re.compile(r"(?i)(api[_-]?key[\"']?\s*[:=]\s*[\"']?)[^\s\"',}]{6,}"),
)


def redact(text: str) -> str:
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(lambda m: (m.group(1) if m.groups() else "") + "***", text)
    return text


def _scrub(record: dict[str, Any]) -> bool:
    record["message"] = redact(record["message"])
    return True


logger.remove()
logger.add(sys.stderr, level="INFO", format=DEFAULT_FORMAT, filter=_scrub)


def configure(
    level: str = "INFO",
    fmt: str = "",
    json_format: bool = False,
    file: str = "",
    rotation: str = "10 MB",
    retention: str = "7 days",
) -> None:
    """Replace every sink. Called once from ChatBridge.__init__; safe to repeat."""
    logger.remove()
    sink_kw: dict[str, Any] = {"level": level.upper(), "filter": _scrub}
    if json_format:
        sink_kw["serialize"] = True
    else:
        sink_kw["format"] = fmt or DEFAULT_FORMAT

    logger.add(sys.stderr, **sink_kw)
    if file:
        logger.add(file, rotation=rotation, retention=retention, **sink_kw)

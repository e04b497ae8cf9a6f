"""HTTP route handlers."""
from __future__ import annotations

import asyncio
import json
from typing import Any
from urllib.parse import parse_qs, unquote, urlparse

from chatbridge.errors import ConfigurationError, ProviderError
from chatbridge.log import logger
from chatbridge.types import SkillExecutionRequest, StreamChunk
from chatbridge.web.server import SSEResponse, sse_frame, sse_headers


class BadRequest(Exception):
    """Client input problem, reported as 400."""


def _error(message: str, status: int) -> dict[str, Any]:
    return {"error": message, "status": status}


def _json_body(body: bytes) -> dict[str, Any]:
    if not body:
        return {}
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise BadRequest("invalid JSON body") from None
    if not isinstance(data, dict):
        raise BadRequest("JSON body must be an object")
    return data


def _int_param(query: dict[str, list[str]], name: str, default: int) -> int:
    raw = query.get(name, [""])[0]
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise BadRequest(f"{name} must be an integer") from None


async def handle_route(app: Any, method: str, path: str, body: bytes) -> Any:
    """Route dispatcher. Returns dict (JSON, optional int ``status``) or SSEResponse."""
    parsed = urlparse(path)
    query = parse_qs(parsed.query)
    segments = [unquote(s) for s in parsed.path.strip("/").split("/") if s]
    try:
        return await _dispatch(app, method, segments, query, body)
    except BadRequest as e:
        return _error(str(e), 400)
    except Exception:
        logger.exception(f"Unhandled error in {method} {parsed.path}")
        return _error("internal server error", 500)


async def _dispatch(
    app: Any, method: str, segments: list[str], query: dict[str, list[str]], body: bytes,
) -> Any:
    if len(segments) < 2 or segments[0] != "api":
        return _error("not found", 404)
    resource, rest = segments[1], segments[2:]

    if resource == "health" and not rest:
        return _health(app)
    if resource == "providers" and not rest:
        return _providers(app)
    if resource == "chat" and not rest and method == "POST":
        return _chat(app, _json_body(body), query.get("provider", [""])[0] or None)
    if resource == "text-to-sql" and not rest and method == "POST":
        return await _text_to_sql(app, _json_body(body))
    if resource == "conversations":
        return _conversations(app, method, rest)
    if resource == "skills":
        return await _skills(app, method, rest, body)
    if resource == "memory":
        return _memory(app, method, rest, query, body)
    return _error("not found", 404)


# ---- Service info ----


def _health(app: Any) -> dict[str, Any]:
    return {
        "status": "ok",
        "defaultProvider": app.providers.default_provider,
        "conversations": len(app.history.list()),
        "skills": len(app.registry.get_all()),
    }


def _providers(app: Any) -> dict[str, Any]:
    return {
        "providers": [p.to_dict() for p in app.chat.get_available_providers()],
        "default": app.providers.default_provider,
    }


# ---- Chat ----


def _chat(app: Any, data: dict[str, Any], provider: str | None) -> Any:
    message = data.get("message")
    if not isinstance(message, str) or not message.strip():
        raise BadRequest("message is required")
    conversation_id = data.get("conversationId") or ""
    if conversation_id:
        if app.history.get(conversation_id) is None:
            return _error(f"conversation '{conversation_id}' not found", 404)
    else:
        conversation_id = app.history.create(message).id

    cors_origin = app.config.web.cors_origin

    async def _sse_handler(writer: asyncio.StreamWriter, reader: asyncio.StreamReader | None = None) -> None:
        async def send(chunk: StreamChunk) -> None:
            writer.write(sse_frame(chunk.to_dict()))
            await writer.drain()

        cancel = asyncio.Event()
        watcher = asyncio.ensure_future(_watch_disconnect(reader, cancel)) if reader is not None else None
        try:
            writer.write(sse_headers(cors_origin))
            await writer.drain()
            result = await app.chat.stream_chat(
                conversation_id, message, send, provider_type=provider, cancel=cancel,
            )
            if result.status == "completed":
                conversation = app.history.get(conversation_id)
                if conversation is not None:
                    app.memory_integration.store_conversation_context(conversation)
        except (ConnectionError, OSError) as e:
            logger.info(f"SSE for {conversation_id} closed: client disconnected ({e})")
        finally:
            if watcher is not None:
                watcher.cancel()
                await asyncio.gather(watcher, return_exceptions=True)
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError):
                pass

    return SSEResponse(handler=_sse_handler)


async def _watch_disconnect(reader: asyncio.StreamReader, cancel: asyncio.Event) -> None:
    """Set ``cancel`` once the client closes its side of the connection."""
    try:
        while await reader.read(4096):
            pass
    except (ConnectionError, OSError) as e:
        logger.debug(f"SSE reader failed: {e}")
    cancel.set()


async def _text_to_sql(app: Any, data: dict[str, Any]) -> dict[str, Any]:
    schema, prompt = data.get("schema"), data.get("prompt")
    if not isinstance(schema, str) or not isinstance(prompt, str) or not prompt.strip():
        raise BadRequest("schema and prompt are required")
    try:
        sql = await app.chat.text_to_sql(schema, prompt, data.get("provider") or None)
    except ConfigurationError as e:
        return _error(str(e), 400)
    except ProviderError as e:
        logger.warning(f"text-to-sql failed: {e}")
        return _error(str(e), 502)
    return {"sql": sql}


def _conversations(app: Any, method: str, rest: list[str]) -> dict[str, Any]:
    if not rest and method == "GET":
        return {"conversations": [c.to_dict() for c in app.history.list()]}
    if len(rest) != 1:
        return _error("not found", 404)
    conversation_id = rest[0]
    if method == "GET":
        conversation = app.history.get(conversation_id)
        if conversation is None:
            return _error(f"conversation '{conversation_id}' not found", 404)
        return conversation.to_dict()
    if method == "DELETE":
        if not app.history.delete(conversation_id):
            return _error(f"conversation '{conversation_id}' not found", 404)
        return {"deleted": True, "id": conversation_id}
    return _error("method not allowed", 405)


# ---- Skills ----


async def _skills(app: Any, method: str, rest: list[str], body: bytes) -> dict[str, Any]:
    if not rest and method == "GET":
        return {"skills": [s.to_dict() for s in app.registry.get_all()]}
    if rest == ["execute"] and method == "POST":
        return await _skills_execute(app, _json_body(body))
    if len(rest) == 2 and rest[0] == "category" and method == "GET":
        return {"skills": [s.to_dict() for s in app.registry.get_by_category(rest[1])]}
    if len(rest) == 1 and method == "GET":
        definition = app.registry.get(rest[0])
        if definition is None:
            return _error(f"Skill with ID {rest[0]} not found", 404)
        return definition.to_dict()
    return _error("not found", 404)


async def _skills_execute(app: Any, data: dict[str, Any]) -> dict[str, Any]:
    request = SkillExecutionRequest.from_dict(data)
    if not request.skill_id:
        raise BadRequest("skillId is required")
    response = await app.executor.execute(request)
    if response.result.success and isinstance(request.parameters, dict):
        app.memory_integration.store_skill_result(request.skill_id, request.parameters, response.result.data)
    return response.to_dict()


# ---- Memory ----


def _record_fields(data: dict[str, Any]) -> dict[str, Any]:
    if "value" not in data:
        raise BadRequest("value is required")
    ttl = data.get("ttl")
    if ttl is not None and (isinstance(ttl, bool) or not isinstance(ttl, (int, float)) or ttl <= 0):
        raise BadRequest("ttl must be a positive number of seconds")
    metadata = data.get("metadata")
    if metadata is not None and not isinstance(metadata, dict):
        raise BadRequest("metadata must be an object")
    return {
        "value": data["value"],
        "category": data.get("category") or None,
        "metadata": metadata,
        "ttl_seconds": ttl,
    }


def _memory(
    app: Any, method: str, rest: list[str], query: dict[str, list[str]], body: bytes,
) -> dict[str, Any]:
    memory = app.memory
    if not rest:
        if method == "GET":
            page = _int_param(query, "page", 1)
            limit = _int_param(query, "limit", 50)
            records, total = memory.list(query.get("category", [""])[0] or None, page, limit)
            return {"records": [r.to_dict() for r in records], "total": total, "page": page, "limit": limit}
        if method == "POST":
            data = _json_body(body)
            key = data.get("key")
            if not isinstance(key, str) or not key:
                raise BadRequest("key is required")
            return {**memory.put(key, **_record_fields(data)).to_dict(), "status": 201}
        return _error("method not allowed", 405)

    if rest == ["cleanup"] and method == "POST":
        return {"removed": memory.delete_expired()}
    if len(rest) == 2 and rest[0] == "category" and method == "GET":
        return {"records": [r.to_dict() for r in memory.get_by_category(rest[1])]}
    if len(rest) == 2 and rest[0] == "search" and method == "GET":
        return {"records": [r.to_dict() for r in memory.search(rest[1])]}
    if len(rest) != 1:
        return _error("not found", 404)

    key = rest[0]
    if method == "GET":
        record = memory.get(key)
        if record is None:
            return _error(f"memory '{key}' not found", 404)
        return record.to_dict()
    if method == "PUT":
        return memory.put(key, **_record_fields(_json_body(body))).to_dict()
    if method == "DELETE":
        if not memory.delete(key):
            return _error(f"memory '{key}' not found", 404)
        return {"deleted": True, "key": key}
    return _error("method not allowed", 405)

"""Provider contract tests -- terminal guard, line buffering, cancellation."""
from __future__ import annotations

import asyncio
from collections.abc import Sequence

import pytest

from chatbridge.errors import ProviderError, StreamCancelled
from chatbridge.provider import LineBuffer, LLMProvider, StreamTurn, as_provider_error
from chatbridge.types import ChatMessage, ModelConfig

from conftest import Recorder


class ScriptedProvider(LLMProvider):
    """Adapter double: replays a script of ("token", text) / ("complete",) / ("raise", exc) steps."""

    name = "Scripted"

    def __init__(self, script: list[tuple]) -> None:
        self.model_config = ModelConfig(provider_id="scripted", model="m")
        self.script = script

    async def _stream(self, messages: Sequence[ChatMessage], turn: StreamTurn) -> None:
        for step in self.script:
            if step[0] == "token":
                await turn.token(step[1])
            elif step[0] == "complete":
                await turn.complete()
            elif step[0] == "raise":
                raise step[1]
            elif step[0] == "sleep":
                await asyncio.sleep(step[1])

    async def chat(self, messages: Sequence[ChatMessage]) -> str:
        return "".join(s[1] for s in self.script if s[0] == "token")


MESSAGES = [ChatMessage(role="user", content="hello")]


class TestStreamTurn:
    @pytest.mark.asyncio
    async def test_tokens_in_order_then_single_completion(self):
        rec = Recorder()
        await ScriptedProvider([("token", "a"), ("token", "b"), ("complete",)]).stream_chat(MESSAGES, rec.callbacks())
        assert rec.tokens == ["a", "b"]
        assert rec.completions == 1
        assert rec.events[-1][0] == "complete"

    @pytest.mark.asyncio
    async def test_repeated_completion_fires_once(self):
        rec = Recorder()
        script = [("token", "x"), ("complete",), ("complete",), ("token", "late")]
        await ScriptedProvider(script).stream_chat(MESSAGES, rec.callbacks())
        assert rec.tokens == ["x"]
        assert rec.terminal_count == 1

    @pytest.mark.asyncio
    async def test_empty_tokens_dropped(self):
        rec = Recorder()
        await ScriptedProvider([("token", ""), ("token", "ok"), ("complete",)]).stream_chat(MESSAGES, rec.callbacks())
        assert rec.tokens == ["ok"]

    @pytest.mark.asyncio
    async def test_end_of_stream_without_done_completes(self):
        rec = Recorder()
        await ScriptedProvider([("token", "partial")]).stream_chat(MESSAGES, rec.callbacks())
        assert rec.completions == 1
        assert rec.errors == []

    @pytest.mark.asyncio
    async def test_error_after_tokens_is_single_terminal(self):
        rec = Recorder()
        script = [("token", "a"), ("raise", ConnectionError("reset"))]
        await ScriptedProvider(script).stream_chat(MESSAGES, rec.callbacks())
        assert rec.tokens == ["a"]
        assert rec.completions == 0
        assert len(rec.errors) == 1
        assert isinstance(rec.errors[0], ProviderError)

    @pytest.mark.asyncio
    async def test_error_after_completion_is_ignored(self):
        rec = Recorder()
        script = [("complete",), ("raise", RuntimeError("too late"))]
        await ScriptedProvider(script).stream_chat(MESSAGES, rec.callbacks())
        assert rec.completions == 1
        assert rec.errors == []

    @pytest.mark.asyncio
    async def test_callback_exception_routes_to_on_error(self):
        rec = Recorder(fail_on_token=True)
        script = [("token", "a"), ("token", "b"), ("complete",)]
        await ScriptedProvider(script).stream_chat(MESSAGES, rec.callbacks())
        assert rec.tokens == ["a"]
        assert len(rec.errors) == 1
        assert rec.completions == 0

    @pytest.mark.asyncio
    async def test_sync_and_async_callbacks_both_supported(self):
        seen: list[str] = []
        from chatbridge.provider import StreamCallbacks

        cbs = StreamCallbacks(seen.append, lambda e: seen.append("error"), lambda: seen.append("done"))
        await ScriptedProvider([("token", "t"), ("complete",)]).stream_chat(MESSAGES, cbs)
        assert seen == ["t", "done"]


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_mid_stream_yields_one_error(self):
        rec = Recorder()
        cancel = asyncio.Event()
        provider = ScriptedProvider([("token", "a"), ("sleep", 3600), ("token", "never")])

        task = asyncio.create_task(provider.stream_chat(MESSAGES, rec.callbacks(), cancel=cancel))
        while not rec.tokens:
            await asyncio.sleep(0)
        cancel.set()
        await asyncio.wait_for(task, timeout=2)

        assert rec.tokens == ["a"]
        assert len(rec.errors) == 1
        assert isinstance(rec.errors[0], StreamCancelled)
        assert rec.completions == 0

    @pytest.mark.asyncio
    async def test_already_cancelled_never_starts(self):
        rec = Recorder()
        cancel = asyncio.Event()
        cancel.set()
        await ScriptedProvider([("token", "a"), ("complete",)]).stream_chat(MESSAGES, rec.callbacks(), cancel=cancel)
        assert rec.tokens == []
        assert isinstance(rec.errors[0], StreamCancelled)


class TestLineBuffer:
    def test_holds_trailing_fragment(self):
        buf = LineBuffer()
        assert buf.feed(b'{"a":1}\n{"b"') == ['{"a":1}']
        assert buf.feed(b':2}\n') == ['{"b":2}']
        assert buf.flush() == []

    def test_multibyte_character_split_across_chunks(self):
        encoded = "héllo ☃\n".encode()
        snowman = encoded.index("☃".encode())
        buf = LineBuffer()
        assert buf.feed(encoded[: snowman + 1]) == []
        assert buf.feed(encoded[snowman + 1:]) == ["héllo ☃"]

    def test_flush_returns_unterminated_line(self):
        buf = LineBuffer()
        buf.feed(b"data: tail")
        assert buf.flush() == ["data: tail"]


class TestProviderErrorMapping:
    def test_status_code_preserved(self):
        class Resp:
            status_code = 503

        class HTTPFailure(Exception):
            response = Resp()

        err = as_provider_error("Ollama", HTTPFailure("down"))
        assert err.status_code == 503
        assert "503" in str(err)

    def test_provider_error_passthrough(self):
        original = ProviderError("x", status_code=400)
        assert as_provider_error("Ollama", original) is original

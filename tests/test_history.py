"""Conversation store tests -- titles, ordering, per-conversation locking, JSONL persistence."""
from __future__ import annotations

import asyncio

import pytest

from chatbridge.history import HistoryStore
from chatbridge.types import ChatMessage, conversation_title


class TestTitles:
    def test_first_line_trimmed(self):
        assert conversation_title("  Plan my trip  \nto Rome") == "Plan my trip"

    def test_truncated_to_fifty_chars(self):
        title = conversation_title("x" * 80)
        assert title == "x" * 50 + "..."

    def test_blank_message(self):
        assert conversation_title("   ") == "New Conversation"


class TestHistoryStore:
    def test_create_with_seed_message_sets_title(self, history):
        conversation = history.create("What is the capital of France?")
        assert conversation.title == "What is the capital of France?"
        assert conversation.messages == []
        assert history.get(conversation.id) is conversation

    @pytest.mark.asyncio
    async def test_append_sets_title_from_first_user_message(self, history):
        conversation = history.create()
        await history.append(conversation.id, ChatMessage(role="user", content="Hello there"))
        await history.append(conversation.id, ChatMessage(role="user", content="Second"))
        assert history.get(conversation.id).title == "Hello there"

    @pytest.mark.asyncio
    async def test_append_to_missing_conversation(self, history):
        assert await history.append("missing", ChatMessage(role="user", content="x")) is None

    @pytest.mark.asyncio
    async def test_list_sorted_by_updated_desc(self, history):
        older = history.create()
        newer = history.create()
        older.updated_at = 1
        newer.updated_at = 2
        assert [c.id for c in history.list()] == [newer.id, older.id]
        await history.append(older.id, ChatMessage(role="user", content="bump"))
        assert history.list()[0].id == older.id

    @pytest.mark.asyncio
    async def test_concurrent_appends_keep_order(self, history):
        conversation = history.create()
        messages = [ChatMessage(role="user", content=str(i)) for i in range(20)]
        await asyncio.gather(*(history.append(conversation.id, m) for m in messages))
        assert [m.content for m in history.get(conversation.id).messages] == [str(i) for i in range(20)]

    def test_lock_is_per_conversation(self, history):
        assert history.lock_for("a") is history.lock_for("a")
        assert history.lock_for("a") is not history.lock_for("b")

    def test_delete_and_clear(self, history):
        a, b = history.create(), history.create()
        assert history.delete(a.id) is True
        assert history.delete(a.id) is False
        history.clear()
        assert history.get(b.id) is None
        assert history.list() == []

    def test_update_title(self, history):
        conversation = history.create()
        assert history.update_title(conversation.id, "Renamed").title == "Renamed"
        assert history.update_title("missing", "x") is None


class TestPersistence:
    @pytest.mark.asyncio
    async def test_reload_from_disk(self, tmp_path):
        store = HistoryStore(tmp_path / "history")
        conversation = store.create()
        await store.append(conversation.id, ChatMessage(role="user", content="Hi"))
        await store.append(conversation.id, ChatMessage(role="assistant", content="Hello!"))

        reloaded = HistoryStore(tmp_path / "history")
        restored = reloaded.get(conversation.id)
        assert restored.title == "Hi"
        assert [(m.role, m.content) for m in restored.messages] == [("user", "Hi"), ("assistant", "Hello!")]

    def test_delete_removes_file(self, tmp_path):
        store = HistoryStore(tmp_path)
        conversation = store.create()
        path = tmp_path / f"{conversation.id}.jsonl"
        assert path.exists()
        store.delete(conversation.id)
        assert not path.exists()

    def test_corrupt_file_skipped(self, tmp_path):
        (tmp_path / "bad.jsonl").write_text("{not json\n")
        (tmp_path / "nometa.jsonl").write_text('{"role": "user", "content": "x"}\n')
        assert HistoryStore(tmp_path).list() == []

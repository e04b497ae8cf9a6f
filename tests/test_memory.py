"""Memory store, memory integration and maintenance scheduler tests."""
from __future__ import annotations

from datetime import datetime

from chatbridge.memory import MemoryStore
from chatbridge.memory_integration import MemoryIntegration
from chatbridge.scheduler import MaintenanceScheduler
from chatbridge.types import ChatMessage, Conversation


class TestMemoryStore:
    def test_put_and_get(self, memory):
        record = memory.put("user:1", {"name": "Ada"}, category="users", metadata={"source": "test"})
        fetched = memory.get("user:1")
        assert fetched.value == {"name": "Ada"}
        assert fetched.category == "users"
        assert fetched.metadata == {"source": "test"}
        assert fetched.id == record.id
        assert fetched.expires_at is None

    def test_put_upserts_by_key(self, memory):
        first = memory.put("k", "v1")
        second = memory.put("k", "v2", ttl_seconds=60)
        assert second.id == first.id
        assert second.created_at == first.created_at
        assert memory.get("k").value == "v2"
        assert memory.get("k").expires_at is not None

    def test_expired_record_invisible(self, memory):
        memory.put("old", "x", ttl_seconds=-1)
        assert memory.get("old") is None
        assert memory.search("old") == []

    def test_record_without_expiry_never_expires(self, memory):
        memory.put("forever", 1)
        assert memory.delete_expired() == 0
        assert memory.get("forever").value == 1

    def test_delete_expired_counts(self, memory):
        memory.put("a", 1, ttl_seconds=-1)
        memory.put("b", 2, ttl_seconds=-1)
        memory.put("c", 3, ttl_seconds=3600)
        assert memory.delete_expired() == 2
        assert memory.get("c").value == 3

    def test_delete(self, memory):
        memory.put("k", 1)
        assert memory.delete("k") is True
        assert memory.delete("k") is False

    def test_category_and_search(self, memory):
        memory.put("skill_result:calc:1", 1, category="skills")
        memory.put("skill_result:calc:2", 2, category="skills")
        memory.put("user_preferences:u1", {}, category="user_data")
        assert {r.key for r in memory.get_by_category("skills")} == {"skill_result:calc:1", "skill_result:calc:2"}
        assert [r.key for r in memory.search("user_pref")] == ["user_preferences:u1"]
        assert memory.search("%") == []

    def test_list_paginates(self, memory):
        for i in range(5):
            memory.put(f"k{i}", i, category="n")
        memory.put("other", 0, category="m")
        records, total = memory.list(category="n", page=2, limit=2)
        assert total == 5
        assert len(records) == 2
        all_records, all_total = memory.list()
        assert all_total == 6
        assert len(all_records) == 6

    def test_file_backed(self, tmp_path):
        path = tmp_path / "nested" / "memory.db"
        store = MemoryStore(path)
        store.put("k", [1, 2])
        store.close()
        reopened = MemoryStore(path)
        assert reopened.get("k").value == [1, 2]
        reopened.close()


class TestMemoryIntegration:
    def test_conversation_context(self, memory):
        integration = MemoryIntegration(memory)
        conversation = Conversation(title="t", messages=[
            ChatMessage(role="user", content=str(i)) for i in range(12)
        ])
        integration.store_conversation_context(conversation)

        context = integration.get_conversation_context(conversation.id)
        assert context["id"] == conversation.id
        recent = integration.get_recent_messages(conversation.id)
        assert [m["content"] for m in recent] == [str(i) for i in range(2, 12)]
        record = memory.get(f"conversation:{conversation.id}")
        assert record.category == "conversations"
        assert record.metadata["messageCount"] == 12
        assert 3599 <= record.expires_at - record.created_at <= 3601

    def test_skill_result_and_cache(self, memory):
        integration = MemoryIntegration(memory)
        integration.store_skill_result("calculator", {"expression": "1+1"}, {"result": 2})
        assert integration.get_cached_skill_result("calculator", {"expression": "1+1"}) == {"result": 2}
        assert integration.get_cached_skill_result("calculator", {"expression": "2+2"}) is None
        assert len(memory.get_by_category("skills")) == 1

    def test_preferences_and_context_info(self, memory):
        integration = MemoryIntegration(memory)
        integration.store_user_preferences("u1", {"theme": "dark"})
        integration.store_context_info("topic", "databases")
        assert integration.get_user_preferences("u1") == {"theme": "dark"}
        assert integration.get_context_info("topic") == "databases"
        assert integration.get_context_info("missing") is None

    def test_storage_failure_swallowed(self, memory):
        integration = MemoryIntegration(memory)
        integration.store_context_info("bad", object())
        memory.close()
        integration.store_user_preferences("u1", {"a": 1})
        assert integration.get_user_preferences("u1") is None


class TestMaintenanceScheduler:
    def test_runs_when_due(self, memory):
        memory.put("stale", 1, ttl_seconds=-1)
        scheduler = MaintenanceScheduler(memory, "*/15 * * * *")
        scheduler._last_check = datetime(2026, 1, 1, 0, 0)
        assert scheduler.tick(now=datetime(2026, 1, 1, 0, 16)) == 1
        assert scheduler.tick(now=datetime(2026, 1, 1, 0, 20)) is None

    def test_empty_cron_disables(self, memory):
        assert MaintenanceScheduler(memory, "").enabled is False

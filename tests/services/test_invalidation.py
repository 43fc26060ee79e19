"""Tests for InvalidationSink: scope eviction and fail-open broadcast."""
import json
from unittest.mock import MagicMock

from novelhub.services.cache import ContentCache
from novelhub.services.invalidation import InvalidationSink


def _sink(cache=None, client=None):
    breaker = MagicMock()
    breaker.call.side_effect = lambda fn, *args: fn(*args)
    sink = InvalidationSink(cache=cache, client=client or MagicMock(), channel="test:events")
    sink._breaker = breaker
    return sink


class TestEviction:
    def test_chapter_scope_evicts_only_that_chapter(self):
        cache = ContentCache()
        cache.set("chapter:c1", 1)
        cache.set("chapter:c2", 2)
        _sink(cache).invalidate("chapter", {"chapter_id": "c1"})
        assert cache.get("chapter:c1") is None
        assert cache.get("chapter:c2") == 2

    def test_module_scope_evicts_chapters(self):
        cache = ContentCache()
        cache.set("chapter:c1", 1)
        cache.set("module:m1", 2)
        cache.set("novel:n1", 3)
        _sink(cache).invalidate("module", {"module_id": "m1"})
        assert cache.get("chapter:c1") is None
        assert cache.get("module:m1") is None
        assert cache.get("novel:n1") == 3

    def test_novel_scope_evicts_everything_for_content(self):
        cache = ContentCache()
        cache.set("chapter:c1", 1)
        cache.set("module:m1", 2)
        cache.set("novel:n1", 3)
        _sink(cache).invalidate("novel", {"novel_id": "n1"})
        assert len(cache) == 0


class TestBroadcast:
    def test_publishes_json_event(self):
        client = MagicMock()
        _sink(client=client).invalidate("chapter", {"chapter_id": "c1"}, event="chapter_unlocked")
        channel, message = client.publish.call_args[0]
        assert channel == "test:events"
        body = json.loads(message)
        assert body["event"] == "chapter_unlocked"
        assert body["payload"] == {"chapter_id": "c1"}
        assert "ts" in body

    def test_default_event_name(self):
        client = MagicMock()
        _sink(client=client).invalidate("module", {"module_id": "m1"})
        body = json.loads(client.publish.call_args[0][1])
        assert body["event"] == "module_updated"

    def test_publish_failure_never_raises(self):
        client = MagicMock()
        client.publish.side_effect = ConnectionError("redis down")
        cache = ContentCache()
        cache.set("chapter:c1", 1)
        _sink(cache, client).invalidate("chapter", {"chapter_id": "c1"})
        assert cache.get("chapter:c1") is None

    def test_eviction_failure_still_broadcasts(self):
        cache = MagicMock()
        cache.delete.side_effect = RuntimeError("broken")
        client = MagicMock()
        _sink(cache, client).invalidate("chapter", {"chapter_id": "c1"})
        client.publish.assert_called_once()

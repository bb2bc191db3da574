"""
Tests for the AI model cache and request performance statistics
"""

from unittest.mock import MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError

from app.services.model_cache import InMemoryModelCache, PerformanceStats, RedisModelCache

MODELS = [{"id": "mistral-7b-instruct-v0.2.Q4_K_M.gguf"}]


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class TestInMemoryModelCache:
    def test_entry_expires_after_ttl(self):
        clock = FakeClock()
        cache = InMemoryModelCache(ttl_seconds=300, clock=clock)
        cache.set("lm-studio:http://localhost:1234", MODELS)

        clock.advance(299)
        assert cache.get("lm-studio:http://localhost:1234") == MODELS

        clock.advance(1)
        assert cache.get("lm-studio:http://localhost:1234") is None

    def test_keys_are_independent(self):
        cache = InMemoryModelCache(ttl_seconds=300, clock=FakeClock())
        cache.set("openai:https://api.openai.com/v1", MODELS)

        assert cache.get("lm-studio:http://localhost:1234") is None

    def test_clear_and_info(self):
        clock = FakeClock()
        cache = InMemoryModelCache(ttl_seconds=60, clock=clock)
        cache.set("a", MODELS)
        cache.set("b", MODELS)
        clock.advance(61)
        cache.set("c", MODELS)

        info = cache.info()
        assert info["backend"] == "memory"
        assert info["keys"] == ["c"]

        cache.clear()
        assert cache.get("c") is None

    def test_returned_list_is_a_copy(self):
        cache = InMemoryModelCache(clock=FakeClock())
        cache.set("a", MODELS)

        cache.get("a").append({"id": "other"})

        assert cache.get("a") == MODELS


class TestRedisModelCache:
    def test_set_uses_ttl_and_prefix(self):
        client = MagicMock()
        cache = RedisModelCache("redis://localhost:6379/0", ttl_seconds=120, client=client)

        cache.set("openai:https://api.openai.com/v1", MODELS)

        key, ttl, payload = client.setex.call_args[0]
        assert key == "contractflow:ai_models:openai:https://api.openai.com/v1"
        assert ttl == 120
        assert "mistral" in payload

    def test_get_decodes_json(self):
        client = MagicMock()
        client.get.return_value = '[{"id": "gpt-4"}]'
        cache = RedisModelCache("redis://localhost:6379/0", client=client)

        assert cache.get("openai") == [{"id": "gpt-4"}]

    def test_redis_failure_is_a_miss(self):
        client = MagicMock()
        client.get.side_effect = RedisConnectionError("down")
        cache = RedisModelCache("redis://localhost:6379/0", client=client)

        assert cache.get("openai") is None


class TestPerformanceStats:
    def test_empty_snapshot(self):
        snapshot = PerformanceStats(clock=FakeClock()).snapshot()

        assert snapshot["total_requests"] == 0
        assert snapshot["avg_response_time_ms"] == 0
        assert snapshot["success_rate"] == 0
        assert snapshot["top_models"] == []
        assert snapshot["last_request_time"] is None

    def test_averages_and_success_rate(self):
        stats = PerformanceStats(clock=FakeClock())
        stats.record("model-a", 100, True)
        stats.record("model-a", 200, True)
        stats.record("model-b", 600, False)

        snapshot = stats.snapshot()

        assert snapshot["total_requests"] == 3
        assert snapshot["avg_response_time_ms"] == 300
        assert snapshot["success_rate"] == 67
        assert snapshot["top_models"][0] == {"model_id": "model-a", "usage": 2}
        assert snapshot["last_request_time"] is not None

    def test_last_24h_is_a_sliding_window(self):
        clock = FakeClock()
        stats = PerformanceStats(clock=clock)
        stats.record("model-a", 100, True)
        clock.advance(12 * 3600)
        stats.record("model-a", 100, True)

        clock.advance(13 * 3600)
        snapshot = stats.snapshot()

        assert snapshot["requests_last_24h"] == 1
        assert snapshot["total_requests"] == 2

    def test_top_models_limited_to_five(self):
        stats = PerformanceStats(clock=FakeClock())
        for index in range(7):
            for _ in range(index + 1):
                stats.record(f"model-{index}", 10, True)

        top = stats.snapshot()["top_models"]

        assert len(top) == 5
        assert top[0]["model_id"] == "model-6"

    def test_reset(self):
        stats = PerformanceStats(clock=FakeClock())
        stats.record("model-a", 100, True)

        stats.reset()

        assert stats.snapshot()["total_requests"] == 0

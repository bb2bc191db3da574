"""
Model list cache and AI performance statistics

Both objects are created once per application (see app.main) and handed to
the AI gateway, so a restart always starts with an empty cache and fresh
statistics.
"""

import json
import logging
import threading
import time
from collections import Counter, deque
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

import redis
from redis.exceptions import RedisError

from app.core.config import settings

logger = logging.getLogger(__name__)

STATS_WINDOW_SECONDS = 24 * 3600
TOP_MODELS_LIMIT = 5


class ModelCache:
    """Interface for the provider model list cache"""

    ttl_seconds: int

    def get(self, key: str) -> Optional[List[Dict[str, Any]]]:
        raise NotImplementedError

    def set(self, key: str, models: List[Dict[str, Any]]):
        raise NotImplementedError

    def clear(self):
        raise NotImplementedError

    def info(self) -> Dict[str, Any]:
        raise NotImplementedError


class InMemoryModelCache(ModelCache):
    """Process-local cache with a per-entry TTL"""

    def __init__(
        self,
        ttl_seconds: int = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[float, List[Dict[str, Any]]]] = {}

    def get(self, key: str) -> Optional[List[Dict[str, Any]]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, models = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[key]
                return None
            return list(models)

    def set(self, key: str, models: List[Dict[str, Any]]):
        with self._lock:
            self._entries[key] = (self._clock(), list(models))

    def clear(self):
        with self._lock:
            self._entries.clear()

    def info(self) -> Dict[str, Any]:
        with self._lock:
            now = self._clock()
            live = [
                key
                for key, (stored_at, _) in self._entries.items()
                if now - stored_at < self.ttl_seconds
            ]
        return {"backend": "memory", "ttl_seconds": self.ttl_seconds, "keys": live}


class RedisModelCache(ModelCache):
    """Shared cache for multi-instance deployments; Redis handles expiry"""

    key_prefix = "contractflow:ai_models"

    def __init__(self, redis_url: str, ttl_seconds: int = 300, client=None):
        self.ttl_seconds = ttl_seconds
        self.redis_client = client or redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}"

    def get(self, key: str) -> Optional[List[Dict[str, Any]]]:
        try:
            cached = self.redis_client.get(self._key(key))
        except RedisError as e:
            logger.warning(f"Model cache read failed: {str(e)}")
            return None
        if not cached:
            return None
        try:
            return json.loads(cached)
        except json.JSONDecodeError:
            logger.warning(f"Discarding malformed model cache entry {key}")
            return None

    def set(self, key: str, models: List[Dict[str, Any]]):
        try:
            self.redis_client.setex(
                self._key(key),
                self.ttl_seconds,
                json.dumps(models, default=str, ensure_ascii=False),
            )
        except RedisError as e:
            logger.warning(f"Model cache write failed: {str(e)}")

    def clear(self):
        try:
            keys = self.redis_client.keys(f"{self.key_prefix}:*")
            if keys:
                self.redis_client.delete(*keys)
        except RedisError as e:
            logger.warning(f"Model cache clear failed: {str(e)}")

    def info(self) -> Dict[str, Any]:
        try:
            keys = [
                key.split(":", 2)[-1]
                for key in self.redis_client.keys(f"{self.key_prefix}:*")
            ]
        except RedisError:
            keys = []
        return {"backend": "redis", "ttl_seconds": self.ttl_seconds, "keys": keys}


def build_model_cache() -> ModelCache:
    if settings.AI_MODEL_CACHE_BACKEND == "redis":
        logger.info("Using Redis model cache")
        return RedisModelCache(settings.REDIS_URL, settings.AI_MODEL_CACHE_TTL_SECONDS)
    return InMemoryModelCache(settings.AI_MODEL_CACHE_TTL_SECONDS)


class PerformanceStats:
    """Request counters for model tests and chats, kept in memory"""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self.reset()

    def reset(self):
        with self._lock:
            self.total_requests = 0
            self.successful_requests = 0
            self.total_response_time_ms = 0.0
            self.model_usage: Counter = Counter()
            self.last_request_at: Optional[float] = None
            self._recent: Deque[float] = deque()

    def record(self, model: str, response_time_ms: float, success: bool):
        now = self._clock()
        with self._lock:
            self.total_requests += 1
            if success:
                self.successful_requests += 1
            self.total_response_time_ms += response_time_ms
            self.model_usage[model] += 1
            self.last_request_at = now
            self._recent.append(now)
            self._trim(now)

    def _trim(self, now: float):
        while self._recent and now - self._recent[0] > STATS_WINDOW_SECONDS:
            self._recent.popleft()

    def snapshot(self) -> Dict[str, Any]:
        now = self._clock()
        with self._lock:
            self._trim(now)
            total = self.total_requests
            return {
                "total_requests": total,
                "avg_response_time_ms": round(self.total_response_time_ms / total)
                if total
                else 0,
                "success_rate": round(self.successful_requests / total * 100)
                if total
                else 0,
                "requests_last_24h": len(self._recent),
                "top_models": [
                    {"model_id": model, "usage": count}
                    for model, count in self.model_usage.most_common(TOP_MODELS_LIMIT)
                ],
                "last_request_time": datetime.utcfromtimestamp(self.last_request_at)
                if self.last_request_at
                else None,
            }

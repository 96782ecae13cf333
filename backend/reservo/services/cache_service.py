# backend/reservo/services/cache_service.py
"""
Cache Service for the Reservo booking engine.

The only place the engine keeps state between requests. Values are JSON
serialized into Redis when ``settings.redis_url`` is configured, otherwise
held in a per-instance in-memory map with expiry. A circuit breaker stops
hammering Redis while it is down; cache failures are logged and treated as
misses, never as request failures.
"""

from datetime import date, datetime, timedelta
from enum import Enum
import json
import logging
import threading
from typing import Any, Callable, Dict, Optional, TypeVar, Union

import redis
from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from ..core.config import settings
from .base import BaseService

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject calls
    HALF_OPEN = "half_open"  # Testing if service recovered


class CircuitBreaker:
    """Stops calling Redis after repeated failures until a recovery timeout passes."""

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        expected_exception: type[BaseException] = RedisError,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception

        self._failure_count: int = 0
        self._last_failure_time: Optional[datetime] = None
        self._state: CircuitState = CircuitState.CLOSED
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            if self._state == CircuitState.OPEN and self._last_failure_time:
                elapsed = (datetime.now() - self._last_failure_time).total_seconds()
                if elapsed >= self.recovery_timeout:
                    self._state = CircuitState.HALF_OPEN
            return self._state

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> Optional[T]:
        """
        Execute function with circuit breaker protection.

        Returns None without calling when the circuit is open. Failures below
        the threshold propagate; the failure that opens the circuit returns None.
        """
        if self.state == CircuitState.OPEN:
            logger.warning(f"Circuit breaker is OPEN, skipping {func.__name__}")
            return None

        try:
            result = func(*args, **kwargs)
            self._on_success()
            return result
        except self.expected_exception:
            self._on_failure()
            if self.state == CircuitState.CLOSED:
                raise
            return None

    def _on_success(self) -> None:
        with self._lock:
            self._failure_count = 0
            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.CLOSED
                logger.info("Circuit breaker recovered, closing circuit")

    def _on_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = datetime.now()
            if self._failure_count >= self.failure_threshold:
                self._state = CircuitState.OPEN
                logger.warning(f"Circuit breaker opened after {self._failure_count} failures")


class CacheKeyBuilder:
    """Standardized cache key generation."""

    PREFIXES = {
        "trust_score": "trust",
    }

    @staticmethod
    def build(*parts: Union[str, int, date]) -> str:
        """
        Build a cache key from parts.

        Examples:
            build('trust_score', '01HX...') -> 'trust:01HX...'
        """
        formatted = [part.isoformat() if isinstance(part, date) else str(part) for part in parts]
        if parts:
            first = parts[0]
            if isinstance(first, str) and first in CacheKeyBuilder.PREFIXES:
                formatted[0] = CacheKeyBuilder.PREFIXES[first]
        return ":".join(formatted)


class CacheService(BaseService):
    """
    Get/set/delete with TTL over Redis, or an in-memory map when Redis is
    not configured. Injected into services instead of module-level maps.
    """

    # TTL Tiers (in seconds)
    TTL_TIERS = {
        "hot": 300,  # 5 minutes - frequently accessed
        "warm": 3600,  # 1 hour - moderate access
        "cold": 86400,  # 24 hours - infrequent access
    }

    # Expired memory entries are purged on read, and in bulk every N sets
    MEMORY_SWEEP_INTERVAL = 100

    def __init__(self, db: Optional[Session] = None, redis_client: Optional[Redis] = None):
        super().__init__(db)  # type: ignore[arg-type]
        self.logger = logging.getLogger(__name__)

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=5, recovery_timeout=60, expected_exception=RedisError
        )
        self.key_builder = CacheKeyBuilder()

        # In-memory fallback
        self._memory_cache: Dict[str, Any] = {}
        self._memory_expiry: Dict[str, datetime] = {}
        self._memory_lock = threading.Lock()
        self._memory_sets_since_sweep = 0

        self.redis: Optional[Redis] = redis_client
        if self.redis is None and settings.redis_url:
            self._connect(settings.redis_url)

        self._stats: Dict[str, int] = {"hits": 0, "misses": 0, "sets": 0, "deletes": 0, "errors": 0}

    def _connect(self, url: str) -> None:
        """Connect to Redis, falling back to memory if it is unreachable."""
        try:
            client = redis.from_url(
                url,
                decode_responses=True,
                socket_keepalive=True,
                socket_connect_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
            client.ping()
            self.redis = client
            logger.info("Connected to Redis")
        except (RedisError, ConnectionError) as e:
            logger.warning(f"Redis not available: {e}. Using in-memory fallback.")
            self.redis = None

    @property
    def backend(self) -> str:
        return "redis" if self.redis is not None else "memory"

    # Core Cache Operations

    @BaseService.measure_operation("cache_get")
    def get(self, key: str) -> Optional[Any]:
        """Get value from cache; errors count as misses."""
        redis_client = self.redis

        def _get_from_redis() -> Optional[Any]:
            assert redis_client is not None
            value = redis_client.get(key)
            return json.loads(value) if value is not None else None

        try:
            if redis_client is not None:
                value = self.circuit_breaker.call(_get_from_redis)
            else:
                value = self._memory_get(key)
        except (RedisError, ValueError) as e:
            logger.error(f"Cache get error for key {key}: {e}")
            self._stats["errors"] += 1
            return None

        self._stats["hits" if value is not None else "misses"] += 1
        return value

    @BaseService.measure_operation("cache_set")
    def set(self, key: str, value: Any, ttl: Optional[int] = None, tier: str = "hot") -> bool:
        """Set value with a TTL in seconds (defaults to the tier TTL)."""
        if ttl is None:
            ttl = self.TTL_TIERS.get(tier, self.TTL_TIERS["hot"])
        redis_client = self.redis

        try:
            serialized = json.dumps(value, default=str)
            if redis_client is not None:
                stored = self.circuit_breaker.call(
                    lambda: bool(redis_client.setex(key, ttl, serialized))
                )
            else:
                # Round-trip through JSON so memory and Redis return the same shapes
                self._memory_set(key, json.loads(serialized), ttl)
                stored = True
        except (RedisError, TypeError, ValueError) as e:
            logger.error(f"Cache set error for key {key}: {e}")
            self._stats["errors"] += 1
            return False

        if stored:
            self._stats["sets"] += 1
        return bool(stored)

    @BaseService.measure_operation("cache_delete")
    def delete(self, key: str) -> bool:
        redis_client = self.redis
        try:
            if redis_client is not None:
                removed = bool(self.circuit_breaker.call(lambda: redis_client.delete(key)))
            else:
                with self._memory_lock:
                    removed = self._memory_cache.pop(key, None) is not None
                    self._memory_expiry.pop(key, None)
        except RedisError as e:
            logger.error(f"Cache delete error for key {key}: {e}")
            self._stats["errors"] += 1
            return False

        if removed:
            self._stats["deletes"] += 1
        return removed

    def get_stats(self) -> Dict[str, Any]:
        total = self._stats["hits"] + self._stats["misses"]
        return {
            **self._stats,
            "backend": self.backend,
            "hit_rate": round(self._stats["hits"] / total, 4) if total else 0.0,
        }

    # In-memory fallback helpers

    def _memory_get(self, key: str) -> Optional[Any]:
        with self._memory_lock:
            if key not in self._memory_cache:
                return None
            expires_at = self._memory_expiry.get(key)
            if expires_at is not None and datetime.now() >= expires_at:
                del self._memory_cache[key]
                del self._memory_expiry[key]
                return None
            return self._memory_cache[key]

    def _memory_set(self, key: str, value: Any, ttl: int) -> None:
        with self._memory_lock:
            self._memory_cache[key] = value
            self._memory_expiry[key] = datetime.now() + timedelta(seconds=ttl)
            self._memory_sets_since_sweep += 1
            if self._memory_sets_since_sweep >= self.MEMORY_SWEEP_INTERVAL:
                self._sweep_expired()

    def _sweep_expired(self) -> None:
        """Drop every expired entry. Caller holds the memory lock."""
        now = datetime.now()
        expired = [key for key, expires_at in self._memory_expiry.items() if now >= expires_at]
        for key in expired:
            self._memory_cache.pop(key, None)
            del self._memory_expiry[key]
        self._memory_sets_since_sweep = 0
        if expired:
            logger.debug(f"Swept {len(expired)} expired keys from the memory cache")

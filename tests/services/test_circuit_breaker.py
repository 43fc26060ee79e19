"""Redis-backed breaker storage: the breaker must close again after a successful trial call."""
import pybreaker
import pytest
from prometheus_client import REGISTRY

from novelhub.services.circuit_breaker import CircuitBreakerListener, RedisCircuitBreakerStorage


class FakeRedis:
    def __init__(self):
        self.data = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, ex=None):
        self.data[key] = str(value)

    def incr(self, key):
        self.data[key] = str(int(self.data.get(key, 0)) + 1)
        return int(self.data[key])

    def expire(self, key, seconds):
        return True

    def delete(self, key):
        self.data.pop(key, None)


def _storage(name):
    storage = RedisCircuitBreakerStorage(name)
    storage.client = FakeRedis()
    return storage


def _fail():
    raise ConnectionError("redis down")


class TestRedisCircuitBreakerStorage:
    def test_success_counter_roundtrip(self):
        storage = _storage("test_counter")
        assert storage.success_counter == 0
        storage.increment_success_counter()
        storage.increment_success_counter()
        assert storage.success_counter == 2
        storage.reset_success_counter()
        assert storage.success_counter == 0

    def test_breaker_closes_after_successful_trial(self):
        storage = _storage("test_recovery")
        breaker = pybreaker.CircuitBreaker(
            fail_max=1,
            reset_timeout=0,
            state_storage=storage,
            listeners=[CircuitBreakerListener("test_recovery")],
        )

        with pytest.raises((ConnectionError, pybreaker.CircuitBreakerError)):
            breaker.call(_fail)
        assert storage.state == pybreaker.STATE_OPEN

        assert breaker.call(lambda: "ok") == "ok"

        assert storage.state == pybreaker.STATE_CLOSED
        assert REGISTRY.get_sample_value("circuit_breaker_state", {"name": "test_recovery"}) == 0

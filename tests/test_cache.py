"""
Tests for the balance cache.
"""

import pytest

from splitledger.ledger import BalanceCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


class TestBalanceCache:
    """Tests for TTL, size limit and invalidation."""

    def test_get_and_set(self, clock):
        cache = BalanceCache(ttl_seconds=60, max_size=5, clock=clock)
        cache.set("g1", {"alice": 1})
        assert cache.get("g1") == {"alice": 1}
        assert "g1" in cache
        assert cache.get("g2") is None

    def test_entries_expire(self, clock):
        cache = BalanceCache(ttl_seconds=60, max_size=5, clock=clock)
        cache.set("g1", "balances")
        clock.now = 59.9
        assert cache.get("g1") == "balances"
        clock.now = 60
        assert cache.get("g1") is None
        assert len(cache) == 0

    def test_oldest_evicted_when_full(self, clock):
        """Test the oldest group is dropped to make room."""
        cache = BalanceCache(ttl_seconds=60, max_size=2, clock=clock)
        cache.set("g1", 1)
        cache.set("g2", 2)
        cache.set("g3", 3)
        assert cache.get("g1") is None
        assert cache.get("g2") == 2
        assert cache.get("g3") == 3

    def test_resetting_refreshes_age(self, clock):
        cache = BalanceCache(ttl_seconds=60, max_size=2, clock=clock)
        cache.set("g1", 1)
        cache.set("g2", 2)
        cache.set("g1", 10)
        cache.set("g3", 3)
        assert cache.get("g1") == 10
        assert cache.get("g2") is None

    def test_invalidate(self, clock):
        cache = BalanceCache(ttl_seconds=60, max_size=5, clock=clock)
        cache.set("g1", 1)
        cache.set("g2", 2)
        assert cache.invalidate("g1") is True
        assert cache.invalidate("g1") is False
        assert cache.get("g1") is None
        assert cache.get("g2") == 2

    def test_clear(self, clock):
        cache = BalanceCache(ttl_seconds=60, max_size=5, clock=clock)
        cache.set("g1", 1)
        cache.clear()
        assert len(cache) == 0

    def test_zero_ttl_disables_caching(self, clock):
        cache = BalanceCache(ttl_seconds=0, max_size=5, clock=clock)
        cache.set("g1", 1)
        assert cache.get("g1") is None

    def test_invalid_max_size(self):
        with pytest.raises(ValueError):
            BalanceCache(max_size=0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

import pytest

from keyrotor import FailureKind, KeyConfig, KeyPool

from ._fakes import FakeClock


def _pool(n, clock, ttl=60.0):
    return KeyPool([KeyConfig(f"k{i}", f"T{i}-secret") for i in range(n)], clock=clock, blacklist_ttl=ttl)


def test_round_robin_continues_after_blacklist():
    clock = FakeClock()
    pool = _pool(3, clock)
    k0 = pool.select_active()
    pool.record_failure(k0, FailureKind.QUOTA)
    assert pool.current_index == 1
    assert pool.select_active().name == "k1"
    pool.record_failure(pool.keys[1], FailureKind.RATE_LIMIT)
    assert pool.select_active().name == "k2"


def test_selection_wraps_from_current_index():
    clock = FakeClock()
    pool = _pool(3, clock)
    pool.record_failure(pool.select_active(), FailureKind.QUOTA)  # k0
    pool.record_failure(pool.select_active(), FailureKind.QUOTA)  # k1
    assert pool.select_active().name == "k2"
    clock.advance(61)
    # k0 and k1 recovered; rotation continues from k2 rather than restarting at k0
    assert pool.select_active().name == "k2"
    pool.record_failure(pool.keys[2], FailureKind.QUOTA)
    assert pool.select_active().name == "k0"


@pytest.mark.parametrize("n", [1, 2, 5])
def test_all_blacklisted_returns_soonest_to_recover(n):
    clock = FakeClock()
    pool = _pool(n, clock)
    # blacklist in reverse order so the earliest expiry is the last key
    for k in reversed(pool.keys):
        pool.record_failure(k, FailureKind.QUOTA)
        clock.advance(1)
    assert pool.active_count() == 0
    chosen = pool.select_active()
    assert chosen.name == f"k{n - 1}"
    assert chosen.blacklisted_until == min(k.blacklisted_until for k in pool.keys)
    assert pool.current_index == n - 1
    # deterministic
    assert pool.select_active() == chosen


def test_blacklist_sets_expiry_iff_blacklisted():
    clock = FakeClock()
    pool = _pool(2, clock, ttl=120)
    pool.record_failure(pool.select_active(), FailureKind.QUOTA)
    k = pool.keys[0]
    assert k.blacklisted
    assert k.blacklisted_until == clock.now + 120
    assert k.last_reason is FailureKind.QUOTA
    for other in pool.keys:
        assert (other.blacklisted_until is not None) == other.blacklisted


def test_current_index_stays_in_range():
    clock = FakeClock()
    pool = _pool(4, clock)
    for _ in range(3):
        for k in pool.keys:
            pool.record_failure(k, FailureKind.QUOTA)
            assert 0 <= pool.current_index < len(pool)
        clock.advance(61)
        pool.select_active()
        assert 0 <= pool.current_index < len(pool)

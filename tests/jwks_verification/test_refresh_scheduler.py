import threading
import time

import pytest
from conftest import FakeKeySource

import jwks_verification as m


def _scheduler(source, cache, **kwargs) -> m.RefreshScheduler:
    kwargs.setdefault("initial_delay", 3600)
    return m.RefreshScheduler(source, cache, **kwargs)


def test_run_once_success_replaces_cache_and_uses_max_age(make_key_set):
    cache = m.KeyCache(make_key_set("A"))
    fresh = make_key_set("B", refresh_after=3600)
    scheduler = _scheduler(FakeKeySource(fresh), cache)

    delay = scheduler.run_once()

    assert delay == 3600
    assert cache.read() is fresh
    assert scheduler.last_delay == 3600


def test_run_once_failure_keeps_cache_and_retries_in_ten_seconds(make_key_set):
    initial = make_key_set("A")
    cache = m.KeyCache(initial)
    scheduler = _scheduler(FakeKeySource(m.KeyFetchNetworkError("down")), cache)

    delay = scheduler.run_once()

    assert delay == 10
    assert cache.read() is initial
    assert cache.generation == 0


@pytest.mark.parametrize(
    "error",
    [m.MissingCacheControl("x"), m.MissingMaxAge("x"), m.NonNumericMaxAge("x"), m.KeySetParseError("x")],
)
def test_every_failure_kind_uses_same_backoff(make_key_set, error: Exception):
    scheduler = _scheduler(FakeKeySource(error), m.KeyCache(make_key_set("A")), retry_delay=7)

    assert scheduler.run_once() == 7


def test_unexpected_exception_is_contained(make_key_set):
    initial = make_key_set("A")
    cache = m.KeyCache(initial)
    scheduler = _scheduler(FakeKeySource(RuntimeError("bug")), cache)

    assert scheduler.run_once() == 10
    assert cache.read() is initial


def test_zero_max_age_is_floored(make_key_set):
    scheduler = _scheduler(
        FakeKeySource(make_key_set("A", refresh_after=0)),
        m.KeyCache(make_key_set("A")),
        min_interval=1.0,
    )

    assert scheduler.run_once() == 1.0


def test_loop_refreshes_then_stops(make_key_set):
    cache = m.KeyCache(make_key_set("A"))
    fresh = make_key_set("B", refresh_after=3600)
    source = FakeKeySource(fresh)
    scheduler = _scheduler(source, cache, initial_delay=0.01, min_interval=0)

    scheduler.start()
    assert source.fetched.wait(5)
    deadline = time.monotonic() + 5
    while cache.read() is not fresh and time.monotonic() < deadline:
        time.sleep(0.01)

    assert cache.read() is fresh
    assert scheduler.state in (m.SchedulerState.SLEEPING, m.SchedulerState.FETCHING)

    scheduler.stop(timeout=5)

    assert not scheduler.is_running
    assert scheduler.state is m.SchedulerState.STOPPED
    assert source.calls == 1


def test_loop_keeps_retrying_after_failures(make_key_set):
    initial = make_key_set("A")
    cache = m.KeyCache(initial)
    source = FakeKeySource(m.KeyFetchNetworkError("down"))
    scheduler = _scheduler(source, cache, initial_delay=0, retry_delay=0.01, min_interval=0)

    scheduler.start()
    deadline = time.monotonic() + 5
    while source.calls < 3 and time.monotonic() < deadline:
        time.sleep(0.01)
    scheduler.stop(timeout=5)

    assert source.calls >= 3
    assert cache.read() is initial


def test_stop_interrupts_sleep_and_no_fetch_after(make_key_set):
    source = FakeKeySource(make_key_set("A"))
    scheduler = _scheduler(source, m.KeyCache(make_key_set("A")), initial_delay=3600)

    scheduler.start()
    started = time.monotonic()
    scheduler.stop(timeout=5)

    assert time.monotonic() - started < 5
    assert not scheduler.is_running
    assert source.calls == 0


def test_stop_is_idempotent_and_safe_before_start(make_key_set):
    scheduler = _scheduler(FakeKeySource(), m.KeyCache(make_key_set("A")))

    scheduler.stop()
    scheduler.stop()

    assert scheduler.state is m.SchedulerState.STOPPED
    with pytest.raises(RuntimeError):
        scheduler.start()


def test_next_refresh_in_reflects_sleep(make_key_set):
    scheduler = _scheduler(FakeKeySource(), m.KeyCache(make_key_set("A")), initial_delay=3600)
    assert scheduler.next_refresh_in is None

    scheduler.start()
    try:
        deadline = time.monotonic() + 5
        while scheduler.next_refresh_in is None and time.monotonic() < deadline:
            time.sleep(0.01)
        assert 3590 < scheduler.next_refresh_in <= 3600
    finally:
        scheduler.stop(timeout=5)


def test_rejects_invalid_delays(make_key_set):
    cache = m.KeyCache(make_key_set("A"))
    with pytest.raises(ValueError):
        m.RefreshScheduler(FakeKeySource(), cache, initial_delay=-1)
    with pytest.raises(ValueError):
        m.RefreshScheduler(FakeKeySource(), cache, initial_delay=1, retry_delay=0)


@pytest.mark.parametrize("max_age", [10_000_000_000, 10**400])
def test_huge_max_age_is_capped(make_key_set, max_age: int):
    fresh = make_key_set("B", refresh_after=max_age)
    cache = m.KeyCache(make_key_set("A"))
    scheduler = _scheduler(FakeKeySource(fresh), cache)

    assert scheduler.run_once() == threading.TIMEOUT_MAX
    assert cache.read() is fresh


def test_nan_refresh_after_uses_retry_delay(make_key_set):
    scheduler = _scheduler(
        FakeKeySource(make_key_set("B", refresh_after=float("nan"))),
        m.KeyCache(make_key_set("A")),
        retry_delay=7,
    )

    assert scheduler.run_once() == 7


def test_loop_survives_huge_max_age(make_key_set):
    cache = m.KeyCache(make_key_set("A"))
    fresh = make_key_set("B", refresh_after=10_000_000_000)
    scheduler = _scheduler(FakeKeySource(fresh), cache, initial_delay=0, min_interval=0)

    scheduler.start()
    try:
        deadline = time.monotonic() + 5
        while scheduler.next_refresh_in is None or cache.read() is not fresh:
            assert time.monotonic() < deadline
            time.sleep(0.01)
        time.sleep(0.05)

        assert scheduler.is_running
        assert scheduler.state is m.SchedulerState.SLEEPING
    finally:
        scheduler.stop(timeout=5)

    assert scheduler.state is m.SchedulerState.STOPPED


def test_failure_after_fetch_is_contained(make_key_set):
    initial = make_key_set("A")
    cache = m.KeyCache(initial)
    # not a KeySet, so the cache refuses it
    scheduler = _scheduler(FakeKeySource("garbage"), cache)  # type: ignore[arg-type]

    assert scheduler.run_once() == 10
    assert cache.read() is initial


@pytest.mark.parametrize("retry_delay", [float("inf"), float("nan")])
def test_rejects_non_finite_retry_delay(make_key_set, retry_delay: float):
    with pytest.raises(ValueError):
        m.RefreshScheduler(
            FakeKeySource(), m.KeyCache(make_key_set("A")), initial_delay=1, retry_delay=retry_delay
        )

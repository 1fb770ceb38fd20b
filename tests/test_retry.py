# tests/test_retry.py
import asyncio
import logging
import random
import time

import pytest

from polyshop.core.events import RecordingEventSink
from polyshop.core.retry import (
    RetryPolicy,
    compute_base_delay,
    compute_delay,
    connect_with_retry,
)
from polyshop.services.exceptions import ConfigError, ConnectCancelled, ConnectFatal


# ---------- helpers ----------

class _Recorder:
    """Stands in for asyncio.sleep and records the requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _flaky(failures: int, exc: Exception | None = None):
    calls = {"n": 0}

    async def check() -> None:
        calls["n"] += 1
        if calls["n"] <= failures:
            raise exc or ConnectionRefusedError("store not ready")

    return check, calls


def _within_band(delay: float, policy: RetryPolicy, attempt: int) -> bool:
    base = compute_base_delay(policy, attempt)
    spread = base * policy.jitter_fraction
    return base - spread - 1e-12 <= delay <= base + spread + 1e-12


# ---------- RetryPolicy ----------

@pytest.mark.parametrize(
    "kwargs",
    [
        {"jitter_fraction": 1.0},
        {"jitter_fraction": -0.1},
        {"initial_delay": 3.0, "max_delay": 2.0},
        {"initial_delay": -0.5},
        {"max_attempts": 0},
        {"max_attempts": 2.5},
        {"initial_delay": float("nan")},
        {"max_delay": float("inf")},
        {"initial_delay": float("inf"), "max_delay": float("inf")},
        {"jitter_fraction": float("nan")},
    ],
)
def test_policy_rejects_invalid_values(kwargs):
    with pytest.raises(ConfigError):
        RetryPolicy(**kwargs)


def test_policy_is_immutable():
    policy = RetryPolicy()
    with pytest.raises(AttributeError):
        policy.max_attempts = 10  # type: ignore[misc]


# ---------- delay formula ----------

def test_base_delay_doubles_until_clamped():
    policy = RetryPolicy(initial_delay=0.1, max_delay=2.0, max_attempts=10, jitter_fraction=0.1)
    bases = [compute_base_delay(policy, k) for k in range(1, 7)]
    assert bases == pytest.approx([0.2, 0.4, 0.8, 1.6, 2.0, 2.0])


def test_worked_example_jitter_ranges():
    policy = RetryPolicy(initial_delay=0.1, max_delay=2.0, max_attempts=10, jitter_fraction=0.1)
    rng = random.Random(7)
    for _ in range(200):
        assert 0.18 - 1e-12 <= compute_delay(policy, 1, rng) <= 0.22 + 1e-12
        assert 0.36 - 1e-12 <= compute_delay(policy, 2, rng) <= 0.44 + 1e-12


@pytest.mark.parametrize("seed", range(10))
def test_base_delays_are_non_decreasing_and_bounded(seed):
    rng = random.Random(seed)
    initial = rng.uniform(0.0, 1.0)
    policy = RetryPolicy(
        initial_delay=initial,
        max_delay=initial + rng.uniform(0.0, 30.0),
        max_attempts=rng.randint(1, 20),
        jitter_fraction=rng.uniform(0.0, 0.99),
    )
    previous = 0.0
    for attempt in range(1, 200):
        base = compute_base_delay(policy, attempt)
        assert base >= previous
        assert base <= policy.max_delay
        previous = base


@pytest.mark.parametrize("seed", range(10))
def test_jittered_delay_stays_within_fraction_of_base(seed):
    rng = random.Random(seed)
    policy = RetryPolicy(
        initial_delay=rng.uniform(0.001, 0.5),
        max_delay=5.0,
        max_attempts=5,
        jitter_fraction=rng.uniform(0.0, 0.99),
    )
    for attempt in range(1, 12):
        for _ in range(50):
            assert _within_band(compute_delay(policy, attempt, rng), policy, attempt)


def test_jitter_draws_are_independent():
    policy = RetryPolicy(initial_delay=0.1, max_delay=2.0, max_attempts=5, jitter_fraction=0.5)
    rng = random.Random(3)
    draws = {compute_delay(policy, 3, rng) for _ in range(20)}
    assert len(draws) > 1


def test_zero_jitter_returns_base_delay():
    policy = RetryPolicy(initial_delay=0.1, max_delay=2.0, max_attempts=5, jitter_fraction=0.0)
    assert compute_delay(policy, 2) == pytest.approx(0.4)


def test_huge_attempt_numbers_clamp_to_max_delay():
    policy = RetryPolicy(initial_delay=0.1, max_delay=2.0)
    assert compute_base_delay(policy, 5000) == 2.0


def test_attempt_numbers_start_at_one():
    with pytest.raises(ValueError):
        compute_base_delay(RetryPolicy(), 0)


# ---------- connect_with_retry ----------

@pytest.mark.asyncio
async def test_first_attempt_success_does_not_sleep(fast_policy):
    check, calls = _flaky(0)
    sleeper = _Recorder()
    attempts = await connect_with_retry(check, fast_policy, sleep=sleeper)
    assert attempts == 1
    assert calls["n"] == 1
    assert sleeper.delays == []


@pytest.mark.asyncio
async def test_retries_until_success_and_logs(caplog):
    policy = RetryPolicy(initial_delay=0.1, max_delay=2.0, max_attempts=5, jitter_fraction=0.1)
    check, calls = _flaky(2)
    sleeper = _Recorder()
    sink = RecordingEventSink()

    with caplog.at_level(logging.INFO, logger="polyshop.core.retry"):
        attempts = await connect_with_retry(
            check, policy, target="redis://cart", sleep=sleeper, rng=random.Random(1), sink=sink
        )

    assert attempts == 3
    assert calls["n"] == 3
    assert len(sleeper.delays) == 2
    assert _within_band(sleeper.delays[0], policy, 1)
    assert _within_band(sleeper.delays[1], policy, 2)

    records = [r for r in caplog.records if r.name == "polyshop.core.retry"]
    warnings = [r for r in records if r.levelno == logging.WARNING]
    assert [r.attempt for r in warnings] == [1, 2]
    assert all(hasattr(r, "retry_delay") for r in warnings)
    infos = [r for r in records if r.levelno == logging.INFO]
    assert len(infos) == 1
    assert infos[0].attempts == 3

    assert sink.names() == [
        "store.connect.attempt",
        "store.connect.failure",
        "store.connect.attempt",
        "store.connect.failure",
        "store.connect.attempt",
        "store.connect.success",
    ]


@pytest.mark.asyncio
async def test_exhaustion_is_fatal_after_exactly_max_attempts():
    policy = RetryPolicy(initial_delay=0.05, max_delay=0.3, max_attempts=4, jitter_fraction=0.2)
    check, calls = _flaky(100)
    sleeper = _Recorder()

    with pytest.raises(ConnectFatal) as excinfo:
        await connect_with_retry(check, policy, sleep=sleeper, rng=random.Random(11))

    assert calls["n"] == 4
    assert excinfo.value.attempts == 4
    assert isinstance(excinfo.value.__cause__, ConnectionRefusedError)
    # no delay before the first attempt nor after the last one
    assert len(sleeper.delays) == 3
    for attempt, delay in enumerate(sleeper.delays, start=1):
        assert _within_band(delay, policy, attempt)


@pytest.mark.asyncio
async def test_exhaustion_with_real_sleeps_respects_backoff():
    policy = RetryPolicy(initial_delay=0.01, max_delay=0.04, max_attempts=3, jitter_fraction=0.1)
    check, calls = _flaky(100)
    started = time.monotonic()
    with pytest.raises(ConnectFatal):
        await connect_with_retry(check, policy)
    elapsed = time.monotonic() - started

    assert calls["n"] == 3
    # delays are ~0.02 and ~0.04 seconds
    assert elapsed >= 0.054 * 0.9
    assert elapsed < 1.0


@pytest.mark.asyncio
async def test_single_attempt_policy_never_sleeps():
    policy = RetryPolicy(initial_delay=0.01, max_delay=0.01, max_attempts=1)
    check, calls = _flaky(100)
    sleeper = _Recorder()
    with pytest.raises(ConnectFatal):
        await connect_with_retry(check, policy, sleep=sleeper)
    assert calls["n"] == 1
    assert sleeper.delays == []


@pytest.mark.asyncio
async def test_cancel_event_interrupts_backoff():
    policy = RetryPolicy(initial_delay=5.0, max_delay=5.0, max_attempts=3)
    check, calls = _flaky(100)
    cancel = asyncio.Event()
    asyncio.get_running_loop().call_later(0.05, cancel.set)

    started = time.monotonic()
    with pytest.raises(ConnectCancelled):
        await connect_with_retry(check, policy, cancel_event=cancel)
    assert time.monotonic() - started < 1.0
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_overall_deadline_cancels_connect():
    policy = RetryPolicy(initial_delay=5.0, max_delay=5.0, max_attempts=3)
    check, calls = _flaky(100)

    started = time.monotonic()
    with pytest.raises(ConnectCancelled):
        await connect_with_retry(check, policy, timeout=0.05)
    assert time.monotonic() - started < 1.0
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_config_errors_are_not_retried(fast_policy):
    check, calls = _flaky(100, ConfigError("bad target"))
    with pytest.raises(ConfigError):
        await connect_with_retry(check, fast_policy)
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_broken_sink_does_not_affect_connect(fast_policy):
    class _BrokenSink:
        def emit(self, name, **attributes):
            raise RuntimeError("sink down")

    check, calls = _flaky(1)
    attempts = await connect_with_retry(check, fast_policy, sink=_BrokenSink())
    assert attempts == 2


@pytest.mark.asyncio
async def test_cancellation_inside_check_is_not_retried(fast_policy):
    check, calls = _flaky(100, asyncio.CancelledError())
    with pytest.raises(asyncio.CancelledError):
        await connect_with_retry(check, fast_policy, sleep=_Recorder())
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_failure_log_reports_the_underlying_error(caplog, fast_policy):
    check, _ = _flaky(1, ConnectionResetError("peer reset"))
    with caplog.at_level(logging.WARNING, logger="polyshop.core.retry"):
        await connect_with_retry(check, fast_policy, sleep=_Recorder())

    [warning] = [r for r in caplog.records if r.name == "polyshop.core.retry"]
    assert "ConnectionResetError" in warning.error

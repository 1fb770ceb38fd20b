"""Bounded exponential backoff with jitter for connection establishment."""

from __future__ import annotations

import asyncio
import logging
import math
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from tenacity import AsyncRetrying, RetryCallState, RetryError, retry_if_exception_type, stop_after_attempt

from polyshop.core.events import EventSink, emit_event
from polyshop.services.exceptions import ConfigError, ConnectCancelled, ConnectFailure, ConnectFatal

logger = logging.getLogger(__name__)

# 2**63 already exceeds any sane max_delay
_MAX_EXPONENT = 63


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Immutable reconnection contract. Delays are in seconds."""

    initial_delay: float = 0.1
    max_delay: float = 2.0
    max_attempts: int = 5
    jitter_fraction: float = 0.1

    def __post_init__(self) -> None:
        for name in ("initial_delay", "max_delay", "jitter_fraction"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                raise ConfigError(f"{name} must be a finite number")
        if self.initial_delay < 0:
            raise ConfigError("initial_delay must be >= 0")
        if self.initial_delay > self.max_delay:
            raise ConfigError("initial_delay must not exceed max_delay")
        if isinstance(self.max_attempts, bool) or not isinstance(self.max_attempts, int) or self.max_attempts < 1:
            raise ConfigError("max_attempts must be an integer >= 1")
        if not 0 <= self.jitter_fraction < 1:
            raise ConfigError("jitter_fraction must be in [0, 1)")


def compute_base_delay(policy: RetryPolicy, attempt: int) -> float:
    """Pre-jitter delay applied after failed attempt ``attempt`` (1-indexed)."""
    if attempt < 1:
        raise ValueError("attempt is 1-indexed")
    if attempt >= _MAX_EXPONENT:
        return policy.max_delay
    return min(policy.initial_delay * (2 ** attempt), policy.max_delay)


def compute_delay(policy: RetryPolicy, attempt: int, rng: random.Random | None = None) -> float:
    """Jittered delay: uniform in base * [1 - jitter, 1 + jitter], one draw per call."""
    base = compute_base_delay(policy, attempt)
    spread = base * policy.jitter_fraction
    if not spread:
        return base
    source = rng or random
    return source.uniform(base - spread, base + spread)


async def connect_with_retry(
    check: Callable[[], Awaitable[Any]],
    policy: RetryPolicy,
    *,
    target: str = "store",
    timeout: float | None = None,
    cancel_event: asyncio.Event | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    rng: random.Random | None = None,
    sink: EventSink | None = None,
) -> int:
    """Run ``check`` until it succeeds; return the number of attempts taken.

    No delay precedes the first attempt. After failed attempt k the caller
    waits ``compute_delay(policy, k)``. ``timeout`` bounds the whole
    operation and ``cancel_event`` aborts a pending backoff; both raise
    ConnectCancelled. Exhausting ``policy.max_attempts`` raises ConnectFatal.
    """

    async def _sleep(delay: float) -> None:
        if cancel_event is None:
            await sleep(delay)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise ConnectCancelled(f"Connecting to {target} was cancelled")

    def _wait(retry_state: RetryCallState) -> float:
        return compute_delay(policy, retry_state.attempt_number, rng)

    def _before_sleep(retry_state: RetryCallState) -> None:
        attempt = retry_state.attempt_number
        delay = retry_state.next_action.sleep
        error = retry_state.outcome.exception().__cause__
        emit_event(sink, "store.connect.failure", target=target, attempt=attempt, delay=delay)
        logger.warning(
            "Connection failed, retrying with exponential backoff",
            extra={
                "target": target,
                "attempt": attempt,
                "max_attempts": policy.max_attempts,
                "retry_delay": round(delay, 4),
                "error": repr(error),
            },
        )

    async def _attempts() -> int:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=_wait,
            retry=retry_if_exception_type(ConnectFailure),
            before_sleep=_before_sleep,
            sleep=_sleep,
        )
        attempts = 0
        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    emit_event(sink, "store.connect.attempt", target=target, attempt=attempts)
                    try:
                        await check()
                    except ConfigError:
                        raise
                    except Exception as exc:
                        raise ConnectFailure(f"Attempt {attempts} to reach {target} failed") from exc
        except RetryError as exc:
            last_error = exc.last_attempt.exception().__cause__
            emit_event(sink, "store.connect.fatal", target=target, attempts=policy.max_attempts)
            logger.error(
                "Connection attempts exhausted",
                extra={"target": target, "attempts": policy.max_attempts, "error": repr(last_error)},
            )
            raise ConnectFatal(
                f"Failed to connect to {target} after {policy.max_attempts} attempts: {last_error!r}",
                attempts=policy.max_attempts,
            ) from last_error

        emit_event(sink, "store.connect.success", target=target, attempts=attempts)
        if attempts > 1:
            logger.info("Connection successful after retry", extra={"target": target, "attempts": attempts})
        else:
            logger.info("Connection established", extra={"target": target})
        return attempts

    if timeout is None:
        return await _attempts()
    try:
        return await asyncio.wait_for(_attempts(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.error("Connection deadline exceeded", extra={"target": target, "timeout": timeout})
        raise ConnectCancelled(f"Connecting to {target} exceeded {timeout}s") from exc

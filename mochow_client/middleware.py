# mochow_client/middleware.py
from __future__ import annotations
import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

import httpx

from .config import (
    DEFAULT_BACKOFF_BASE_S, DEFAULT_BACKOFF_JITTER, DEFAULT_BACKOFF_MAX_DELAY_S,
    DEFAULT_BACKOFF_MULTIPLIER, DEFAULT_RETRIES, ClientConfig,
)
from .exceptions import (
    RETRYABLE_STATUSES, DeadlineExceeded, TransportError, TransportErrorKind
)
from .transport import Call, Middleware, Next

log = logging.getLogger("mochow.transport")
trace_log = logging.getLogger("mochow.trace")


# ------------ Auth ------------
class AuthMiddleware:
    def __init__(self, config: ClientConfig):
        self._cfg = config

    async def apply(self, call: Call, call_next: Next) -> httpx.Response:
        call.request.headers["Authorization"] = f"Bearer {self._cfg.auth_token}"
        return await call_next(call)


# ------------ Retry ------------
@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = DEFAULT_RETRIES
    base_delay_s: float = DEFAULT_BACKOFF_BASE_S
    multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    max_delay_s: float = DEFAULT_BACKOFF_MAX_DELAY_S
    jitter: float = DEFAULT_BACKOFF_JITTER
    retry_statuses: frozenset[int] = RETRYABLE_STATUSES
    deadline_s: float | None = None

    @classmethod
    def from_config(cls, config: ClientConfig) -> "RetryPolicy":
        return cls(
            max_retries=config.max_retries,
            base_delay_s=config.backoff_base_s,
            multiplier=config.backoff_multiplier,
            max_delay_s=config.backoff_max_delay_s,
            jitter=config.backoff_jitter,
            retry_statuses=config.retry_statuses,
            deadline_s=config.deadline_s,
        )

    def backoff(self, attempt: int, rng: random.Random | None = None) -> float:
        """Delay in seconds before retry ``attempt + 1``; ``attempt`` counts from 0."""
        delay = min(self.base_delay_s * self.multiplier ** min(attempt, 64), self.max_delay_s)
        if self.jitter:
            delay += delay * (rng or random).uniform(-self.jitter, self.jitter)
        return max(0.0, min(delay, self.max_delay_s))


class RetryMiddleware:
    """
    Retries idempotent calls on transport failures and on retryable statuses.
    Non-idempotent calls get exactly one attempt. With a deadline, no attempt
    starts and no backoff sleep runs past it.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        *,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ):
        self.policy = policy
        self._sleep = sleep
        self._clock = clock
        self._rng = rng

    async def apply(self, call: Call, call_next: Next) -> httpx.Response:
        policy = self.policy
        deadline = None if policy.deadline_s is None else self._clock() + policy.deadline_s
        if not call.descriptor.is_idempotent or policy.max_retries == 0:
            call.attempt = 1
            return await self._attempt(call, call_next, deadline)

        response: httpx.Response | None = None
        last_error: TransportError | None = None
        for attempt in range(policy.max_retries + 1):
            call.attempt = attempt + 1
            response, last_error = None, None
            try:
                response = await self._attempt(call, call_next, deadline)
            except DeadlineExceeded:
                raise
            except TransportError as exc:
                last_error = exc
            else:
                if response.status_code not in policy.retry_statuses:
                    return response

            if attempt == policy.max_retries:
                break
            delay = policy.backoff(attempt, self._rng)
            if deadline is not None and self._clock() + delay >= deadline:
                log.warning("deadline reached for %s after %d attempt(s); not retrying",
                            call.descriptor.target, call.attempt)
                break
            log.warning(
                "retrying %s in %.3fs (attempt %d/%d failed: %s)",
                call.descriptor.target, delay, call.attempt, policy.max_retries + 1,
                f"HTTP {response.status_code}" if response is not None else last_error.kind.value,
            )
            if response is not None:
                await response.aclose()
            await self._sleep(delay)

        if response is not None:
            # last failure was a retryable status; the codec turns it into ServiceError
            return response
        raise TransportError(
            TransportErrorKind.RETRIES_EXHAUSTED,
            last_error.detail,
            path=call.descriptor.url,
            attempts=call.attempt,
            last_error=last_error,
        )

    async def _attempt(self, call: Call, call_next: Next, deadline: float | None) -> httpx.Response:
        if deadline is None:
            return await call_next(call)
        remaining = deadline - self._clock()
        if remaining <= 0:
            raise DeadlineExceeded(path=call.descriptor.url, attempts=call.attempt)
        try:
            return await asyncio.wait_for(call_next(call), timeout=remaining)
        except asyncio.TimeoutError as exc:
            # wait_for cancelled the in-flight send, which releases its connection
            raise DeadlineExceeded(path=call.descriptor.url, attempts=call.attempt) from exc


# ------------ Tracing ------------
@dataclass(frozen=True)
class TraceRecord:
    method: str
    path: str
    status: int | None
    latency_ms: float
    attempt: int
    error: str | None = None


TraceSink = Callable[[TraceRecord], None]


def log_trace(record: TraceRecord) -> None:
    trace_log.debug(
        "%s %s -> %s in %.1fms (attempt %d)%s",
        record.method, record.path, record.status if record.status is not None else "-",
        record.latency_ms, record.attempt, f" error={record.error}" if record.error else "",
    )


class TracingMiddleware:
    """Records method, path, status and latency of every attempt."""

    def __init__(self, sink: TraceSink = log_trace, *, clock: Callable[[], float] = time.perf_counter):
        self._sink = sink
        self._clock = clock

    async def apply(self, call: Call, call_next: Next) -> httpx.Response:
        started = self._clock()
        status, error = None, None
        try:
            response = await call_next(call)
            status = response.status_code
            return response
        except TransportError as exc:
            error = exc.kind.value
            raise
        finally:
            self._emit(TraceRecord(
                method=call.descriptor.method.upper(),
                path=call.descriptor.url,
                status=status,
                latency_ms=(self._clock() - started) * 1000.0,
                attempt=call.attempt,
                error=error,
            ))

    def _emit(self, record: TraceRecord) -> None:
        try:
            self._sink(record)
        except Exception as exc:
            log.warning("trace sink failed for %s %s: %s", record.method, record.path, exc)


def default_middlewares(
    config: ClientConfig,
    *,
    trace_sink: TraceSink | None = None,
) -> list[Middleware]:
    chain: list[Middleware] = [AuthMiddleware(config), RetryMiddleware(RetryPolicy.from_config(config))]
    if config.enable_tracing:
        chain.append(TracingMiddleware(trace_sink or log_trace))
    return chain

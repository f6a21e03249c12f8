from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

import structlog

from userbase.bootstrap.results import GateResult, GateStatus, RetryState
from userbase.bootstrap.storage import Storage
from userbase.metrics import DB_CONNECT_ATTEMPTS

log = structlog.get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class ConnectivityGate:
    """Poll the database until a probe succeeds or the retry budget runs out.

    The delay between attempts is fixed; there is no backoff. With the default
    30 attempts x 1 second the gate gives up after roughly 30 seconds.
    """

    def __init__(
        self,
        storage: Storage,
        *,
        max_attempts: int = 30,
        delay: float = 1.0,
        probe_timeout: float = 5.0,
        sleep: Sleep = asyncio.sleep,
    ):
        self.storage = storage
        self.max_attempts = max_attempts
        self.delay = delay
        self.probe_timeout = probe_timeout
        self._sleep = sleep

    async def wait_ready(self, max_attempts: int | None = None, delay: float | None = None) -> GateResult:
        state = RetryState(
            max_attempts=self.max_attempts if max_attempts is None else max_attempts,
            delay=self.delay if delay is None else delay,
        )
        if state.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if state.delay < 0:
            raise ValueError("delay must be >= 0")

        last_error: str | None = None
        while not state.exhausted:
            attempt = state.attempts + 1
            try:
                await self.storage.ping(self.probe_timeout)
            except Exception as e:
                state.record_failure()
                last_error = f"{type(e).__name__}: {e}"
                DB_CONNECT_ATTEMPTS.labels("failure").inc()
                log.warning(
                    "db_connect_attempt_failed",
                    attempt=attempt,
                    max_attempts=state.max_attempts,
                    delay=state.delay,
                    error=last_error,
                )
                if not state.exhausted:
                    await self._sleep(state.delay)
                continue

            DB_CONNECT_ATTEMPTS.labels("success").inc()
            log.info("db_connect_ready", attempt=attempt)
            return GateResult(status=GateStatus.READY, attempts=attempt)

        log.error("db_connect_timed_out", attempts=state.attempts, error=last_error)
        return GateResult(status=GateStatus.TIMED_OUT, attempts=state.attempts, last_error=last_error)

"""Wait for a remote run to reach a terminal status."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from core.remote.models import RunResult
from core.utils.errors import RunTimeoutError
from core.utils.log_events import log_event

logger = logging.getLogger("testkit.runner")

FetchRun = Callable[[int], Awaitable[RunResult | None]]


class RunPoller:
    """Poll one run with a growing delay and a hard wall-clock budget.

    States: pending/started -> running -> completed | test_error | internal_error.
    Exceeding the budget raises RunTimeoutError; the remote run is left alone.
    """

    def __init__(
        self,
        fetch: FetchRun,
        *,
        initial_delay: float = 1.0,
        backoff: float = 1.05,
        timeout: float = 500.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetch = fetch
        self._initial_delay = initial_delay
        self._backoff = backoff
        self._timeout = timeout
        self._sleep = sleep
        self._clock = clock

    async def wait(self, run_id: int) -> RunResult:
        started_at = self._clock()
        delay = self._initial_delay
        polls = 0
        while True:
            await self._sleep(delay)
            result = await self._fetch(run_id)
            polls += 1
            if result is not None and result.is_terminal():
                log_event(
                    logger,
                    logging.INFO,
                    "run_finished",
                    run_id=run_id,
                    status=result.status,
                    polls=polls,
                )
                return result

            waited = self._clock() - started_at
            if waited >= self._timeout:
                log_event(
                    logger, logging.ERROR, "run_timeout", run_id=run_id, waited_seconds=waited
                )
                raise RunTimeoutError(
                    "Timeout. Try to run your test again", run_id=run_id, waited_seconds=waited
                )
            log_event(
                logger,
                logging.DEBUG,
                "run_pending",
                run_id=run_id,
                status=result.status if result is not None else None,
                delay_seconds=delay,
            )
            delay *= self._backoff

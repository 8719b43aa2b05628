"""Periodic pre-warming of the publisher credential cache.

The refresher regenerates every configured credential on a fixed interval
shorter than either TTL, so request handlers almost always find a fresh
credential in the cache.  Scheduling is pluggable: :class:`IntervalScheduler`
runs on the event loop, while a deployment with an external trigger (cron,
a platform scheduler) can call :meth:`BackgroundRefresher.run_once` itself.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from pushrelay._constants import DEFAULT_REFRESH_INTERVAL
from pushrelay.tokens import TokenManager, Upstream

logger = logging.getLogger(__name__)


class Scheduler(Protocol):
    def start(self, func: Callable[[], Awaitable[object]], interval: float) -> None: ...

    async def stop(self) -> None: ...


class IntervalScheduler:
    """Run a coroutine function now and then every *interval* seconds."""

    def __init__(self) -> None:
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, func: Callable[[], Awaitable[object]], interval: float) -> None:
        if self.running:
            raise RuntimeError("Scheduler is already running.")
        self._task = asyncio.create_task(self._loop(func, interval))

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _loop(self, func: Callable[[], Awaitable[object]], interval: float) -> None:
        while True:
            try:
                await func()
            except Exception:
                # CancelledError is not an Exception, so stop() still works.
                logger.exception("Scheduled job failed")
            await asyncio.sleep(interval)


class BackgroundRefresher:
    def __init__(
        self,
        tokens: TokenManager,
        *,
        interval: float = DEFAULT_REFRESH_INTERVAL,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._tokens = tokens
        self._interval = interval
        self._scheduler = scheduler or IntervalScheduler()

    @property
    def interval(self) -> float:
        return self._interval

    async def run_once(self) -> dict[Upstream, Exception | None]:
        """Refresh every configured upstream concurrently.

        Each refresh is independent: a failure is logged and recorded
        against its upstream while the others complete.  Unconfigured
        upstreams are skipped.
        """
        upstreams = self._tokens.configured_upstreams()
        if not upstreams:
            logger.warning("No publisher credentials configured; nothing to refresh")
            return {}
        outcomes = await asyncio.gather(
            *(self._tokens.refresh_credential(u) for u in upstreams),
            return_exceptions=True,
        )
        results: dict[Upstream, Exception | None] = {}
        for upstream, outcome in zip(upstreams, outcomes, strict=True):
            if isinstance(outcome, Exception):
                logger.error("%s credential refresh failed: %s", upstream, outcome)
                results[upstream] = outcome
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results[upstream] = None
        return results

    def start(self) -> None:
        logger.info("Refreshing publisher credentials every %d min", self._interval // 60)
        self._scheduler.start(self.run_once, self._interval)

    async def stop(self) -> None:
        await self._scheduler.stop()

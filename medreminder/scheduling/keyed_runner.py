"""
In-process keyed task runner with a replace policy
"""
import asyncio
import logging
from concurrent.futures import Executor
from functools import partial
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

from .metrics import scheduling_runs_superseded_total

logger = logging.getLogger(__name__)


class KeyedTaskRunner:
    """Runs blocking jobs so that each key has at most one job in flight.

    Submitting for a busy key parks the job as that key's pending job; a later
    submission replaces (and cancels) the parked one. The parked job starts
    once the running one finishes. Different keys run concurrently in the
    executor.
    """

    def __init__(self, executor: Optional[Executor] = None):
        self._executor = executor
        self._running: Dict[Hashable, asyncio.Task] = {}
        self._pending: Dict[Hashable, Tuple[Callable[[], Any], asyncio.Future]] = {}

    def submit(self, key: Hashable, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> asyncio.Future:
        """Queue ``fn(*args, **kwargs)`` under ``key``; the future resolves with its result"""
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        job = partial(fn, *args, **kwargs)

        if key in self._running:
            replaced = self._pending.pop(key, None)
            if replaced is not None:
                replaced[1].cancel()
                scheduling_runs_superseded_total.inc()
                logger.info(f"⏰ [KeyedRunner] Replaced queued job for key={key!r}")
            self._pending[key] = (job, future)
        else:
            self._start(key, job, future)
        return future

    def is_running(self, key: Hashable) -> bool:
        return key in self._running

    def has_pending(self, key: Hashable) -> bool:
        return key in self._pending

    async def drain(self) -> None:
        """Wait until every running and pending job has finished"""
        while self._running:
            await asyncio.gather(*list(self._running.values()), return_exceptions=True)

    def _start(self, key: Hashable, job: Callable[[], Any], future: asyncio.Future) -> None:
        self._running[key] = asyncio.create_task(self._execute(key, job, future))

    async def _execute(self, key: Hashable, job: Callable[[], Any], future: asyncio.Future) -> None:
        try:
            if future.done():
                # Cancelled by the caller while it was queued
                logger.info(f"⏭️  [KeyedRunner] Skipping cancelled job for key={key!r}")
                return
            loop = asyncio.get_running_loop()
            try:
                result = await loop.run_in_executor(self._executor, job)
            except Exception as e:
                logger.error(f"❌ [KeyedRunner] Job for key={key!r} failed: {e!r}")
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(result)
        finally:
            self._running.pop(key, None)
            parked = self._pending.pop(key, None)
            if parked is not None:
                self._start(key, *parked)

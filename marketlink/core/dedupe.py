"""
Request deduplication.

Concurrent callers asking for the same resource share one upstream call.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from marketlink.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _retrieve_exception(task: "asyncio.Task[Any]") -> None:
    # Every waiter may have gone away; keep asyncio from reporting the error as unhandled
    if not task.cancelled():
        task.exception()


@dataclass
class InFlightRequest:
    dedupe_key: str
    task: "asyncio.Task[Any]"
    subscriber_count: int = 1


class Deduplicator:
    """
    Collapses concurrent identical calls into one.

    The first caller for a key starts the call as a task; later callers with
    the same key await that task while it is pending. The registration is
    dropped as soon as the task settles, so the next call starts fresh.
    Waiters are shielded: a cancelled waiter does not cancel the shared call.

    Example:
        dedupe = Deduplicator()
        a, b = await asyncio.gather(
            dedupe.dedupe("quote:AAPL", fetch_aapl),
            dedupe.dedupe("quote:AAPL", fetch_aapl),
        )  # fetch_aapl ran once
    """

    def __init__(self) -> None:
        self._in_flight: Dict[str, InFlightRequest] = {}

    async def dedupe(self, key: Optional[str], fn: Callable[[], Awaitable[T]]) -> T:
        if not key:
            return await fn()

        request = self._in_flight.get(key)
        if request is not None:
            request.subscriber_count += 1
            logger.debug("Joining in-flight request %s (%d waiting)", key, request.subscriber_count)
        else:
            task = asyncio.ensure_future(self._run(key, fn))
            task.add_done_callback(_retrieve_exception)
            request = InFlightRequest(dedupe_key=key, task=task)
            self._in_flight[key] = request

        return await asyncio.shield(request.task)

    async def _run(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        try:
            return await fn()
        finally:
            request = self._in_flight.get(key)
            if request is not None and request.task is asyncio.current_task():
                del self._in_flight[key]

    def in_flight(self, key: str) -> bool:
        return key in self._in_flight

    def subscriber_count(self, key: str) -> int:
        request = self._in_flight.get(key)
        return request.subscriber_count if request else 0

    def __len__(self) -> int:
        return len(self._in_flight)

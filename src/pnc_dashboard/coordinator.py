"""In-flight request registry: one upstream call per key at a time.

Concurrent callers for the same key share a single asyncio task and see the
same result or the same exception. The registration is dropped when the
task finishes either way; completed results are not kept (that is the
cache's job) and failures are not retried.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")


class RequestCoordinator:

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Task[Any]] = {}

    async def run_deduplicated(self, key: str, producer: Callable[[], Awaitable[T]]) -> T:
        """Await ``producer()`` once per key, sharing it with concurrent callers."""
        task = self._pending.get(key)
        if task is not None:
            log.debug("joining in-flight request %s", key)
        else:
            # Registered before the first await so concurrent callers see it.
            task = asyncio.ensure_future(self._run(key, producer))
            self._pending[key] = task
        # shield: a caller that stops waiting must not cancel the shared call
        return await asyncio.shield(task)

    async def _run(self, key: str, producer: Callable[[], Awaitable[T]]) -> T:
        try:
            return await producer()
        finally:
            self._pending.pop(key, None)

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every in-flight request to finish, ignoring outcomes."""
        if self._pending:
            await asyncio.gather(*self._pending.values(), return_exceptions=True)

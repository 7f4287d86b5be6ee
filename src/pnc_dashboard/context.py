"""Service context: the one handle that owns shared state and clients.

Replaces process-wide singletons for the cache and the in-flight registry.
Build one with ``ServiceContext.create()`` (or construct it directly with
fakes in tests) and call ``shutdown()`` when done:

    async with ServiceContext.create() as ctx:
        service = InsuranceDataService(ctx)
        ...
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from pnc_dashboard.cache import TTLCache
from pnc_dashboard.config import Settings, get_config
from pnc_dashboard.coordinator import RequestCoordinator
from pnc_dashboard.db import SnapshotStore
from pnc_dashboard.fmp_client import FMPClient
from pnc_dashboard.fred_client import FREDClient
from pnc_dashboard.narrator import Narrator
from pnc_dashboard.sec_client import SECClient

log = logging.getLogger(__name__)


@dataclass
class ServiceContext:
    settings: Settings
    cache: TTLCache
    fmp: Any
    fred: Any
    sec: Any
    narrator: Any = None
    snapshots: SnapshotStore | None = None
    coordinator: RequestCoordinator = field(default_factory=RequestCoordinator)
    # None means the module-level random source
    rng: random.Random | None = None

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> ServiceContext:
        """Wire real clients from settings (defaults to ``get_config()``)."""
        settings = settings or get_config()
        cache = TTLCache(
            default_ttl=settings.cache_ttl_seconds,
            max_entries=settings.cache_max_entries,
            prefix=settings.cache_prefix,
            clock=clock,
        )
        timeout = settings.http_timeout_seconds
        ctx = cls(
            settings=settings,
            cache=cache,
            fmp=FMPClient(settings.fmp_api_key, settings.fmp_base_url, timeout=timeout),
            fred=FREDClient(settings.fred_api_key, settings.fred_base_url, timeout=timeout),
            sec=SECClient(user_agent=settings.edgar_identity, timeout=timeout),
            narrator=Narrator(settings.anthropic_api_key, model=settings.anthropic_model),
            snapshots=SnapshotStore(settings.mongodb_uri) if settings.mongodb_uri else None,
            rng=rng,
        )
        log.info(
            "Service context ready (cache ttl=%ss, max=%d, snapshots=%s)",
            settings.cache_ttl_seconds, settings.cache_max_entries,
            "on" if ctx.snapshots else "off",
        )
        return ctx

    async def shutdown(self) -> None:
        """Let in-flight fetches finish, drop cached data, close clients."""
        await self.coordinator.drain()
        self.cache.clear()
        for client in (self.fmp, self.fred, self.narrator):
            close = getattr(client, "close", None)
            if close is not None:
                await close()
        if self.snapshots is not None:
            self.snapshots.close()
        log.info("Service context shut down")

    async def __aenter__(self) -> ServiceContext:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

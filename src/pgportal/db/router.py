"""Connection routing: one pool per target identity, created on demand.

Pools are cached by target identity with an LRU cap and idle eviction, so
sessions bound to different databases can run side by side without tearing
down each other's pools. A cap of one reproduces a single active pool that is
replaced whenever the requested target changes.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import asyncpg

from pgportal.config.settings import PoolConfig
from pgportal.db.targets import RoutingContext, TargetIdentity
from pgportal.errors import RoutingError
from pgportal.policy.permissions import Grant

logger = logging.getLogger(__name__)

PoolFactory = Callable[[TargetIdentity], Awaitable[Any]]


def asyncpg_pool_factory(config: PoolConfig) -> PoolFactory:
    """Build a factory that opens an ``asyncpg`` pool for a target."""

    async def create(target: TargetIdentity) -> asyncpg.Pool:
        return await asyncpg.create_pool(
            target.dsn,
            min_size=config.min_size,
            max_size=config.max_size,
            command_timeout=config.command_timeout,
        )

    return create


@dataclass
class _PoolEntry:
    pool: Any
    last_used: float


class ConnectionRouter:
    def __init__(
        self,
        config: PoolConfig | None = None,
        *,
        pool_factory: PoolFactory | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or PoolConfig()
        self._factory = pool_factory or asyncpg_pool_factory(self._config)
        self._clock = clock
        self._pools: OrderedDict[TargetIdentity, _PoolEntry] = OrderedDict()
        self._creating: dict[TargetIdentity, asyncio.Lock] = {}
        self._current: RoutingContext | None = None
        self._draining: set[asyncio.Task[None]] = set()

    @property
    def has_pool(self) -> bool:
        return bool(self._pools)

    @property
    def pool_count(self) -> int:
        return len(self._pools)

    def current_target(self) -> TargetIdentity | None:
        return self._current.target if self._current else None

    def current_permission_grant(self) -> Grant:
        return self._current.grant if self._current else Grant.read_only()

    async def install(self, context: RoutingContext) -> Any:
        """Make ``context`` the process-wide current routing context.

        The current context is informational; execution always receives its
        context explicitly.
        """
        pool = await self.ensure_target(context.target)
        self._current = context
        return pool

    async def ensure_target(self, target: TargetIdentity) -> Any:
        """Return the pool for ``target``, creating it if needed.

        Idempotent: a target with a live pool gets the same pool back without
        reconnecting. A new pool is constructed before anything is evicted, so
        a failed construction leaves the cache exactly as it was. Evicted pools
        drain in the background; ``close`` waits for them.

        Raises:
            RoutingError: If the pool cannot be constructed.
        """
        entry = self._touch(target)
        if entry is not None:
            return entry.pool

        lock = self._creating.setdefault(target, asyncio.Lock())
        async with lock:
            entry = self._touch(target)
            if entry is not None:
                return entry.pool

            try:
                pool = await self._factory(target)
            except Exception as exc:
                logger.warning("Failed to open pool for %s: %s", target, exc)
                raise RoutingError(f"Could not connect to {target}: {exc}") from exc
            finally:
                self._creating.pop(target, None)

            self._pools[target] = _PoolEntry(pool=pool, last_used=self._clock())
            logger.info("Opened connection pool for %s", target)

        self._drain_in_background(self._evict())
        return pool

    async def close(self) -> None:
        """Drain every cached pool and wait for earlier evictions to finish."""
        stale = [entry.pool for entry in self._pools.values()]
        self._pools.clear()
        self._current = None
        await self._drain([(None, pool) for pool in stale])
        await self.wait_drained()

    async def wait_drained(self) -> None:
        """Wait for pools evicted by earlier ``ensure_target`` calls to close."""
        while self._draining:
            await asyncio.gather(*self._draining, return_exceptions=True)

    def _touch(self, target: TargetIdentity) -> _PoolEntry | None:
        entry = self._pools.get(target)
        if entry is None:
            return None
        entry.last_used = self._clock()
        self._pools.move_to_end(target)
        return entry

    def _evict(self) -> list[tuple[TargetIdentity | None, Any]]:
        now = self._clock()
        evicted: list[tuple[TargetIdentity | None, Any]] = []

        newest = next(reversed(self._pools), None)
        for target, entry in list(self._pools.items()):
            if target != newest and now - entry.last_used > self._config.idle_seconds:
                evicted.append((target, self._pools.pop(target).pool))

        while len(self._pools) > self._config.max_pools:
            target, entry = self._pools.popitem(last=False)
            evicted.append((target, entry.pool))

        if self._current is not None and self._current.target not in self._pools:
            self._current = None
        return evicted

    def _drain_in_background(self, pools: list[tuple[TargetIdentity | None, Any]]) -> None:
        if not pools:
            return
        task = asyncio.get_running_loop().create_task(self._drain(pools))
        self._draining.add(task)
        task.add_done_callback(self._draining.discard)

    async def _drain(self, pools: list[tuple[TargetIdentity | None, Any]]) -> None:
        for target, pool in pools:
            try:
                await asyncio.wait_for(pool.close(), timeout=self._config.close_timeout_seconds)
            except Exception as exc:
                logger.warning("Failed to drain pool for %s: %s", target or "<shutdown>", exc)
            else:
                logger.info("Drained connection pool for %s", target or "<shutdown>")

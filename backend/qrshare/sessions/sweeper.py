"""Periodic expiry sweep for pairing sessions.

The sweeper owns a single asyncio task bound to the application lifespan.
Each cycle asks the registry for sessions past their deadline and hands
each one to the shared teardown procedure.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from .registry import SessionRegistry

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL_SECONDS = 10.0

Teardown = Callable[[str], Awaitable[bool]]


class ExpirySweeper:
    """Evicts expired sessions every *interval_seconds*.

    Expiry is enforced at sweep granularity: a session disappears no
    earlier than its deadline and no later than one interval after it.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        teardown: Teardown,
        interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ) -> None:
        self._registry = registry
        self._teardown = teardown
        self.interval_seconds = interval_seconds
        self._sweep_task: Optional[asyncio.Task] = None  # type: ignore[type-arg]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    async def start(self) -> None:
        """Start the background sweep task (no-op if already running)."""
        if self.running:
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info("[SWEEP] Task started (interval=%ss)", self.interval_seconds)

    async def stop(self) -> None:
        """Cancel the sweep task and wait for it to finish."""
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
            logger.info("[SWEEP] Task stopped")

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.sweep_once()
            except Exception as exc:  # pylint: disable=broad-except
                logger.exception("[SWEEP] Cycle failed: %s", exc)

    async def sweep_once(self) -> List[str]:
        """Tear down every expired session.

        Returns:
            Ids that were actually torn down. A session deleted concurrently
            by an explicit request is skipped.
        """
        evicted: List[str] = []
        for session_id in self._registry.expired():
            try:
                if await self._teardown(session_id):
                    evicted.append(session_id)
            except Exception as exc:  # pylint: disable=broad-except
                logger.exception("[SWEEP] Teardown of %s failed: %s", session_id, exc)
        if evicted:
            logger.info("[SWEEP] Evicted %d expired session(s)", len(evicted))
        return evicted

"""
Broker reachability.

Publishing is refused up front while the broker is known to be down, so a
request fails fast with 503 instead of hanging on a dead connection. The
flag is set by a probe at startup, cleared by any publish that fails with
a connection error, and restored by a background re-probe.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from expense_ocr.pipeline.core.config import BROKER_REPROBE_SECONDS
from expense_ocr.pipeline.core.exceptions import BrokerUnavailableError

logger = logging.getLogger(__name__)


class BrokerMonitor:
    """
    Args:
        probe: Blocking check returning True when the broker answers
        reprobe_interval: Seconds between probes while unreachable
    """

    def __init__(self, probe: Callable[[], bool], reprobe_interval: float = BROKER_REPROBE_SECONDS):
        self.probe = probe
        self.reprobe_interval = reprobe_interval
        self._reachable = False
        self._task: Optional[asyncio.Task] = None
        self._stopped = False

    @property
    def reachable(self) -> bool:
        return self._reachable

    async def check(self) -> bool:
        """Run the probe once and record the outcome."""
        try:
            ok = bool(await asyncio.to_thread(self.probe))
        except Exception as e:
            logger.warning(f"Broker probe raised: {e}", extra={"service": "QUEUE"})
            ok = False
        if ok and not self._reachable:
            logger.info("Broker reachable", extra={"service": "QUEUE"})
        self._reachable = ok
        return ok

    async def start(self) -> None:
        self._stopped = False
        if not await self.check():
            logger.warning(
                f"Broker unreachable at startup, re-probing every {self.reprobe_interval}s",
                extra={"service": "QUEUE"},
            )
            self._schedule_reprobe()

    async def stop(self) -> None:
        self._stopped = True
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    def ensure_reachable(self) -> None:
        """Raise BrokerUnavailableError while the broker is marked down."""
        if not self._reachable:
            raise BrokerUnavailableError("broker not reachable")

    def mark_unreachable(self, reason: str) -> None:
        logger.error(f"Broker marked unreachable: {reason}", extra={"service": "QUEUE"})
        self._reachable = False
        self._schedule_reprobe()

    def _schedule_reprobe(self) -> None:
        if self._stopped or (self._task is not None and not self._task.done()):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._task = loop.create_task(self._reprobe_loop())

    async def _reprobe_loop(self) -> None:
        while not self._stopped and not self._reachable:
            await asyncio.sleep(self.reprobe_interval)
            await self.check()

"""
Update Loop

The sequential update cycle:

    inventory -> check -> route/recreate (one container at a time)
    -> own container -> re-inventory -> sleep UPDATE_INTERVAL

The sleep is interrupted by a run-now request (SIGUSR1 or POST /api/run-now).
Requests do not queue: one received mid-cycle only cuts the next sleep short.
"""

import asyncio
import logging
import signal
from datetime import datetime, timezone
from typing import Dict, Optional

from event_bus import Event, EventBus, EventType, get_event_bus
from inventory.models import InventorySnapshot
from updates.types import UpdateAction, UpdateResult, UpdateStatus

logger = logging.getLogger(__name__)


class UpdateLoop:
    """
    Args:
        builder: InventoryBuilder
        checker: UpdateChecker
        executor: UpdateExecutor
        interval: seconds between cycles
    """

    def __init__(self, builder, checker, executor, interval: int = 86400,
                 event_bus: Optional[EventBus] = None):
        self.builder = builder
        self.checker = checker
        self.executor = executor
        self.interval = interval
        self.event_bus = event_bus or get_event_bus()

        self._wake = asyncio.Event()
        self._stopping = False
        self.snapshot: InventorySnapshot = InventorySnapshot()
        self.statuses: Dict[str, UpdateStatus] = {}
        self.last_cycle_at: Optional[datetime] = None
        self.cycle_running = False

    def wake(self) -> None:
        """Run the next cycle now"""
        logger.info("Run-now requested")
        self._wake.set()

    def stop(self) -> None:
        self._stopping = True
        self._wake.set()

    @property
    def stopping(self) -> bool:
        return self._stopping

    def install_signal_handler(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> bool:
        """Wake on SIGUSR1. Returns False where signal handlers are unsupported."""
        loop = loop or asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGUSR1, self.wake)
        except (NotImplementedError, RuntimeError, AttributeError) as e:
            logger.warning(f"SIGUSR1 run-now trigger unavailable: {e}")
            return False
        return True

    async def run_cycle(self) -> Dict[str, UpdateResult]:
        """
        One full cycle. A failure for one container never stops the others.
        """
        self.cycle_running = True
        results: Dict[str, UpdateResult] = {}
        try:
            await self.event_bus.emit(Event(EventType.CYCLE_STARTED, 'system', 'scheduler', 'scheduler'))

            self.snapshot = await self.builder.build()
            statuses = await self.checker.check_all(self.snapshot)
            self.statuses = statuses

            for record in self.snapshot:
                status = statuses[record.name]
                try:
                    results[record.name] = await self.executor.process(record, status)
                except Exception as e:
                    logger.error(f"Error processing update for {record.name}: {e}", exc_info=True)
                    results[record.name] = UpdateResult(
                        record.name, UpdateAction.FAILED, status=status, message=str(e)
                    )

            try:
                self_result = await self.executor.check_self()
            except Exception as e:
                logger.error(f"Error checking own container for updates: {e}", exc_info=True)
                self_result = None
            if self_result is not None:
                results[self_result.container_name] = self_result
                if self_result.action == UpdateAction.SELF_UPDATE_SCHEDULED:
                    self.stop()
                    return results

            if any(r.action == UpdateAction.RECREATED for r in results.values()) or \
                    any(r.recreation is not None and r.recreation.container_lost for r in results.values()):
                # New identities must show up in the inventory
                self.snapshot = await self.builder.build()

            self.last_cycle_at = datetime.now(timezone.utc)
            await self.event_bus.emit(Event(
                EventType.CYCLE_COMPLETED, 'system', 'scheduler', 'scheduler',
                data={a.value: sum(1 for r in results.values() if r.action == a) for a in UpdateAction},
            ))
            logger.info("Container update check complete")
            return results
        finally:
            self.cycle_running = False

    async def _sleep(self) -> None:
        logger.info(f"Sleeping for {self.interval} seconds until next check...")
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=self.interval)
        except asyncio.TimeoutError:
            pass

    async def run_forever(self) -> None:
        """Cycle until stop() is called or a self-update is scheduled"""
        logger.info(f"Update loop started (interval {self.interval}s)")
        while not self._stopping:
            # Requests arriving from here on shorten the coming sleep
            self._wake.clear()
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Update cycle failed: {e}", exc_info=True)

            if self._stopping:
                break
            await self._sleep()
        logger.info("Update loop stopped")

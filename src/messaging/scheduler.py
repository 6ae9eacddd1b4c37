"""Fixed-rate background tasks for service processes."""

import asyncio

import structlog

logger = structlog.get_logger(__name__)


class FixedRateTask:
    """Runs a blocking ``func`` every ``interval`` seconds in a worker thread.

    A failing tick is logged and the schedule continues. Ticks never overlap:
    a slow tick delays the next one instead of stacking up.
    """

    def __init__(self, name: str, func, interval: float):
        self.name = name
        self.func = func
        self.interval = interval
        self.runs = 0
        self.failures = 0

    async def tick(self):
        try:
            result = await asyncio.to_thread(self.func)
        except Exception:
            self.failures += 1
            logger.exception("Scheduled task failed", task=self.name)
            return None
        finally:
            self.runs += 1
        return result

    async def run(self, stop_event: asyncio.Event | None = None):
        stop_event = stop_event or asyncio.Event()
        loop = asyncio.get_running_loop()
        logger.info("Scheduled task started", task=self.name, interval_seconds=self.interval)

        while not stop_event.is_set():
            started = loop.time()
            await self.tick()
            remaining = self.interval - (loop.time() - started)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=max(remaining, 0))
            except TimeoutError:
                pass

        logger.info("Scheduled task stopped", task=self.name, runs=self.runs, failures=self.failures)

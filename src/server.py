"""OrderFlow service runner.

Starts the periodic tasks of each service in one asyncio loop:
- Outbox relay: publishes committed outbox rows to the broker
- Consumer worker: applies inbound events idempotently, with retries
- Dead-letter handler: records messages that exhausted their retries
- Service jobs, such as the ordering payment-timeout scan

Usage:
    python src/server.py                     # Run every service
    python src/server.py --service ordering  # Run only the ordering service
"""

import argparse
import asyncio
import signal

import structlog

from messaging.utils.logging import bind_service, configure_logging
from services import SERVICE_NAMES, load_service

logger = structlog.get_logger(__name__)


async def _run_task(service, task, stop_event):
    # Each asyncio task owns a copy of the context, so the binding stays local
    bind_service(service)
    await task.run(stop_event)


async def run(service_names):
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop_event.set)

    runtimes = []
    tasks = []
    for name in service_names:
        _, runtime = load_service(name)
        runtimes.append(runtime)
        tasks.extend((name, task) for task in runtime.tasks())

    logger.info("OrderFlow services starting", services=service_names, tasks=[task.name for _, task in tasks])
    try:
        await asyncio.gather(*(_run_task(name, task, stop_event) for name, task in tasks))
    finally:
        for runtime in runtimes:
            runtime.shutdown()
        logger.info("OrderFlow services stopped", services=service_names)


def main():
    parser = argparse.ArgumentParser(description="OrderFlow service runner")
    parser.add_argument(
        "--service",
        choices=SERVICE_NAMES,
        action="append",
        help="Run only the given service (repeatable, default: run all)",
    )
    args = parser.parse_args()

    configure_logging()
    asyncio.run(run(args.service or SERVICE_NAMES))


if __name__ == "__main__":
    main()

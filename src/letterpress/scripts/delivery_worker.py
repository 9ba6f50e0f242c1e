"""Run issue delivery workers outside the API process.

    python -m letterpress.scripts.delivery_worker --workers 4

SIGINT/SIGTERM stop the workers after their in-flight task; a task whose
send was interrupted is released back to the queue when its session closes.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import signal

from letterpress.core.settings import settings
from letterpress.db.session import SessionLocal
from letterpress.services.delivery_worker import DeliveryWorker
from letterpress.services.email_client import EmailClient

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Deliver queued newsletter issues.")
    parser.add_argument(
        "--workers",
        type=int,
        default=settings.delivery_worker_count,
        help="Number of concurrent delivery loops (default: DELIVERY_WORKER_COUNT).",
    )
    parser.add_argument(
        "--drain",
        action="store_true",
        help="Deliver the current backlog once and exit instead of polling forever.",
    )
    return parser.parse_args(argv)


async def run_workers(worker_count: int, *, drain: bool = False) -> None:
    email_client = EmailClient()
    workers = [
        DeliveryWorker(email_client, SessionLocal, name=f"delivery-worker-{index}")
        for index in range(max(1, worker_count))
    ]
    try:
        if drain:
            await asyncio.gather(*(worker.run_until_empty() for worker in workers))
            return

        stop_requested = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_requested.set)

        for worker in workers:
            await worker.start()
        await stop_requested.wait()
        logger.info("Shutdown requested, stopping %d delivery workers", len(workers))
        for worker in workers:
            await worker.stop()
    finally:
        await email_client.close()


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(run_workers(args.workers, drain=args.drain))


if __name__ == "__main__":
    main()

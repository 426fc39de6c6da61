from __future__ import annotations

import asyncio
import os

import uvicorn

from reben.core.logging import configure_logging, get_logger
from reben.core.settings import get_settings
from reben.notifications.supabase_store import SupabaseDeliveryQueueStore, SupabaseSubscriptionDirectory
from reben.worker.dispatcher import Dispatcher
from reben.worker.retry import sanitize_error

logger = get_logger("worker.supervisor")


async def run_worker_loop() -> None:
    settings = get_settings()
    dispatcher = Dispatcher.from_settings(
        SupabaseDeliveryQueueStore(),
        SupabaseSubscriptionDirectory(),
        settings=settings,
    )
    logger.info(
        "worker.started",
        extra={
            "batch_limit": dispatcher.batch_limit,
            "concurrency": dispatcher.concurrency,
            "poll_interval_seconds": settings.WORKER_POLL_INTERVAL_SECONDS,
        },
    )

    while True:
        try:
            summary = await dispatcher.run_once()
        except Exception as exc:
            logger.error(
                "worker.cycle_error",
                extra={"error": sanitize_error(exc, default_message="dispatch cycle failed")},
            )
            summary = {"fetched": 0}

        if int(summary.get("fetched") or 0) == 0:
            await asyncio.sleep(max(1, settings.WORKER_POLL_INTERVAL_SECONDS))


def main() -> None:
    configure_logging()
    settings = get_settings()
    mode = settings.REBEN_MODE.strip().lower()

    if mode == "worker":
        asyncio.run(run_worker_loop())
        return

    host = os.getenv("API_HOST", settings.API_HOST)
    port = int(os.getenv("PORT", str(settings.API_PORT)))
    uvicorn.run("reben.main:app", host=host, port=port)


if __name__ == "__main__":
    main()

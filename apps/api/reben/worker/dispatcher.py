from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Literal

import httpx

from reben.core.errors import ConfigurationError, PayloadSerializationError
from reben.core.logging import get_logger
from reben.core.settings import Settings, get_settings
from reben.notifications.models import DeliveryAttemptLog, NotificationItem, utc_now
from reben.notifications.store import DeliveryQueueStore, SubscriptionDirectory
from reben.worker.adapters.base import DeliveryResult
from reben.worker.adapters.registry import AdapterRegistry, default_registry
from reben.worker.retry import backoff_delay, sanitize_error

logger = get_logger("worker.dispatcher")

Outcome = Literal["sent", "retried", "failed", "skipped", "errored"]


class Dispatcher:
    """Drives due queue items through their channel adapters, one bounded batch per call."""

    def __init__(
        self,
        store: DeliveryQueueStore,
        directory: SubscriptionDirectory,
        adapters: AdapterRegistry,
        *,
        batch_limit: int = 50,
        concurrency: int = 5,
        base_delay_seconds: int = 300,
        max_delay_seconds: int = 21600,
        sent_retention: timedelta = timedelta(days=30),
        stale_claim_after: timedelta = timedelta(minutes=15),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.directory = directory
        self.adapters = adapters
        self.batch_limit = max(1, batch_limit)
        self.concurrency = max(1, concurrency)
        self.base_delay_seconds = base_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self.sent_retention = sent_retention
        self.stale_claim_after = stale_claim_after
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        store: DeliveryQueueStore,
        directory: SubscriptionDirectory,
        *,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> "Dispatcher":
        settings = settings or get_settings()
        return cls(
            store,
            directory,
            default_registry(directory, client=client, settings=settings),
            batch_limit=settings.NOTIFY_BATCH_LIMIT,
            concurrency=settings.NOTIFY_CONCURRENCY,
            base_delay_seconds=settings.NOTIFY_BASE_DELAY_SECONDS,
            max_delay_seconds=settings.NOTIFY_MAX_DELAY_SECONDS,
            sent_retention=timedelta(days=settings.NOTIFY_SENT_RETENTION_DAYS),
            stale_claim_after=timedelta(seconds=settings.NOTIFY_STALE_CLAIM_SECONDS),
        )

    async def run_once(self) -> dict[str, int]:
        now = self._clock()
        items = await self.store.fetch_due(self.batch_limit, now)
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(item: NotificationItem) -> Outcome:
            async with semaphore:
                return await self._process_item(item)

        # Tasks are created in fetch order, so the semaphore starts them by priority.
        tasks = [asyncio.create_task(_bounded(item)) for item in items]
        outcomes = Counter(await asyncio.gather(*tasks))

        summary = {
            "fetched": len(items),
            "sent": outcomes["sent"],
            "retried": outcomes["retried"],
            "failed": outcomes["failed"],
            "skipped": outcomes["skipped"],
            "errors": outcomes["errored"],
            "purged": await self._purge_sent(),
            "released": await self._release_stale_claims(),
        }
        logger.info("dispatcher.cycle_finished", extra={"component": "worker", **summary})
        return summary

    async def _process_item(self, item: NotificationItem) -> Outcome:
        try:
            if not await self.store.mark_attempt_start(item.id):
                logger.info(
                    "dispatcher.claim_lost",
                    extra={"component": "worker", "item_id": item.id},
                )
                return "skipped"
            return await self._attempt(item)
        except Exception as exc:
            logger.error(
                "dispatcher.item_error",
                extra={
                    "component": "worker",
                    "item_id": item.id,
                    "channel": item.channel,
                    "error": sanitize_error(exc, default_message="dispatch error"),
                },
            )
            return "errored"

    async def _attempt(self, item: NotificationItem) -> Outcome:
        try:
            adapter = self.adapters.get(item.channel)
            result = await adapter.send(item)
        except (PayloadSerializationError, ConfigurationError) as exc:
            return await self._fail_permanently(item, exc)
        except Exception as exc:
            result = DeliveryResult.failed(sanitize_error(exc, default_message="delivery failed"))

        attempted_at = self._clock()
        await self._record_attempt(item, result, attempted_at)

        if result.success:
            await self.store.mark_sent(item.id, attempted_at)
            logger.info(
                "dispatcher.item_sent",
                extra={
                    "component": "worker",
                    "item_id": item.id,
                    "channel": item.channel,
                    "attempt": item.retry_count + 1,
                    "http_status": result.http_status,
                },
            )
            return "sent"

        error_text = sanitize_error(result.error or "", default_message="delivery failed")
        next_retry_count = item.retry_count + 1
        terminal = next_retry_count >= item.max_retries
        next_scheduled_at = (
            item.scheduled_at
            if terminal
            else attempted_at
            + backoff_delay(
                next_retry_count,
                base_seconds=self.base_delay_seconds,
                max_seconds=self.max_delay_seconds,
            )
        )
        await self.store.mark_failed(
            item.id,
            error=error_text,
            next_retry_count=next_retry_count,
            next_scheduled_at=next_scheduled_at,
            terminal=terminal,
        )
        logger.warning(
            "dispatcher.item_failed",
            extra={
                "component": "worker",
                "item_id": item.id,
                "channel": item.channel,
                "attempt": next_retry_count,
                "max_retries": item.max_retries,
                "terminal": terminal,
                "http_status": result.http_status,
                "next_scheduled_at": None if terminal else next_scheduled_at,
                "error": error_text,
            },
        )
        return "failed" if terminal else "retried"

    async def _fail_permanently(self, item: NotificationItem, exc: Exception) -> Outcome:
        error_text = sanitize_error(exc, default_message="item can never be delivered")
        await self.store.mark_failed(
            item.id,
            error=error_text,
            next_retry_count=item.retry_count,
            next_scheduled_at=item.scheduled_at,
            terminal=True,
        )
        logger.error(
            "dispatcher.item_undeliverable",
            extra={
                "component": "worker",
                "item_id": item.id,
                "channel": item.channel,
                "error_type": type(exc).__name__,
                "error": error_text,
            },
        )
        return "failed"

    async def _record_attempt(
        self,
        item: NotificationItem,
        result: DeliveryResult,
        attempted_at: datetime,
    ) -> None:
        if item.subscription_id:
            try:
                await self.directory.increment_webhook_counter(
                    item.subscription_id,
                    "success_count" if result.success else "error_count",
                    attempted_at,
                )
            except Exception as exc:  # pragma: no cover - best effort
                logger.warning(
                    "dispatcher.counter_update_failed",
                    extra={
                        "component": "worker",
                        "subscription_id": item.subscription_id,
                        "error": sanitize_error(exc, default_message="counter update failed"),
                    },
                )
        if item.integration_id:
            try:
                await self.directory.record_integration_log(
                    DeliveryAttemptLog(
                        integration_id=item.integration_id,
                        tenant_id=item.tenant_id,
                        action=item.event_type or item.channel,
                        status="success" if result.success else "error",
                        error_message=(
                            None
                            if result.success
                            else sanitize_error(result.error or "", default_message="delivery failed")
                        ),
                        created_at=attempted_at,
                    )
                )
            except Exception as exc:  # pragma: no cover - best effort
                logger.warning(
                    "dispatcher.integration_log_failed",
                    extra={
                        "component": "worker",
                        "integration_id": item.integration_id,
                        "error": sanitize_error(exc, default_message="integration log failed"),
                    },
                )

    async def _purge_sent(self) -> int:
        try:
            return await self.store.purge_sent(self._clock() - self.sent_retention)
        except Exception as exc:
            logger.warning(
                "dispatcher.purge_failed",
                extra={
                    "component": "worker",
                    "error": sanitize_error(exc, default_message="purge failed"),
                },
            )
            return 0

    async def _release_stale_claims(self) -> int:
        try:
            return await self.store.release_stale_claims(self._clock() - self.stale_claim_after)
        except Exception as exc:
            logger.warning(
                "dispatcher.release_stale_failed",
                extra={
                    "component": "worker",
                    "error": sanitize_error(exc, default_message="stale claim release failed"),
                },
            )
            return 0

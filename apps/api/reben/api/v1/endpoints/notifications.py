from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from reben.api.deps import get_queue_store
from reben.api.v1.schemas.notifications import (
    EnqueuedOut,
    NotificationItemOut,
    NotificationStatsOut,
    NotificationStatus,
    RequeueOut,
    SampleEmailIn,
    TemplatedEmailIn,
)
from reben.auth.tenants import TenantContext, require_hr_admin, require_manager
from reben.notifications.models import utc_now
from reben.notifications.store import DeliveryQueueStore
from reben.services.email_notifications import (
    AlertNotification,
    enqueue_templated_email,
    queue_stats,
    send_alert_notification,
    send_test_email,
)

router = APIRouter()
manager_dependency = Depends(require_manager)
hr_admin_dependency = Depends(require_hr_admin)
queue_store_dependency = Depends(get_queue_store)


@router.get("/notifications")
async def list_notifications(
    status_value: NotificationStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    context: TenantContext = hr_admin_dependency,
    store: DeliveryQueueStore = queue_store_dependency,
) -> dict[str, list[NotificationItemOut]]:
    items = await store.list_items(context.tenant_id, status=status_value, limit=limit)
    return {"notifications": [NotificationItemOut.model_validate(item.model_dump()) for item in items]}


@router.get("/notifications/stats")
async def notification_stats(
    days: int = Query(default=30, ge=1, le=365),
    context: TenantContext = hr_admin_dependency,
    store: DeliveryQueueStore = queue_store_dependency,
) -> NotificationStatsOut:
    stats = await queue_stats(store, tenant_id=context.tenant_id, days=days)
    return NotificationStatsOut.model_validate(stats)


@router.post("/notifications/retry-failed")
async def retry_failed_notifications(
    context: TenantContext = hr_admin_dependency,
    store: DeliveryQueueStore = queue_store_dependency,
) -> RequeueOut:
    requeued = await store.requeue_failed(context.tenant_id, utc_now())
    return RequeueOut(requeued=requeued)


@router.post("/notifications/email", status_code=status.HTTP_202_ACCEPTED)
async def enqueue_email(
    payload: TemplatedEmailIn,
    context: TenantContext = manager_dependency,
    store: DeliveryQueueStore = queue_store_dependency,
) -> EnqueuedOut:
    item = await enqueue_templated_email(
        store,
        tenant_id=context.tenant_id,
        to=payload.to,
        template_type=payload.template_type,
        data=payload.data,
        priority=payload.priority,
        scheduled_at=payload.scheduled_at,
    )
    return EnqueuedOut(item_ids=[item.id])


@router.post("/notifications/alert", status_code=status.HTTP_202_ACCEPTED)
async def enqueue_alert_notification(
    payload: AlertNotification,
    context: TenantContext = manager_dependency,
    store: DeliveryQueueStore = queue_store_dependency,
) -> EnqueuedOut:
    item_ids = await send_alert_notification(store, tenant_id=context.tenant_id, alert=payload)
    return EnqueuedOut(item_ids=item_ids)


@router.post("/notifications/test-email", status_code=status.HTTP_202_ACCEPTED)
async def enqueue_sample_email(
    payload: SampleEmailIn,
    context: TenantContext = hr_admin_dependency,
    store: DeliveryQueueStore = queue_store_dependency,
) -> EnqueuedOut:
    item = await send_test_email(
        store,
        tenant_id=context.tenant_id,
        to=payload.to,
        template_type=payload.template_type,
    )
    return EnqueuedOut(item_ids=[item.id])

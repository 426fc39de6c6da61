from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from reben.api.deps import get_directory
from reben.api.v1.schemas.webhooks import DeliveryResultOut, WebhookCreateIn, WebhookOut, WebhookUpdateIn
from reben.auth.tenants import TenantContext, require_hr_admin
from reben.notifications.models import WebhookSubscription
from reben.notifications.store import SubscriptionDirectory
from reben.services.webhooks import (
    create_webhook_subscription,
    send_test_webhook,
    update_webhook_subscription,
)

router = APIRouter()
hr_admin_dependency = Depends(require_hr_admin)
directory_dependency = Depends(get_directory)


async def _owned_subscription(
    directory: SubscriptionDirectory,
    context: TenantContext,
    webhook_id: str,
) -> WebhookSubscription:
    subscription = await directory.get_webhook_subscription(webhook_id)
    if subscription is None or subscription.tenant_id != context.tenant_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Webhook not found.")
    return subscription


@router.get("/webhooks")
async def list_webhooks(
    context: TenantContext = hr_admin_dependency,
    directory: SubscriptionDirectory = directory_dependency,
) -> dict[str, list[WebhookOut]]:
    subscriptions = await directory.list_webhook_subscriptions(context.tenant_id)
    return {"webhooks": [WebhookOut.from_subscription(item) for item in subscriptions]}


@router.post("/webhooks", status_code=status.HTTP_201_CREATED)
async def create_webhook(
    payload: WebhookCreateIn,
    context: TenantContext = hr_admin_dependency,
    directory: SubscriptionDirectory = directory_dependency,
) -> WebhookOut:
    subscription = await create_webhook_subscription(
        directory,
        tenant_id=context.tenant_id,
        name=payload.name,
        url=payload.url,
        events=payload.events,
        description=payload.description,
    )
    return WebhookOut.from_subscription(subscription, reveal_secret=True)


@router.patch("/webhooks/{webhook_id}")
async def patch_webhook(
    webhook_id: str,
    payload: WebhookUpdateIn,
    context: TenantContext = hr_admin_dependency,
    directory: SubscriptionDirectory = directory_dependency,
) -> WebhookOut:
    subscription = await _owned_subscription(directory, context, webhook_id)
    updated = await update_webhook_subscription(
        directory,
        subscription,
        name=payload.name,
        url=payload.url,
        events=payload.events,
        active=payload.active,
        description=payload.description,
    )
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Webhook not found.")
    return WebhookOut.from_subscription(updated)


@router.delete("/webhooks/{webhook_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_webhook(
    webhook_id: str,
    context: TenantContext = hr_admin_dependency,
    directory: SubscriptionDirectory = directory_dependency,
) -> Response:
    subscription = await _owned_subscription(directory, context, webhook_id)
    await directory.delete_webhook_subscription(subscription.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/webhooks/{webhook_id}/test")
async def trigger_webhook_test(
    webhook_id: str,
    context: TenantContext = hr_admin_dependency,
    directory: SubscriptionDirectory = directory_dependency,
) -> DeliveryResultOut:
    subscription = await _owned_subscription(directory, context, webhook_id)
    result = await send_test_webhook(directory, subscription)
    return DeliveryResultOut.model_validate(result.model_dump())

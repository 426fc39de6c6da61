from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from reben.api.deps import get_directory
from reben.api.v1.schemas.integrations import IntegrationCreateIn, IntegrationOut, IntegrationUpdateIn
from reben.api.v1.schemas.webhooks import DeliveryResultOut
from reben.auth.tenants import TenantContext, require_hr_admin
from reben.integrations.models import IntegrationConfig
from reben.notifications.store import SubscriptionDirectory
from reben.services.integrations import create_integration, send_test_integration, update_integration

router = APIRouter()
hr_admin_dependency = Depends(require_hr_admin)
directory_dependency = Depends(get_directory)


async def _owned_integration(
    directory: SubscriptionDirectory,
    context: TenantContext,
    integration_id: str,
) -> IntegrationConfig:
    integration = await directory.get_integration(integration_id)
    if integration is None or integration.tenant_id != context.tenant_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Integration not found.")
    return integration


@router.get("/integrations")
async def list_integrations(
    context: TenantContext = hr_admin_dependency,
    directory: SubscriptionDirectory = directory_dependency,
) -> dict[str, list[IntegrationOut]]:
    integrations = await directory.list_integrations(context.tenant_id)
    return {"integrations": [IntegrationOut.from_config(item) for item in integrations]}


@router.post("/integrations", status_code=status.HTTP_201_CREATED)
async def create_integration_endpoint(
    payload: IntegrationCreateIn,
    context: TenantContext = hr_admin_dependency,
    directory: SubscriptionDirectory = directory_dependency,
) -> IntegrationOut:
    integration = await create_integration(
        directory,
        tenant_id=context.tenant_id,
        integration_type=payload.type,
        name=payload.name,
        config=payload.config,
        active=payload.active,
    )
    return IntegrationOut.from_config(integration)


@router.patch("/integrations/{integration_id}")
async def patch_integration(
    integration_id: str,
    payload: IntegrationUpdateIn,
    context: TenantContext = hr_admin_dependency,
    directory: SubscriptionDirectory = directory_dependency,
) -> IntegrationOut:
    integration = await _owned_integration(directory, context, integration_id)
    updated = await update_integration(
        directory,
        integration,
        name=payload.name,
        config=payload.config,
        active=payload.active,
    )
    return IntegrationOut.from_config(updated)


@router.post("/integrations/{integration_id}/test")
async def trigger_integration_test(
    integration_id: str,
    context: TenantContext = hr_admin_dependency,
    directory: SubscriptionDirectory = directory_dependency,
) -> DeliveryResultOut:
    integration = await _owned_integration(directory, context, integration_id)
    result = await send_test_integration(directory, integration)
    return DeliveryResultOut.model_validate(result.model_dump())

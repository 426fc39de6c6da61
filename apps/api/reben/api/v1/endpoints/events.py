from fastapi import APIRouter, Depends

from reben.api.deps import get_directory, get_queue_store
from reben.api.v1.schemas.events import DispatchSummaryOut, EventIn, EventRoutedOut
from reben.auth.tenants import TenantContext, current_tenant, require_hr_admin
from reben.notifications.event_router import EventRouter
from reben.notifications.models import Event
from reben.notifications.store import DeliveryQueueStore, SubscriptionDirectory
from reben.worker.dispatcher import Dispatcher

router = APIRouter()
tenant_dependency = Depends(current_tenant)
hr_admin_dependency = Depends(require_hr_admin)
queue_store_dependency = Depends(get_queue_store)
directory_dependency = Depends(get_directory)


@router.post("/events")
async def publish_event(
    payload: EventIn,
    context: TenantContext = tenant_dependency,
    store: DeliveryQueueStore = queue_store_dependency,
    directory: SubscriptionDirectory = directory_dependency,
) -> EventRoutedOut:
    event = Event(type=payload.type, data=payload.data, tenant_id=context.tenant_id)
    item_ids = await EventRouter(store, directory).route(event)
    return EventRoutedOut(item_ids=item_ids)


@router.post("/dispatch/run")
async def run_dispatch_cycle(
    context: TenantContext = hr_admin_dependency,
    store: DeliveryQueueStore = queue_store_dependency,
    directory: SubscriptionDirectory = directory_dependency,
) -> DispatchSummaryOut:
    summary = await Dispatcher.from_settings(store, directory).run_once()
    return DispatchSummaryOut.model_validate(summary)

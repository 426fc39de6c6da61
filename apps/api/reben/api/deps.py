from functools import lru_cache

from reben.notifications.store import DeliveryQueueStore, SubscriptionDirectory
from reben.notifications.supabase_store import SupabaseDeliveryQueueStore, SupabaseSubscriptionDirectory


@lru_cache
def get_queue_store() -> DeliveryQueueStore:
    return SupabaseDeliveryQueueStore()


@lru_cache
def get_directory() -> SubscriptionDirectory:
    return SupabaseSubscriptionDirectory()

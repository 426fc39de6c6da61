from __future__ import annotations

import httpx

from reben.core.errors import ConfigurationError
from reben.core.settings import Settings, get_settings
from reben.notifications.store import SubscriptionDirectory
from reben.worker.adapters.base import ChannelAdapter, HttpPoster
from reben.worker.adapters.chat import ChatAdapter
from reben.worker.adapters.email import EmailAdapter
from reben.worker.adapters.webhook import WebhookAdapter


class AdapterRegistry:
    def __init__(self, adapters: dict[str, ChannelAdapter]) -> None:
        self._adapters = dict(adapters)

    def get(self, channel: str) -> ChannelAdapter:
        adapter = self._adapters.get(channel)
        if adapter is None:
            raise ConfigurationError(f"No channel adapter registered for: {channel}")
        return adapter


def default_registry(
    directory: SubscriptionDirectory,
    *,
    client: httpx.AsyncClient | None = None,
    settings: Settings | None = None,
) -> AdapterRegistry:
    settings = settings or get_settings()
    poster = HttpPoster(client=client, timeout_seconds=settings.NOTIFY_HTTP_TIMEOUT_SECONDS)
    return AdapterRegistry(
        {
            "webhook": WebhookAdapter(directory, poster=poster, settings=settings),
            "email": EmailAdapter(directory),
            "chat": ChatAdapter(poster=poster, settings=settings),
        }
    )

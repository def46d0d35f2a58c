"""Console context - explicit wiring of every console component.

One ConsoleContext is built per process (or per test). It is the only place
components are constructed; each component receives its collaborators
explicitly, so isolated copies can coexist.

    async with ConsoleContext.from_settings(settings) as ctx:
        await ctx.bootstrap()
        await ctx.push.connect()
        ...

Teardown (aclose) cancels the refresh scheduler, disconnects the push
channel and closes the HTTP client, in that order.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..config import Settings
from ..gateway.client import GatewayClient
from ..gateway.push import Connector, PushChannel
from .credentials import CredentialStore
from .errors import ConsoleError
from .event_log import EventLog
from .scheduler import RefreshScheduler
from .sync import SyncStore

logger = logging.getLogger(__name__)


class ConsoleContext:
    """Owns the credential store, clients, stores and scheduler for one console."""

    def __init__(
        self,
        credentials: CredentialStore,
        client: GatewayClient,
        event_log: EventLog,
        store: SyncStore,
        scheduler: RefreshScheduler,
        push: PushChannel,
    ):
        self.credentials = credentials
        self.client = client
        self.event_log = event_log
        self.store = store
        self.scheduler = scheduler
        self.push = push

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        credentials: Optional[CredentialStore] = None,
        transport=None,
        connector: Optional[Connector] = None,
    ) -> "ConsoleContext":
        credentials = credentials or CredentialStore(
            settings.credentials_file, settings.token_namespace
        )
        event_log = EventLog(settings.event_log_capacity)
        client = GatewayClient(
            settings.base_url,
            credentials=credentials,
            timeout=settings.request_timeout,
            transport=transport,
        )
        store = SyncStore(
            client,
            event_log=event_log,
            page_size=settings.thread_page_size,
            sort_key=settings.thread_sort_key,
            access_mode=settings.access_mode,
        )
        scheduler = RefreshScheduler(store, event_log, delay=settings.refresh_delay_seconds)
        push = PushChannel(
            settings.ws_url,
            store,
            scheduler,
            credentials=credentials,
            event_log=event_log,
            connector=connector,
        )
        return cls(credentials, client, event_log, store, scheduler, push)

    async def __aenter__(self) -> "ConsoleContext":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def bootstrap(self) -> bool:
        """Load the overview and workspaces. Failures are logged, not raised.

        Returns True when the workspace fetch (the auth check) succeeded.
        """
        try:
            await self.store.refresh_drawings()
        except ConsoleError as e:
            self.event_log.append("drawings/init-error", str(e))

        try:
            await self.store.refresh_workspaces()
        except ConsoleError as e:
            logger.info(f"Workspace bootstrap failed: {e}")
            self.event_log.append("workspaces/error", str(e))
            return False
        return True

    async def aclose(self) -> None:
        await self.scheduler.aclose()
        await self.push.disconnect()
        await self.client.aclose()

"""
Push Channel - WebSocket connection carrying daemon notifications.

Lifecycle:
    disconnected -> connecting -> connected -> disconnected

`error` is reported as a transient status and does not itself close the
connection; the transport decides whether a close follows. Every failure
path ends with a `disconnected` report.

Inbound messages are handled strictly in arrival order by a single reader
task. Each message is decoded into an envelope model and routed:

- gateway ready/error/disconnected/pong -> Event Log
- app-server-event -> Event Log (`app:<method>`); when it names a thread in the
  active workspace, adopt the thread if none is selected and schedule a
  coalesced thread refresh
- terminal-output / terminal-exit -> Event Log under the method name
- anything else -> Event Log (`ws/event`); unparseable text -> `ws/raw`

The push transport cannot carry custom headers, so the credential travels as
a `token` query parameter.
"""

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional
from urllib.parse import urlencode

import websockets
from websockets import ClientConnection

from ..core.credentials import CredentialStore
from ..core.envelopes import (
    AppServerEvent,
    GatewayDisconnected,
    GatewayErrorEnvelope,
    TerminalEvent,
    UnknownEnvelope,
    decode_envelope,
)
from ..core.errors import PushChannelError
from ..core.event_log import EventLog
from ..core.scheduler import RefreshScheduler
from ..core.sync import SyncStore

logger = logging.getLogger(__name__)

Connector = Callable[[str], Awaitable[Any]]


class ChannelStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


StatusListener = Callable[[ChannelStatus], None]


class PushChannel:
    """
    Owns one WebSocket to the gateway's push endpoint.

    The channel is independent of the REST client: it shares only the
    credential store, the sync store (for the active selection) and the
    refresh scheduler.
    """

    def __init__(
        self,
        url: str,
        store: SyncStore,
        scheduler: RefreshScheduler,
        credentials: Optional[CredentialStore] = None,
        event_log: Optional[EventLog] = None,
        connector: Optional[Connector] = None,
    ):
        """
        Initialize the push channel.

        Args:
            url: Push endpoint, e.g. ws://127.0.0.1:8741/ws/events
            store: Sync store consulted for the active workspace/thread
            scheduler: Refresh scheduler for push-driven thread refreshes
            credentials: Store the token query parameter is read from
            event_log: Diagnostic sink (defaults to the store's log)
            connector: Coroutine opening a connection for a URL
                (default: websockets.connect)
        """
        self.url = url
        self.store = store
        self.scheduler = scheduler
        self.credentials = credentials
        self.event_log = event_log if event_log is not None else store.event_log
        self._connector = connector or websockets.connect

        self.status = ChannelStatus.DISCONNECTED
        self._connection: Optional[ClientConnection] = None
        self._reader: Optional[asyncio.Task] = None
        self._listeners: List[StatusListener] = []

    # -- status -----------------------------------------------------------

    @property
    def connected(self) -> bool:
        return self._connection is not None

    def on_status(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def _report(self, status: ChannelStatus) -> None:
        self.status = status
        logger.debug(f"Push channel status: {status.value}")
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:
                logger.exception("Status listener failed")

    # -- lifecycle ----------------------------------------------------------

    def build_url(self) -> str:
        token = self.credentials.get() if self.credentials else None
        if not token:
            return self.url
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}{urlencode({'token': token})}"

    async def connect(self) -> None:
        """Open the connection and start the reader. No-op if already connected."""
        if self._connection is not None or self.status == ChannelStatus.CONNECTING:
            self.event_log.append("ws/info", "WebSocket is already connected.")
            return

        target = self.build_url()
        self._report(ChannelStatus.CONNECTING)

        try:
            connection = await self._connector(target)
        except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as e:
            logger.warning(f"Push channel connect failed: {e}")
            self._report(ChannelStatus.ERROR)
            self.event_log.append("ws/error", str(e))
            self._report(ChannelStatus.DISCONNECTED)
            raise PushChannelError(f"Could not open push channel: {e}") from e

        self._connection = connection
        self._report(ChannelStatus.CONNECTED)
        self.event_log.append("ws/open", self.url)
        self._reader = asyncio.get_running_loop().create_task(self._read_loop(connection))

    async def disconnect(self) -> None:
        """Close the connection if held. Always reports `disconnected`."""
        connection, self._connection = self._connection, None
        reader, self._reader = self._reader, None

        if connection is not None:
            await connection.close()
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass
        self._report(ChannelStatus.DISCONNECTED)

    async def ping(self) -> None:
        """Send the text keep-alive; the gateway answers with a pong envelope."""
        if self._connection is None:
            raise PushChannelError("Push channel is not connected")
        await self._connection.send("ping")

    async def wait_closed(self) -> None:
        """Wait until the reader task ends (remote close or disconnect()).

        Cancelling the waiter leaves the reader running; only a reader
        cancelled by disconnect() is treated as a normal end.
        """
        reader = self._reader
        if reader is None:
            return
        try:
            await asyncio.shield(reader)
        except asyncio.CancelledError:
            if not reader.cancelled():
                raise

    async def _read_loop(self, connection: ClientConnection) -> None:
        try:
            async for message in connection:
                self.handle_message(message)
        except websockets.ConnectionClosed:
            pass
        except (OSError, websockets.WebSocketException) as e:
            logger.warning(f"Push channel read failed: {e}")
            self._report(ChannelStatus.ERROR)
            self.event_log.append("ws/error", str(e))
        except Exception as e:
            logger.exception("Push channel reader crashed")
            self._report(ChannelStatus.ERROR)
            self.event_log.append("ws/error", str(e))
            await connection.close()
        finally:
            # disconnect() clears the handle first, so only a reader that
            # ended on its own reports the close.
            if self._connection is connection:
                self._connection = None
                self._reader = None
                self.event_log.append("ws/close", "Connection closed")
                self._report(ChannelStatus.DISCONNECTED)

    # -- inbound dispatch -----------------------------------------------------

    def handle_message(self, raw: Any) -> None:
        """Decode and route one inbound message."""
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8", errors="replace")
        text = str(raw or "{}")

        try:
            payload = json.loads(text)
        except (ValueError, RecursionError):
            self.event_log.append("ws/raw", str(raw or ""))
            return

        envelope = decode_envelope(payload)

        if isinstance(envelope, AppServerEvent):
            self._handle_app_event(envelope)
        elif isinstance(envelope, (GatewayErrorEnvelope, GatewayDisconnected)):
            self.event_log.append(envelope.category, envelope.message or payload)
        elif isinstance(envelope, TerminalEvent):
            self.event_log.append(envelope.category, envelope.params)
        elif isinstance(envelope, UnknownEnvelope):
            self.event_log.append(envelope.category, envelope.payload)
        else:
            self.event_log.append(envelope.category, payload)

    def _handle_app_event(self, event: AppServerEvent) -> None:
        workspace_id = event.workspace_id
        self.event_log.append(
            event.category,
            {"workspaceId": workspace_id, "message": event.params.message.params},
        )

        thread_id = event.thread_id
        if thread_id and workspace_id == self.store.active_workspace_id:
            self.store.adopt_thread(workspace_id, thread_id)
            self.scheduler.schedule(workspace_id)

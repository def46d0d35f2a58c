"""Synchronization Store - in-memory projection of remote gateway state.

The store owns the active selection pair (workspace id, thread id) and the
workspace/thread collections. Collections are replaced wholesale on every
successful fetch; the selection is then reconciled against the new data:

- workspace: keep the previous id if still present, else the first, else ""
- thread: keep the previous id if still present, else the first, else ""

Overlapping refreshes: each refresh records the context it was issued for
(workspace id and a request generation). A result that arrives after the
active workspace changed, or after a newer refresh of the same kind was
issued, is discarded instead of overwriting newer state.

All operations propagate GatewayError to the caller. Precondition failures
raise PreconditionError before any network call.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, List, Optional

from .errors import PreconditionError
from .event_log import EventLog
from .models import (
    Thread,
    Workspace,
    WorkspaceSnapshot,
    parse_drawings,
    parse_thread_page,
    parse_workspaces,
)

if TYPE_CHECKING:
    from ..gateway.client import GatewayClient

logger = logging.getLogger(__name__)


class SyncStore:
    """Authoritative local view of workspaces, threads and the active selection."""

    def __init__(
        self,
        client: "GatewayClient",
        event_log: Optional[EventLog] = None,
        page_size: int = 40,
        sort_key: str = "updated_at",
        access_mode: str = "current",
    ):
        self.client = client
        self.event_log = event_log if event_log is not None else EventLog()
        self.page_size = page_size
        self.sort_key = sort_key
        self.access_mode = access_mode

        self.workspaces: List[Workspace] = []
        self.active_workspace_id: str = ""
        self.threads: List[Thread] = []
        self.active_thread_id: str = ""
        self.next_cursor: Optional[str] = None
        self.drawings: List[WorkspaceSnapshot] = []
        self.last_rpc_result: Any = None

        # Operator inputs: explicit thread id field and message draft
        self.thread_id_input: str = ""
        self.message_draft: str = ""

        self._workspace_generation = 0
        self._thread_generation = 0

    # -- selection helpers -------------------------------------------------

    @property
    def active_workspace(self) -> Optional[Workspace]:
        for workspace in self.workspaces:
            if workspace.id == self.active_workspace_id:
                return workspace
        return None

    @property
    def active_thread(self) -> Optional[Thread]:
        for thread in self.threads:
            if thread.id == self.active_thread_id:
                return thread
        return None

    def _set_active_workspace(self, workspace_id: str) -> None:
        """Switching workspace drops the thread selection and thread list."""
        if workspace_id == self.active_workspace_id:
            return
        logger.debug(f"Active workspace {self.active_workspace_id!r} -> {workspace_id!r}")
        self.active_workspace_id = workspace_id
        self.threads = []
        self.next_cursor = None
        self._set_active_thread("")

    def _set_active_thread(self, thread_id: str) -> None:
        self.active_thread_id = thread_id
        self.thread_id_input = thread_id

    def _require_workspace(self) -> str:
        if not self.active_workspace_id:
            raise PreconditionError("Select a workspace first")
        return self.active_workspace_id

    def _resolve_thread_id(self, thread_id: Optional[str]) -> str:
        """Explicit argument, then the thread id field, then the active thread."""
        resolved = (thread_id or self.thread_id_input or self.active_thread_id or "").strip()
        if not resolved:
            raise PreconditionError("Select a thread first")
        return resolved

    # -- refresh operations ------------------------------------------------

    async def refresh_workspaces(self) -> List[Workspace]:
        """Fetch workspaces, reconcile the selection, then cascade to threads."""
        self._workspace_generation += 1
        generation = self._workspace_generation

        payload = await self.client.list_workspaces()

        if generation != self._workspace_generation:
            logger.debug("Discarding superseded workspace refresh")
            return self.workspaces

        self.workspaces = parse_workspaces(payload)

        ids = [workspace.id for workspace in self.workspaces]
        if not ids:
            self._set_active_workspace("")
        elif self.active_workspace_id not in ids:
            self._set_active_workspace(ids[0])

        if self.active_workspace_id:
            await self.refresh_threads()
        else:
            self.threads = []
        return self.workspaces

    async def refresh_threads(self) -> List[Thread]:
        """Fetch threads for the active workspace and reconcile the thread selection."""
        workspace_id = self.active_workspace_id
        if not workspace_id:
            self.threads = []
            return self.threads

        self._thread_generation += 1
        generation = self._thread_generation

        payload = await self.client.list_threads(
            workspace_id,
            limit=self.page_size,
            sort_key=self.sort_key,
        )

        if workspace_id != self.active_workspace_id or generation != self._thread_generation:
            logger.debug(f"Discarding stale thread refresh for workspace {workspace_id}")
            return self.threads

        page = parse_thread_page(payload)
        self.threads = page.threads
        self.next_cursor = page.next_cursor

        ids = [thread.id for thread in self.threads]
        if self.active_thread_id and self.active_thread_id not in ids:
            self.active_thread_id = ""
        if not self.active_thread_id and ids:
            self.active_thread_id = ids[0]
        self.thread_id_input = self.active_thread_id
        return self.threads

    async def refresh_drawings(self) -> List[WorkspaceSnapshot]:
        """Fetch the read-only workspace/thread overview."""
        payload = await self.client.drawings()
        self.drawings = parse_drawings(payload)
        return self.drawings

    # -- selection operations ----------------------------------------------

    async def select_workspace(self, workspace_id: str) -> List[Thread]:
        self._set_active_workspace(workspace_id or "")
        return await self.refresh_threads()

    def select_thread(self, thread_id: str) -> None:
        self._set_active_thread(thread_id or "")

    def adopt_thread(self, workspace_id: str, thread_id: str) -> bool:
        """Adopt a push-referenced thread, only when nothing is selected.

        Returns True if the thread became active.
        """
        if not thread_id or workspace_id != self.active_workspace_id:
            return False
        if self.active_thread_id:
            return False
        self._set_active_thread(thread_id)
        logger.info(f"Adopted thread {thread_id} from push event")
        return True

    # -- thread actions ----------------------------------------------------

    async def start_thread(self) -> Optional[str]:
        """Create a thread in the active workspace and select it."""
        workspace_id = self._require_workspace()

        payload = await self.client.start_thread(workspace_id)
        thread_id = ""
        if isinstance(payload, dict) and payload.get("threadId"):
            thread_id = str(payload["threadId"])

        await self.refresh_threads()
        if thread_id and workspace_id == self.active_workspace_id:
            self.select_thread(thread_id)
        self.event_log.append("thread/start", payload)
        return thread_id or None

    async def resume_thread(self, thread_id: Optional[str] = None) -> Any:
        workspace_id = self._require_workspace()
        resolved = self._resolve_thread_id(thread_id)

        payload = await self.client.resume_thread(workspace_id, resolved)
        self.event_log.append("thread/resume", payload)
        return payload

    async def send_message(
        self,
        text: Optional[str] = None,
        thread_id: Optional[str] = None,
        access_mode: Optional[str] = None,
    ) -> Any:
        """Send a message; ``text`` defaults to the current draft, which is cleared on success."""
        workspace_id = self._require_workspace()
        resolved = self._resolve_thread_id(thread_id)

        message = (self.message_draft if text is None else text or "").strip()
        if not message:
            raise PreconditionError("Enter a message first")

        payload = await self.client.send_message(
            workspace_id,
            resolved,
            message,
            access_mode=access_mode or self.access_mode,
        )
        self.message_draft = ""
        self.event_log.append("thread/message", payload)
        return payload

    async def run_rpc(self, method: str, params_text: Optional[str] = None) -> Any:
        """Generic passthrough; ``params_text`` must be a JSON document (default ``{}``)."""
        method = (method or "").strip()
        if not method:
            raise PreconditionError("RPC method is required")

        text = (params_text or "").strip() or "{}"
        try:
            params = json.loads(text)
        except json.JSONDecodeError as e:
            raise PreconditionError("Params must be valid JSON") from e

        self.last_rpc_result = await self.client.rpc(method, params)
        return self.last_rpc_result

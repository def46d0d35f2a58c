"""Pydantic models for gateway payloads.

Upstream payloads are loosely shaped: ids may arrive as numbers, timestamps
under several historical field names, and unknown fields are common. Models
here keep the fields the console reads and allow everything else through.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


class Workspace(BaseModel):
    """A remote workspace known to the daemon."""

    model_config = ConfigDict(extra="allow")

    id: str = ""
    name: Optional[str] = None
    path: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return _as_text(value)

    @field_validator("name", "path", mode="before")
    @classmethod
    def _coerce_label(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        return _as_text(value)

    @property
    def label(self) -> str:
        return self.name or self.path or self.id or "workspace"


class Thread(BaseModel):
    """A conversation thread scoped to one workspace."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = ""
    preview: str = ""
    updated_at: Optional[float] = Field(
        None, validation_alias=AliasChoices("updatedAt", "updated_at")
    )
    created_at: Optional[float] = Field(
        None, validation_alias=AliasChoices("createdAt", "created_at")
    )

    @field_validator("id", "preview", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _as_text(value)

    @field_validator("updated_at", "created_at", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> Optional[float]:
        if value in (None, ""):
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    @property
    def timestamp(self) -> Optional[float]:
        """Most recent known timestamp (update first, then creation)."""
        return self.updated_at or self.created_at


class ThreadPage(BaseModel):
    """Threads returned by one list call, plus the paging cursor if any."""
    threads: List[Thread] = Field(default_factory=list)
    next_cursor: Optional[str] = None


class WorkspaceSnapshot(BaseModel):
    """One row of the drawings overview."""
    workspace: Workspace
    thread_count: int = 0
    next_cursor: Optional[str] = None
    error: Optional[str] = None


class EventLogEntry(BaseModel):
    """A single diagnostic event (inbound or outbound)."""
    timestamp: datetime
    kind: str
    payload: Any = None


def _parse_items(items: Any, model: type) -> List[Any]:
    """Validate dict items into ``model``; items that still fail are skipped."""
    if not isinstance(items, list):
        return []

    parsed = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            parsed.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping malformed {model.__name__}: {e}")
    return parsed


def parse_workspaces(payload: Any) -> List[Workspace]:
    """Extract the workspace list from ``{workspaces: [...]}``."""
    if not isinstance(payload, dict):
        return []
    return _parse_items(payload.get("workspaces"), Workspace)


def extract_thread_list(payload: Any) -> List[Dict[str, Any]]:
    """Find the raw thread list in any accepted response shape.

    Accepted, in order: ``{threads: [...]}``, ``{result: {data: [...]}}``,
    ``{data: [...]}``.
    """
    if not isinstance(payload, dict):
        return []
    threads = payload.get("threads")
    if isinstance(threads, list):
        return threads
    result = payload.get("result")
    if isinstance(result, dict) and isinstance(result.get("data"), list):
        return result["data"]
    if isinstance(payload.get("data"), list):
        return payload["data"]
    return []


def _extract_cursor(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    for container in (payload, payload.get("result")):
        if isinstance(container, dict):
            cursor = container.get("nextCursor") or container.get("next_cursor")
            if isinstance(cursor, str) and cursor:
                return cursor
    return None


def parse_thread_page(payload: Any) -> ThreadPage:
    return ThreadPage(
        threads=_parse_items(extract_thread_list(payload), Thread),
        next_cursor=_extract_cursor(payload),
    )


def parse_drawings(payload: Any) -> List[WorkspaceSnapshot]:
    """Parse ``{workspaces: [{workspace, threads, nextCursor, error}]}``."""
    if not isinstance(payload, dict) or not isinstance(payload.get("workspaces"), list):
        return []

    snapshots = []
    for entry in payload["workspaces"]:
        if not isinstance(entry, dict):
            continue
        workspace = entry.get("workspace")
        threads = entry.get("threads")
        error = entry.get("error")
        snapshots.append(WorkspaceSnapshot(
            workspace=Workspace.model_validate(workspace if isinstance(workspace, dict) else {}),
            thread_count=len(threads) if isinstance(threads, list) else 0,
            next_cursor=_extract_cursor(entry),
            error=str(error) if error else None,
        ))
    return snapshots

"""Exception hierarchy shared by the gateway client, push channel and store."""

from __future__ import annotations

from typing import Any, Optional


class ConsoleError(Exception):
    """Base class for errors surfaced to console operators."""


class GatewayError(ConsoleError):
    """A REST call failed: transport failure or non-success HTTP status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


class PreconditionError(ConsoleError):
    """An operation was invoked without the selection or input it needs."""


class PushChannelError(ConsoleError):
    """The push connection could not be opened."""

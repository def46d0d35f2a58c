"""
Gateway Client - REST client for the agent daemon gateway.

Every call goes through `GatewayClient.call`, which:
- injects `Authorization: Bearer <token>` when a credential is held
- sets a JSON content type when a body is sent and the caller did not choose one
- tolerates malformed JSON on successful responses (wrapped as {"raw": text})
- raises GatewayError on transport failures and non-success statuses

The client keeps one persistent httpx.AsyncClient; close it with `aclose()`
or use the client as an async context manager.
"""

import json
import logging
from typing import Any, Dict, Optional

import httpx

from ..core.credentials import CredentialStore
from ..core.errors import GatewayError

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"


def decode_body(text: str) -> Any:
    """Decode a response body; non-JSON text is wrapped as ``{"raw": text}``."""
    if not text:
        return None
    # Nesting past the recursion limit raises RecursionError, not ValueError.
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        return {"raw": text}


class GatewayClient:
    """
    Client for the gateway REST surface.

    Transport errors and non-success responses are never retried here; they
    propagate to the caller as GatewayError.
    """

    # Normal timeout for operations
    OPERATION_TIMEOUT = 10.0

    def __init__(
        self,
        url: str = "http://127.0.0.1:8741",
        credentials: Optional[CredentialStore] = None,
        timeout: float = OPERATION_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize gateway client.

        Args:
            url: Gateway base URL (default: http://127.0.0.1:8741)
            credentials: Store the bearer token is read from on every call
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.url = url.rstrip("/")
        self.credentials = credentials
        self._http = httpx.AsyncClient(base_url=self.url, timeout=timeout, transport=transport)
        logger.debug(f"GatewayClient initialized with url={self.url}")

    async def __aenter__(self) -> "GatewayClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _headers(self, extra: Optional[Dict[str, str]] = None, has_body: bool = False) -> Dict[str, str]:
        """Merge caller headers with auth and content negotiation."""
        headers = dict(extra or {})
        token = self.credentials.get() if self.credentials else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if has_body and not any(name.lower() == "content-type" for name in headers):
            headers["Content-Type"] = JSON_CONTENT_TYPE
        return headers

    async def call(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Issue a request and return the decoded body (None if empty).

        Args:
            path: Path relative to the gateway URL (e.g. "/api/workspaces")
            method: HTTP method
            body: JSON-serializable body, or a pre-encoded string
            headers: Extra headers; caller values win except Authorization
            params: Query parameters

        Raises:
            GatewayError: transport failure, or non-success status. The message
                is the payload's `error` field when present, else
                "<status> <reason>".
        """
        content = None
        if body is not None:
            content = body if isinstance(body, (str, bytes)) else json.dumps(body)

        request_headers = self._headers(headers, has_body=content is not None)

        try:
            response = await self._http.request(
                method,
                path,
                content=content,
                headers=request_headers,
                params=params,
            )
        except httpx.TimeoutException as e:
            logger.debug(f"{method} {path} timed out: {e}")
            raise GatewayError(f"Request timed out: {method} {path}") from e
        except httpx.RequestError as e:
            logger.debug(f"{method} {path} failed: {e}")
            raise GatewayError(f"Gateway unreachable: {e}") from e

        payload = decode_body(response.text)

        if not response.is_success:
            if isinstance(payload, dict) and payload.get("error"):
                message = str(payload["error"])
            else:
                message = f"{response.status_code} {response.reason_phrase}"
            logger.info(f"{method} {path} -> {response.status_code}: {message}")
            raise GatewayError(message, status_code=response.status_code, payload=payload)

        return payload

    # -- REST surface ------------------------------------------------------

    async def health(self) -> Any:
        return await self.call("/health")

    async def list_workspaces(self) -> Any:
        return await self.call("/api/workspaces")

    async def list_threads(
        self,
        workspace_id: str,
        limit: int = 40,
        sort_key: str = "updated_at",
        cursor: Optional[str] = None,
    ) -> Any:
        params = {"workspaceId": workspace_id, "limit": str(limit), "sortKey": sort_key}
        if cursor:
            params["cursor"] = cursor
        return await self.call("/api/threads", params=params)

    async def start_thread(self, workspace_id: str) -> Any:
        return await self.call(
            "/api/threads/start",
            method="POST",
            body={"workspaceId": workspace_id},
        )

    async def resume_thread(self, workspace_id: str, thread_id: str) -> Any:
        return await self.call(
            "/api/threads/resume",
            method="POST",
            body={"workspaceId": workspace_id, "threadId": thread_id},
        )

    async def send_message(
        self,
        workspace_id: str,
        thread_id: str,
        text: str,
        access_mode: str = "current",
    ) -> Any:
        return await self.call(
            "/api/threads/message",
            method="POST",
            body={
                "workspaceId": workspace_id,
                "threadId": thread_id,
                "text": text,
                "accessMode": access_mode,
            },
        )

    async def drawings(self) -> Any:
        return await self.call("/api/drawings")

    async def rpc(self, method: str, params: Any = None) -> Any:
        return await self.call(
            "/api/rpc",
            method="POST",
            body={"method": method, "params": {} if params is None else params},
        )

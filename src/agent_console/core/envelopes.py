"""Push channel envelope decoding.

Every inbound push message is decoded into exactly one of the envelope
models below. Decoding tries each known shape in a fixed priority order and
falls through to ``UnknownEnvelope`` only when none match, so routing code
can dispatch on type instead of sniffing dictionary keys.
"""

from __future__ import annotations

from typing import Any, ClassVar, Dict, Literal, Union

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


class GatewayReady(BaseModel):
    type: Literal["gateway/ready", "ready"]

    category: ClassVar[str] = "gateway/ready"


class GatewayErrorEnvelope(BaseModel):
    type: Literal["gateway/error", "error"]
    message: Any = None

    category: ClassVar[str] = "gateway/error"


class GatewayDisconnected(BaseModel):
    type: Literal["gateway/disconnected", "disconnected"]
    message: Any = None

    category: ClassVar[str] = "gateway/disconnected"


class GatewayPong(BaseModel):
    type: Literal["gateway/pong", "pong"]

    category: ClassVar[str] = "gateway/pong"


class UpstreamMessage(BaseModel):
    """The daemon notification wrapped inside an app-server event."""
    method: str = ""
    params: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("method", mode="before")
    @classmethod
    def _coerce_method(cls, value: Any) -> str:
        return _text(value)

    @field_validator("params", mode="before")
    @classmethod
    def _coerce_params(cls, value: Any) -> Dict[str, Any]:
        return value if isinstance(value, dict) else {}

    @property
    def thread_id(self) -> str:
        return _text(self.params.get("threadId") or self.params.get("thread_id"))


class AppServerEventParams(BaseModel):
    workspace_id: str = ""
    message: UpstreamMessage = Field(default_factory=UpstreamMessage)

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Dict[str, Any]:
        if not isinstance(data, dict):
            return {}
        message = data.get("message")
        return {
            # snake_case wins, but an empty value falls through to camelCase
            "workspace_id": _text(data.get("workspace_id") or data.get("workspaceId")),
            "message": message if isinstance(message, dict) else {},
        }


class AppServerEvent(BaseModel):
    method: Literal["app-server-event"]
    params: AppServerEventParams = Field(default_factory=AppServerEventParams)

    @field_validator("params", mode="before")
    @classmethod
    def _default_params(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}

    @property
    def workspace_id(self) -> str:
        return self.params.workspace_id

    @property
    def upstream_method(self) -> str:
        return self.params.message.method

    @property
    def thread_id(self) -> str:
        return self.params.message.thread_id

    @property
    def category(self) -> str:
        return f"app:{self.upstream_method or 'unknown'}"


class TerminalEvent(BaseModel):
    method: Literal["terminal-output", "terminal-exit"]
    params: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("params", mode="before")
    @classmethod
    def _default_params(cls, value: Any) -> Dict[str, Any]:
        return value if isinstance(value, dict) else {}

    @property
    def category(self) -> str:
        return self.method


class UnknownEnvelope(BaseModel):
    payload: Any = None

    category: ClassVar[str] = "ws/event"


Envelope = Union[
    GatewayReady,
    GatewayErrorEnvelope,
    GatewayDisconnected,
    GatewayPong,
    AppServerEvent,
    TerminalEvent,
    UnknownEnvelope,
]

# Priority order for decoding; UnknownEnvelope is the catch-all.
KNOWN_ENVELOPES = (
    GatewayReady,
    GatewayErrorEnvelope,
    GatewayDisconnected,
    GatewayPong,
    AppServerEvent,
    TerminalEvent,
)


def decode_envelope(payload: Any) -> Envelope:
    """Decode an already-parsed JSON value into its envelope model."""
    if isinstance(payload, dict):
        for model in KNOWN_ENVELOPES:
            try:
                return model.model_validate(payload)
            except ValidationError:
                continue
    return UnknownEnvelope(payload=payload)

"""
Gateway Package - transports to the agent daemon gateway.

The gateway exposes two independent surfaces:
- REST (request/response) for listing and mutating workspaces and threads
- a WebSocket push endpoint streaming daemon notifications

Components:
- client.py: REST client with credential injection and uniform error decoding
- push.py: Push channel lifecycle and envelope routing
"""

from .client import GatewayClient
from .push import ChannelStatus, PushChannel

__all__ = ["ChannelStatus", "GatewayClient", "PushChannel"]

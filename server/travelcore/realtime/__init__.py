"""Real-time WebSocket channel: room registry and connection gateway."""

from .gateway import RealtimeGateway
from .hub import Connection, ConnectionState, RealtimeHub

__all__ = ["Connection", "ConnectionState", "RealtimeGateway", "RealtimeHub"]

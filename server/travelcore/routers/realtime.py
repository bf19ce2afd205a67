"""WebSocket endpoint for the real-time channel."""

from typing import Optional

from fastapi import APIRouter, Query, WebSocket

router = APIRouter(tags=["realtime"])


def _token_from(websocket: WebSocket, token: Optional[str]) -> Optional[str]:
    if token:
        return token
    authorization = websocket.headers.get("authorization")
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials:
            return credentials.strip()
    return None


@router.websocket("/ws")
async def realtime_socket(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
) -> None:
    """
    Real-time channel.

    Authenticate with ``?token=<jwt>`` or an ``Authorization: Bearer`` header.
    Frames in both directions are ``{"event": ..., "data": ...}``.
    """
    gateway = websocket.app.state.realtime_gateway
    await gateway.serve(websocket, _token_from(websocket, token))

"""In-process room registry for WebSocket connections."""

import asyncio
import uuid
from collections import defaultdict
from enum import Enum
from typing import Any, Dict, Optional, Set

from ..core.observability import get_logger, metrics_collector

logger = get_logger(__name__)


class ConnectionState(str, Enum):
    UNAUTHENTICATED = "UNAUTHENTICATED"
    AUTHENTICATED = "AUTHENTICATED"
    SUBSCRIBED = "SUBSCRIBED"
    CLOSED = "CLOSED"


class Connection:
    """One client socket plus the rooms it belongs to."""

    def __init__(self, websocket):
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        self.state = ConnectionState.UNAUTHENTICATED
        self.principal = None
        self.rooms: Set[str] = set()

    @property
    def user_id(self) -> Optional[uuid.UUID]:
        return self.principal.user_id if self.principal else None

    async def send(self, event: str, data: Any = None) -> None:
        """Write one ``{"event", "data"}`` frame. Raises if the socket is broken."""
        await self.websocket.send_json({"event": event, "data": data})

    def __repr__(self) -> str:
        return f"<Connection(id={self.id}, user_id={self.user_id}, state={self.state.value})>"


def user_room(user_id) -> str:
    return f"user:{user_id}"


def tour_room(tour_id) -> str:
    return f"tour:{tour_id}"


class RealtimeHub:
    """
    Maps room keys to live connections and broadcasts frames to them.

    All emit methods are fire-and-forget: a failed write drops that
    connection from every room, closes its socket and is logged, and the
    call itself never raises. Emits return how many connections accepted
    the frame. A closed connection cannot join rooms again. Membership
    lives in memory only and dies with the process.
    """

    def __init__(self):
        self._rooms: Dict[str, Set[Connection]] = defaultdict(set)
        self._connections: Set[Connection] = set()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def register(self, connection: Connection) -> None:
        if connection not in self._connections:
            self._connections.add(connection)
            metrics_collector.connection_opened()

    def join(self, connection: Connection, room: str) -> None:
        # A closed connection never rejoins
        if connection.state == ConnectionState.CLOSED:
            return
        self._rooms[room].add(connection)
        connection.rooms.add(room)

    def leave(self, connection: Connection, room: str) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.discard(connection)
            if not members:
                del self._rooms[room]
        connection.rooms.discard(room)

    def discard(self, connection: Connection) -> None:
        """Forget a connection entirely. Safe to call more than once."""
        for room in list(connection.rooms):
            self.leave(connection, room)
        if connection in self._connections:
            self._connections.discard(connection)
            metrics_collector.connection_closed()
        connection.state = ConnectionState.CLOSED

    def members(self, room: str) -> Set[Connection]:
        return set(self._rooms.get(room, ()))

    def is_member(self, connection: Connection, room: str) -> bool:
        return connection in self._rooms.get(room, ())

    async def emit_to_user(self, user_id, event: str, data: Any = None) -> int:
        return await self._emit(self.members(user_room(user_id)), event, data, room=user_room(user_id))

    async def emit_to_tour(self, tour_id, event: str, data: Any = None) -> int:
        return await self._emit(self.members(tour_room(tour_id)), event, data, room=tour_room(tour_id))

    async def emit_to_all(self, event: str, data: Any = None) -> int:
        return await self._emit(set(self._connections), event, data, room="*")

    async def _emit(self, targets: Set[Connection], event: str, data: Any, room: str) -> int:
        if not targets:
            return 0

        targets = list(targets)
        results = await asyncio.gather(
            *(connection.send(event, data) for connection in targets),
            return_exceptions=True,
        )

        delivered = 0
        for connection, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning(
                    "Dropping connection after failed write",
                    connection_id=connection.id,
                    user_id=str(connection.user_id),
                    room=room,
                    event_name=event,
                    error=str(result),
                )
                await self._drop(connection)
            else:
                delivered += 1
        return delivered

    async def _drop(self, connection: Connection) -> None:
        """Discard a broken connection and close its socket so the gateway loop ends."""
        self.discard(connection)
        try:
            await connection.websocket.close(code=1011, reason="Write failed")
        except Exception as e:
            logger.debug("Close after failed write also failed", connection_id=connection.id, error=str(e))

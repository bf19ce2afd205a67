"""WebSocket connection lifecycle: authenticate, auto-join rooms, handle client frames."""

import asyncio
import json
import uuid
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import settings
from ..core.dependencies import Principal, decode_access_token, load_principal
from ..core.exceptions import AuthenticationError
from ..core.observability import get_logger
from ..models.booking import BookingStatus
from ..services.traveller_resolver import ResolveScope, TravellerResolver
from .hub import Connection, ConnectionState, RealtimeHub, tour_room, user_room

logger = get_logger(__name__)

# Application-defined close codes (4000-4999)
CLOSE_UNAUTHORIZED = 4401
CLOSE_IDLE = 4408


class RealtimeGateway:
    """
    Drives one WebSocket through
    UNAUTHENTICATED -> AUTHENTICATED -> SUBSCRIBED -> CLOSED.

    A connection that fails authentication is closed with 4401 and never
    joins a room. Client frames are ``{"event": ..., "data": ...}``;
    anything malformed or unauthorized is ignored without a reply.
    """

    def __init__(
        self,
        hub: RealtimeHub,
        session_factory: async_sessionmaker[AsyncSession],
        idle_timeout_seconds: Optional[float] = None,
    ):
        self.hub = hub
        self.session_factory = session_factory
        self.idle_timeout_seconds = idle_timeout_seconds or settings.realtime_idle_timeout_seconds

    async def authenticate(self, token: Optional[str]) -> Optional[Principal]:
        """Verify a bearer token and load an active user; None on any failure."""
        if not token:
            return None
        try:
            user_id = decode_access_token(token)
            async with self.session_factory() as db:
                return await load_principal(db, user_id)
        except AuthenticationError as e:
            logger.info("WebSocket authentication failed", reason=e.detail)
            return None
        except Exception as e:
            logger.error("WebSocket authentication errored", error=str(e), exc_info=True)
            return None

    async def on_connect(self, connection: Connection) -> None:
        """Join the personal room and every tour room the user is entitled to."""
        principal = connection.principal
        self.hub.join(connection, user_room(principal.user_id))

        async with self.session_factory() as db:
            resolver = TravellerResolver(db)
            if principal.is_owner:
                tour_ids = await resolver.tours_with_active_departures()
            else:
                tour_ids = await resolver.tours_for_traveller(principal.user_id)

        for tour_id in tour_ids:
            self.hub.join(connection, tour_room(tour_id))

        connection.state = ConnectionState.SUBSCRIBED
        logger.info(
            "Socket connected",
            connection_id=connection.id,
            user_id=str(principal.user_id),
            tour_rooms=len(tour_ids),
        )

    async def can_join_tour(self, principal: Principal, tour_id: uuid.UUID) -> bool:
        if principal.is_owner:
            return True
        async with self.session_factory() as db:
            return await TravellerResolver(db).has_booking(
                principal.user_id,
                tour_id,
                statuses=(BookingStatus.CONFIRMED,),
                scope=ResolveScope.NOT_ENDED,
            )

    async def handle_message(self, connection: Connection, message: Any) -> None:
        if not isinstance(message, dict):
            return

        event = message.get("event")
        data = message.get("data")

        if event == "ping":
            await connection.send("pong")
        elif event == "join:tour":
            tour_id = _parse_tour_id(data)
            if tour_id is None:
                return
            if await self.can_join_tour(connection.principal, tour_id):
                self.hub.join(connection, tour_room(tour_id))
                await connection.send("joined:tour", {"tourId": str(tour_id)})
                logger.debug("Joined tour room", user_id=str(connection.user_id), tour_id=str(tour_id))
            else:
                logger.debug("Ignored tour join", user_id=str(connection.user_id), tour_id=str(tour_id))
        elif event == "leave:tour":
            tour_id = _parse_tour_id(data)
            if tour_id is not None:
                self.hub.leave(connection, tour_room(tour_id))
                logger.debug("Left tour room", user_id=str(connection.user_id), tour_id=str(tour_id))

    async def serve(self, websocket, token: Optional[str]) -> None:
        """Run one connection until the client leaves, idles out or breaks."""
        await websocket.accept()
        connection = Connection(websocket)

        principal = await self.authenticate(token)
        if principal is None:
            connection.state = ConnectionState.CLOSED
            await websocket.close(code=CLOSE_UNAUTHORIZED, reason="Unauthorized")
            return

        connection.principal = principal
        connection.state = ConnectionState.AUTHENTICATED
        self.hub.register(connection)

        try:
            await self.on_connect(connection)

            while True:
                try:
                    frame = await asyncio.wait_for(websocket.receive(), timeout=self.idle_timeout_seconds)
                except asyncio.TimeoutError:
                    logger.info("Closing idle socket", connection_id=connection.id)
                    await websocket.close(code=CLOSE_IDLE, reason="Idle timeout")
                    break

                if frame.get("type") == "websocket.disconnect":
                    break
                # Dropped by the hub after a failed write
                if connection.state == ConnectionState.CLOSED:
                    break

                text = frame.get("text")
                if text is None:
                    continue
                try:
                    message = json.loads(text)
                except ValueError:
                    continue
                await self.handle_message(connection, message)
        except Exception as e:
            # Includes the client vanishing mid-send
            logger.warning("Socket loop ended with error", connection_id=connection.id, error=str(e))
        finally:
            self.hub.discard(connection)
            logger.info(
                "Socket disconnected",
                connection_id=connection.id,
                user_id=str(principal.user_id),
            )


def _parse_tour_id(data: Any) -> Optional[uuid.UUID]:
    if isinstance(data, dict):
        data = data.get("tourId")
    if not isinstance(data, str):
        return None
    try:
        return uuid.UUID(data)
    except ValueError:
        return None

import asyncio
import logging
import uuid
from typing import Dict, Iterable, List, Optional, Set

from fastapi import WebSocket

from carebridge.schemas.chat import WsOutbound
from carebridge.schemas.user import Principal


logger = logging.getLogger(__name__)


def conversation_channel(conversation_id: str) -> str:
    return f"chat:{conversation_id}"


def user_channel(user_id: str) -> str:
    return f"user:{user_id}"


class Connection:
    """One live websocket tagged with the principal that opened it."""

    def __init__(self, websocket: WebSocket, principal: Principal) -> None:
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        self.principal = principal
        self.channels: Set[str] = set()

    async def send(self, type: str, data) -> None:
        await self.websocket.send_text(WsOutbound.build(type, data).model_dump_json())


class ConnectionManager:
    """Local channel registry: which connections of this process listen on which channel."""

    def __init__(self) -> None:
        self.active_connections: Dict[str, Connection] = {}
        self.channels: Dict[str, Set[str]] = {}

    async def connect(self, connection: Connection) -> None:
        await connection.websocket.accept()
        self.active_connections[connection.id] = connection
        self.join(connection, user_channel(connection.principal.id))

    def disconnect(self, connection: Connection) -> None:
        self.active_connections.pop(connection.id, None)
        for channel in list(connection.channels):
            self.leave(connection, channel)

    def join(self, connection: Connection, channel: str) -> None:
        self.channels.setdefault(channel, set()).add(connection.id)
        connection.channels.add(channel)

    def leave(self, connection: Connection, channel: str) -> None:
        members = self.channels.get(channel)
        if members is not None:
            members.discard(connection.id)
            if not members:
                del self.channels[channel]
        connection.channels.discard(channel)

    def subscribers(self, channel: str, exclude: Optional[str] = None) -> List[Connection]:
        ids: Iterable[str] = self.channels.get(channel, ())
        return [self.active_connections[cid] for cid in ids if cid != exclude and cid in self.active_connections]

    def has_subscribers(self, channel: str) -> bool:
        return bool(self.channels.get(channel))

    async def send_to_channel(self, channel: str, message: str, exclude: Optional[str] = None) -> int:
        targets = self.subscribers(channel, exclude=exclude)
        if not targets:
            return 0
        # one slow or dead socket must not hold back the others
        results = await asyncio.gather(
            *(conn.websocket.send_text(message) for conn in targets), return_exceptions=True
        )
        delivered = 0
        for conn, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning("Dropping connection %s on %s: %s", conn.id, channel, result)
                self.disconnect(conn)
            else:
                delivered += 1
        return delivered

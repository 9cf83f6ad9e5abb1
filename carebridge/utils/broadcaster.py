"""
Live fan-out of chat events to conversation and personal channels.

Handlers receive a ``Broadcaster`` explicitly; nothing reaches for a
process-wide socket handle. ``ChannelBroadcaster`` delivers straight to
the local ``ConnectionManager`` or, when a Redis bus is configured,
publishes to Redis and lets every process relay to its own sockets.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from carebridge.schemas.chat import WsOutbound
from carebridge.utils.websocket_manager import ConnectionManager, conversation_channel, user_channel


logger = logging.getLogger(__name__)

RELAY_PATTERNS = ["chat:*", "user:*"]


class Broadcaster(ABC):

    @abstractmethod
    async def broadcast_to_conversation(self, conversation_id: str, event: str, data: Any, exclude: Optional[str] = None) -> None:
        ...

    @abstractmethod
    async def broadcast_to_user(self, user_id: str, event: str, data: Any) -> None:
        ...

    @abstractmethod
    def conversation_has_subscriber(self, conversation_id: str) -> bool:
        ...


class ChannelBroadcaster(Broadcaster):

    def __init__(self, manager: ConnectionManager, bus=None) -> None:
        self._manager = manager
        self._bus = bus
        self._relay = None
        self._relay_task: Optional[asyncio.Task] = None

    @property
    def relayed(self) -> bool:
        return bool(self._bus is not None and getattr(self._bus, "enabled", False))

    async def broadcast_to_conversation(self, conversation_id, event, data, exclude=None):
        await self._publish(conversation_channel(str(conversation_id)), event, data, exclude)

    async def broadcast_to_user(self, user_id, event, data):
        await self._publish(user_channel(str(user_id)), event, data, None)

    def conversation_has_subscriber(self, conversation_id):
        # local view only; other processes may still have subscribers
        return self._manager.has_subscribers(conversation_channel(str(conversation_id)))

    async def _publish(self, channel: str, event: str, data: Any, exclude: Optional[str]) -> None:
        frame = WsOutbound.build(event, data).model_dump_json()
        if self.relayed:
            await self._bus.publish(channel, json.dumps({"frame": frame, "exclude": exclude}))
            return
        delivered = await self._manager.send_to_channel(channel, frame, exclude=exclude)
        logger.debug("Delivered %s to %d connection(s) on %s", event, delivered, channel)

    async def _on_relay(self, channel: str, raw: str) -> None:
        envelope = json.loads(raw)
        await self._manager.send_to_channel(channel, envelope["frame"], exclude=envelope.get("exclude"))

    async def start(self) -> None:
        if not self.relayed or self._relay_task is not None:
            return
        self._relay = await self._bus.subscribe(RELAY_PATTERNS, self._on_relay)
        self._relay_task = asyncio.create_task(self._relay.run())
        logger.info("Realtime relay subscribed to %s", ", ".join(RELAY_PATTERNS))

    async def stop(self) -> None:
        if self._relay_task is None:
            return
        await self._relay.cancel()
        self._relay_task.cancel()
        try:
            await self._relay_task
        except asyncio.CancelledError:
            pass
        self._relay_task = None
        self._relay = None

import asyncio
import logging
from typing import Awaitable, Callable, List

import redis.asyncio as redis


logger = logging.getLogger(__name__)

OnMessage = Callable[[str, str], Awaitable[None]]


class NoopBus:

    enabled = False

    async def publish(self, channel: str, message: str) -> None:
        return

    async def subscribe(self, patterns: List[str], on_message: OnMessage):
        class _Sub:
            async def run(self):
                await asyncio.Future()

            async def cancel(self):
                return

        return _Sub()

    async def close(self) -> None:
        return


class RedisBus:
    """Redis pub/sub relay so several server processes share the same channels."""

    def __init__(self, url: str) -> None:
        self._redis = redis.from_url(url)
        self.enabled = True

    async def publish(self, channel: str, message: str) -> None:
        await self._redis.publish(channel, message)

    async def subscribe(self, patterns: List[str], on_message: OnMessage):
        pubsub = self._redis.pubsub()
        await pubsub.psubscribe(*patterns)

        class _Sub:
            _running = True

            async def run(self_inner):
                while self_inner._running:
                    try:
                        msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                        if msg and msg.get("type") == "pmessage":
                            channel = msg.get("channel")
                            data = msg.get("data")
                            if isinstance(channel, bytes):
                                channel = channel.decode("utf-8")
                            if isinstance(data, bytes):
                                data = data.decode("utf-8")
                            await on_message(channel, data)
                    except asyncio.CancelledError:
                        raise
                    except Exception:
                        logger.exception("Realtime relay error, retrying")
                        await asyncio.sleep(0.5)

            async def cancel(self_inner):
                self_inner._running = False
                await pubsub.punsubscribe(*patterns)
                await pubsub.aclose()

        return _Sub()

    async def close(self) -> None:
        await self._redis.aclose()


def create_bus(url: str | None):
    if not url:
        return NoopBus()
    return RedisBus(url)

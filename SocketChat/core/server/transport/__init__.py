"""
Transport layer wrapper for WebSocket connections.

Outbound frames go through a bounded per-connection queue drained by a
writer task, so ``send`` hands a frame over without waiting on the
network. A peer that lets its queue fill up is closed.
"""

import asyncio
import logging
import uuid
from typing import Optional, Set

from websockets.asyncio.server import ServerConnection
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from SocketChat.config import config

logger = logging.getLogger(__name__)

SLOW_CONSUMER_CODE = 1008
SLOW_CONSUMER_REASON = "Client too slow"


class WebSocketConnection:
    """
    Wrapper around ServerConnection that implements TransportConnection.

    Each wrapper gets its own ``conn_id``; that id is the connection handle
    used by presence and room channels.
    """

    def __init__(self, websocket: ServerConnection, user_id: str, max_queue: Optional[int] = None):
        """
        Initialize WebSocket connection wrapper.

        Args:
            websocket: Underlying WebSocket connection
            user_id: Owning identity
            max_queue: Outbound frames allowed to wait (default: config.OUTBOUND_QUEUE_SIZE)
        """
        self._websocket = websocket
        self._user_id = user_id
        self._closed = False
        self._outbox: asyncio.Queue = asyncio.Queue(
            maxsize=max_queue if max_queue is not None else config.OUTBOUND_QUEUE_SIZE
        )
        self._writer: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()
        self.conn_id: str = uuid.uuid4().hex

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def raw_websocket(self) -> ServerConnection:
        return self._websocket

    @property
    def pending(self) -> int:
        """Frames queued but not yet written."""
        return self._outbox.qsize()

    async def send(self, message: str) -> bool:
        """
        Queue a text frame for the writer task.

        Returns:
            True if the frame was queued, False if the connection is gone
            or had to be dropped for falling behind
        """
        if not self.is_open():
            return False
        if self._writer is None:
            self._writer = asyncio.get_running_loop().create_task(self._drain())
        try:
            self._outbox.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("Outbound queue full for %s (%s); closing slow connection",
                           self._user_id, self.conn_id)
            self._shutdown()
            self._spawn(self._close_socket(SLOW_CONSUMER_CODE, SLOW_CONSUMER_REASON))
            return False
        return True

    async def _drain(self) -> None:
        while True:
            message = await self._outbox.get()
            try:
                await self._websocket.send(message)
            except ConnectionClosed:
                break
            except Exception as e:
                logger.debug("Failed to send to %s (%s): %s", self._user_id, self.conn_id, e)
                break
        self._closed = True

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self._closed and self._writer is None:
            return
        self._shutdown()
        await self._close_socket(code, reason)

    def _shutdown(self) -> None:
        self._closed = True
        if self._writer is not None:
            self._writer.cancel()
            self._writer = None

    async def _close_socket(self, code: int, reason: str) -> None:
        try:
            await self._websocket.close(code=code, reason=reason)
        except Exception as e:
            logger.debug("Error closing connection for %s: %s", self._user_id, e)

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def is_open(self) -> bool:
        if self._closed:
            return False
        return self._websocket.state is State.OPEN

    def __repr__(self) -> str:
        return f"WebSocketConnection(user_id={self._user_id!r}, conn_id={self.conn_id!r})"


__all__ = ['WebSocketConnection']

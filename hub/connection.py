import asyncio
import uuid

from fastapi import WebSocket
from logging_config import get_logger

logger = get_logger(__name__)

# Outbox sentinel that stops the writer task
_CLOSE = None


class OutboxFull(Exception):
    """The connection is not draining fast enough to take another frame."""


class OutboxClosed(Exception):
    """The connection has already been closed."""


class Connection:
    """One accepted WebSocket plus its outbound queue.

    ``send`` never suspends: it queues the frame and a single writer task
    (``pump``) delivers queued frames in order. This keeps delivery FIFO per
    connection even when relays and broadcasts interleave.
    """

    def __init__(self, websocket: WebSocket, outbox_size: int = 1000):
        self.websocket = websocket
        self.connection_id = str(uuid.uuid4())
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=outbox_size)
        self.closed = False

    def __repr__(self) -> str:
        return f"<Connection {self.connection_id[:8]}>"

    def send(self, payload: str):
        if self.closed:
            raise OutboxClosed(f"connection {self.connection_id} is closed")
        try:
            self.outbox.put_nowait(payload)
        except asyncio.QueueFull:
            raise OutboxFull(f"outbox full for connection {self.connection_id} ({self.outbox.maxsize} frames)")

    def close(self):
        """Stop accepting frames and let the writer finish what is queued. Idempotent."""
        if self.closed:
            return
        self.closed = True
        while True:
            try:
                self.outbox.put_nowait(_CLOSE)
                return
            except asyncio.QueueFull:
                # make room for the sentinel by dropping the oldest frame
                dropped = self.outbox.get_nowait()
                logger.debug(f"Dropped undelivered frame on close of {self.connection_id}: {len(dropped)} bytes")

    async def pump(self):
        """Writer task: deliver queued frames until the connection is closed."""
        sent = 0
        while True:
            payload = await self.outbox.get()
            if payload is _CLOSE:
                break
            try:
                await self.websocket.send_text(payload)
                sent += 1
            except Exception as e:
                # half-closed socket; later frames are still attempted in order
                logger.warning(f"Error sending to connection {self.connection_id}: {e}")
        logger.debug(f"Writer for connection {self.connection_id} stopped after {sent} frames")

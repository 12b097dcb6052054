import asyncio
from typing import Optional, Union

from fastapi import WebSocket, WebSocketDisconnect
from constants import BROADCAST_SCOPE, WS_OUTBOX_SIZE
from hub.broadcaster import Broadcaster
from hub.connection import Connection
from hub.registry import ConnectionRegistry
from hub.router import MessageRouter
from schemas.events import BroadcastEvent
from logging_config import get_logger

logger = get_logger(__name__)


class SocketHub:
    """Owns the registry, router and broadcaster for one application instance.

    Created on startup and torn down on shutdown by the app lifespan. All
    methods run on the event loop; none of the in-memory state is locked.
    """

    def __init__(self, broadcast_scope: str = BROADCAST_SCOPE, outbox_size: int = WS_OUTBOX_SIZE):
        self.registry = ConnectionRegistry()
        self.router = MessageRouter(self.registry)
        self.broadcaster = Broadcaster(self.registry, scope=broadcast_scope)
        self.outbox_size = outbox_size
        self.running = False

    def start(self):
        self.running = True
        logger.info(f"Socket hub started (broadcast scope: {self.broadcaster.scope})")

    async def shutdown(self):
        connections = self.registry.open_connections()
        self.registry.clear()
        for connection in connections:
            connection.close()
        self.running = False
        logger.info(f"Socket hub stopped, released {len(connections)} connections")

    def broadcast(self, event: Union[BroadcastEvent, dict]) -> int:
        return self.broadcaster.broadcast(event)

    def disconnect(self, connection: Connection) -> Optional[str]:
        """Cleanup for a closed connection. Safe to call more than once."""
        client_key = self.registry.remove_by_connection(connection)
        connection.close()
        return client_key

    async def serve(self, websocket: WebSocket):
        """Run one WebSocket connection from accept to disconnect."""
        connection = Connection(websocket, outbox_size=self.outbox_size)
        # attach before accept so a broadcast issued right after the handshake is not missed
        self.registry.attach(connection)
        writer: Optional[asyncio.Task] = None
        try:
            await websocket.accept()
            logger.info(f"New client connected: {connection}")
            writer = asyncio.create_task(connection.pump())

            frame_count = 0
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    logger.info(f"Client disconnected: {connection} (code={message.get('code')})")
                    break

                raw = message.get("text")
                if raw is None and message.get("bytes") is not None:
                    try:
                        raw = message["bytes"].decode("utf-8")
                    except UnicodeDecodeError as e:
                        logger.error(f"Error decoding binary frame from {connection}: {e}")
                        continue
                if raw is None:
                    continue

                frame_count += 1
                logger.debug(f"Received frame #{frame_count} from {connection}")
                self.router.route(connection, raw)
        except WebSocketDisconnect:
            logger.info(f"Client disconnected: {connection}")
        except Exception as e:
            logger.error(f"WebSocket error for {connection}: {e}", exc_info=True)
        finally:
            client_key = self.disconnect(connection)
            if client_key:
                logger.info(f"Client {client_key} left")
            if writer is not None:
                # the peer is gone, queued frames have nowhere to go
                writer.cancel()
                await asyncio.gather(writer, return_exceptions=True)

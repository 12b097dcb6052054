import json
from typing import List, Union

from hub.connection import Connection
from hub.registry import ConnectionRegistry
from schemas.events import BroadcastEvent
from logging_config import get_logger

logger = get_logger(__name__)

SCOPE_CONNECTIONS = "connections"
SCOPE_REGISTERED = "registered"
BROADCAST_SCOPES = (SCOPE_CONNECTIONS, SCOPE_REGISTERED)


class Broadcaster:
    """Fan an event out to every connection in scope.

    With scope ``connections`` every open socket receives data events,
    registered or not; with ``registered`` only sockets that sent a
    ``register`` frame do. A failing send is logged and skipped.
    """

    def __init__(self, registry: ConnectionRegistry, scope: str = SCOPE_CONNECTIONS):
        if scope not in BROADCAST_SCOPES:
            raise ValueError(f"Unknown broadcast scope {scope!r}, expected one of {BROADCAST_SCOPES}")
        self.registry = registry
        self.scope = scope

    def recipients(self) -> List[Connection]:
        if self.scope == SCOPE_REGISTERED:
            return self.registry.registered_connections()
        return self.registry.open_connections()

    def broadcast(self, event: Union[BroadcastEvent, dict]) -> int:
        """Queue ``event`` on every recipient. Returns how many connections accepted it."""
        payload = event.to_json() if isinstance(event, BroadcastEvent) else json.dumps(event)
        recipients = self.recipients()
        delivered = 0
        for connection in recipients:
            try:
                connection.send(payload)
                delivered += 1
            except Exception as e:
                logger.warning(f"Error broadcasting to {connection}: {e}")
        logger.debug(f"Broadcast {len(payload)} bytes to {delivered}/{len(recipients)} connections")
        return delivered

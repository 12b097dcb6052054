from typing import Dict, List, Optional

from hub.connection import Connection
from logging_config import get_logger

logger = get_logger(__name__)


class ConnectionRegistry:
    """Client keys to live connections, plus the set of open connections.

    A connection is routable under at most one client key. Registering an
    already-registered key replaces the mapping (last writer wins); the
    superseded connection stays open, it simply stops being routable.
    Entries only go away through ``remove_by_connection``.
    """

    def __init__(self):
        # client_key -> connection
        self._clients: Dict[str, Connection] = {}
        # connection -> client_key, so removal on disconnect does not scan
        self._keys_by_connection: Dict[Connection, str] = {}
        # open connections in accept order (dict used as an ordered set)
        self._open: Dict[Connection, None] = {}

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, client_key: str) -> bool:
        return client_key in self._clients

    def attach(self, connection: Connection):
        self._open[connection] = None
        logger.debug(f"Attached {connection} (open connections: {len(self._open)})")

    def register(self, client_key: str, connection: Connection):
        previous = self._clients.get(client_key)
        if previous is not None and previous is not connection:
            self._keys_by_connection.pop(previous, None)
            logger.info(f"Client key {client_key} moved from {previous} to {connection}")

        old_key = self._keys_by_connection.get(connection)
        if old_key is not None and old_key != client_key and self._clients.get(old_key) is connection:
            del self._clients[old_key]
            logger.info(f"{connection} re-registered: released {old_key} for {client_key}")

        self._clients[client_key] = connection
        self._keys_by_connection[connection] = client_key
        logger.info(f"Registered client {client_key} on {connection} (registered: {len(self._clients)})")

    def lookup(self, client_key: str) -> Optional[Connection]:
        return self._clients.get(client_key)

    def remove_by_connection(self, connection: Connection) -> Optional[str]:
        """Forget a closed connection. Returns the client key it was registered under, if any."""
        self._open.pop(connection, None)
        client_key = self._keys_by_connection.pop(connection, None)
        if client_key is not None and self._clients.get(client_key) is connection:
            del self._clients[client_key]
            logger.info(f"Unregistered client {client_key} (registered: {len(self._clients)})")
            return client_key
        return None

    def open_connections(self) -> List[Connection]:
        return list(self._open)

    def registered_connections(self) -> List[Connection]:
        return list(self._clients.values())

    def clear(self):
        logger.info(f"Clearing registry: {len(self._clients)} registered, {len(self._open)} open")
        self._clients.clear()
        self._keys_by_connection.clear()
        self._open.clear()

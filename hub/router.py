import json

from hub.connection import Connection
from hub.registry import ConnectionRegistry
from schemas.events import SignalType, RELAYED_SIGNAL_TYPES
from logging_config import get_logger

logger = get_logger(__name__)


class MessageRouter:
    """Dispatch inbound socket frames.

    ``register`` frames bind the sender's ``userKey`` to its connection.
    ``offer``/``answer``/``candidate`` frames are forwarded unchanged to the
    connection registered under ``target``, tagged with ``sender``. The
    payload (SDP, ICE candidates, call metadata) is never inspected.
    Everything else, including unparseable frames and unknown targets, is
    dropped without a reply.
    """

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    def route(self, connection: Connection, raw: str) -> bool:
        """Handle one frame from ``connection``. Returns True if it registered or forwarded something."""
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Error parsing message from {connection}: {e}")
            return False
        if not isinstance(frame, dict):
            logger.error(f"Dropping non-object frame from {connection}: {type(frame).__name__}")
            return False

        # "kind" is accepted as an alias of "type"
        frame_type = frame.get("type", frame.get("kind"))
        if not isinstance(frame_type, str):
            logger.debug(f"Ignoring frame without a string type from {connection}")
            return False

        if frame_type == SignalType.REGISTER.value:
            return self._register(connection, frame)
        if frame_type in RELAYED_SIGNAL_TYPES:
            return self._relay(connection, frame_type, frame)

        logger.debug(f"Ignoring frame of type {frame_type!r} from {connection}")
        return False

    def _register(self, connection: Connection, frame: dict) -> bool:
        user_key = frame.get("userKey")
        if not isinstance(user_key, str) or not user_key:
            logger.warning(f"Register frame from {connection} without a userKey, dropping")
            return False
        self.registry.register(user_key, connection)
        return True

    def _relay(self, connection: Connection, frame_type: str, frame: dict) -> bool:
        target = frame.get("target")
        if not isinstance(target, str):
            logger.debug(f"{frame_type} from {connection} has no target, dropping")
            return False

        target_connection = self.registry.lookup(target)
        if target_connection is None:
            logger.debug(f"{frame_type} for offline client {target}, dropping")
            return False

        forwarded = dict(frame)
        forwarded["sender"] = frame.get("userKey")
        try:
            target_connection.send(json.dumps(forwarded))
        except Exception as e:
            logger.warning(f"Error relaying {frame_type} to {target}: {e}")
            return False
        logger.debug(f"Relayed {frame_type} from {forwarded['sender']} to {target}")
        return True

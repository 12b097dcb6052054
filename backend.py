import redis.asyncio as redis
from pydantic import ValidationError
from datetime import datetime, timezone
from typing import Optional
from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, REDIS_DB, DEFAULT_MESSAGES
from redis_keys import MESSAGE_ID_COUNTER_KEY, MESSAGE_KEY, MESSAGE_KEY_PATTERN
from schemas.messages import Message
from logging_config import get_logger

logger = get_logger(__name__)

# HSET only if the message still exists, so an edit racing a delete cannot
# recreate a partial hash. Returns 1 when written, 0 when the key is gone.
UPDATE_IF_EXISTS_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 1 then
    redis.call('HSET', KEYS[1], 'content', ARGV[1], 'updated_at', ARGV[2])
    return 1
end
return 0
"""


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a trailing Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00') if 'Z' in value else value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def create_redis_client() -> redis.Redis:
    logger.info(f"Creating Redis client for {REDIS_HOST}:{REDIS_PORT} db={REDIS_DB}")
    return redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, db=REDIS_DB, decode_responses=True)


class MessageStore:
    """Redis-backed storage for chat messages.

    Every message is a hash at ``message:<id>``; ids come from INCR on a single
    counter key so they are unique and strictly increasing across processes.
    Redis errors propagate to the caller.
    """

    def __init__(self, redis_client: redis.Redis):
        self.redis_client = redis_client
        self._update_if_exists = redis_client.register_script(UPDATE_IF_EXISTS_SCRIPT)

    async def ping(self) -> bool:
        return await self.redis_client.ping()

    async def next_id(self) -> int:
        message_id = await self.redis_client.incr(MESSAGE_ID_COUNTER_KEY)
        logger.debug(f"Issued message id {message_id}")
        return int(message_id)

    async def create_message(self, sender_id: str, receiver_id: str, content: str) -> Message:
        message_id = await self.next_id()
        message = Message(
            id=message_id,
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=content,
            created_at=utc_now_iso(),
        )
        key = MESSAGE_KEY.format(message_id=message_id)
        # updated_at stays out of the hash until the first edit
        await self.redis_client.hset(key, mapping={k: str(v) for k, v in message.model_dump(exclude_none=True).items()})
        logger.info(f"Message {message_id} created: {sender_id} -> {receiver_id}")
        return message

    async def get_message(self, message_id: int) -> Optional[Message]:
        key = MESSAGE_KEY.format(message_id=message_id)
        raw = await self.redis_client.hgetall(key)
        if not raw:
            logger.debug(f"Message {message_id} not found in Redis")
            return None
        return self._decode(key, raw)

    async def list_messages(self) -> list[Message]:
        messages = []
        async for key in self.redis_client.scan_iter(match=MESSAGE_KEY_PATTERN):
            raw = await self.redis_client.hgetall(key)
            if not raw:
                # deleted between SCAN and HGETALL
                continue
            message = self._decode(key, raw)
            if message is not None:
                messages.append(message)
        messages.sort(key=lambda m: (parse_timestamp(m.created_at), m.id))
        logger.debug(f"Listed {len(messages)} messages")
        return messages

    async def update_message(self, message_id: int, content: str) -> Optional[Message]:
        current = await self.get_message(message_id)
        if current is None:
            return None

        updated_at = utc_now_iso()
        previous = current.updated_at or current.created_at
        # never step backwards if the wall clock does
        if parse_timestamp(updated_at) < parse_timestamp(previous):
            updated_at = previous

        key = MESSAGE_KEY.format(message_id=message_id)
        written = await self._update_if_exists(keys=[key], args=[content, updated_at])
        if not written:
            logger.info(f"Message {message_id} was deleted during update")
            return None
        logger.info(f"Message {message_id} updated")
        return current.model_copy(update={"content": content, "updated_at": updated_at})

    async def delete_message(self, message_id: int) -> bool:
        deleted = await self.redis_client.delete(MESSAGE_KEY.format(message_id=message_id))
        logger.info(f"Delete message {message_id}: deleted={deleted}")
        return bool(deleted)

    async def has_messages(self) -> bool:
        async for _ in self.redis_client.scan_iter(match=MESSAGE_KEY_PATTERN, count=1):
            return True
        return False

    async def seed_default_messages(self) -> int:
        """Create the default conversation when the store holds no messages."""
        if await self.has_messages():
            logger.info("Messages already exist. Skipping initialization.")
            return 0
        logger.info("Initializing default messages...")
        for msg in DEFAULT_MESSAGES:
            await self.create_message(msg["sender_id"], msg["receiver_id"], msg["content"])
            logger.info(f"Default message created: {msg['content']}")
        return len(DEFAULT_MESSAGES)

    async def close(self):
        await self.redis_client.aclose()

    @staticmethod
    def _decode(key: str, raw: dict) -> Optional[Message]:
        """Build a Message from a hash, or None if the record is malformed."""
        data = dict(raw)
        # older records may carry an empty or "null" placeholder
        if data.get("updated_at") in ("", "null", "None"):
            data.pop("updated_at")
        try:
            message = Message.model_validate(data)
            # list ordering parses created_at, reject what cannot be parsed
            parse_timestamp(message.created_at)
        except (ValidationError, ValueError) as e:
            logger.warning(f"Skipping malformed message record {key}: {e}")
            return None
        return message

import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3000))
RELOAD = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)
REDIS_DB = int(os.getenv("REDIS_DB", 0))

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:8080").split(",") if o.strip()]
CORS_METHODS = ["GET", "POST", "PUT", "DELETE"]

# "connections" fans data events out to every open socket,
# "registered" only to sockets that sent a register frame
BROADCAST_SCOPE = os.getenv("BROADCAST_SCOPE", "connections")
WS_OUTBOX_SIZE = int(os.getenv("WS_OUTBOX_SIZE", 1000))

SEED_DEFAULT_MESSAGES = os.getenv("SEED_DEFAULT_MESSAGES", "true").lower() in ("1", "true", "yes")
DEFAULT_MESSAGES = [
    {"sender_id": "user_one", "receiver_id": "user_two", "content": "Hey whats up!"},
    {"sender_id": "user_two", "receiver_id": "user_one", "content": "Hi there, this chat is amazing!"},
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

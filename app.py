from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from routers.messages import messages_router
from schemas.messages import ErrorResponse
from backend import MessageStore, create_redis_client
from hub.socket_hub import SocketHub
from constants import (
    BROADCAST_SCOPE,
    CORS_METHODS,
    CORS_ORIGINS,
    LOG_FILE,
    LOG_LEVEL,
    SEED_DEFAULT_MESSAGES,
    WS_OUTBOX_SIZE,
)
from logging_config import get_logger, setup_logging

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content=ErrorResponse(error=str(exc.detail)).model_dump(), headers=getattr(exc, "headers", None))


async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Invalid request to {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=400, content=ErrorResponse(error="Invalid request body").model_dump())


def create_app(
    redis_client=None,
    broadcast_scope: str = BROADCAST_SCOPE,
    seed_default_messages: bool = SEED_DEFAULT_MESSAGES,
    outbox_size: int = WS_OUTBOX_SIZE,
    cors_origins: list[str] = CORS_ORIGINS,
) -> FastAPI:
    """Build the application.

    ``redis_client`` replaces the client built from the REDIS_* settings; it is
    not closed on shutdown since the caller owns it.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_client = redis_client is None
        store = MessageStore(create_redis_client() if owns_client else redis_client)
        hub = SocketHub(broadcast_scope=broadcast_scope, outbox_size=outbox_size)
        hub.start()
        app.state.message_store = store
        app.state.hub = hub

        # a Redis outage only degrades the HTTP API, the socket hub still starts
        try:
            await store.ping()
            logger.info("Redis connection OK")
            if seed_default_messages:
                await store.seed_default_messages()
        except Exception as e:
            logger.error(f"Error initializing messages: {e}", exc_info=True)

        yield

        await hub.shutdown()
        if owns_client:
            try:
                await store.close()
            except Exception as e:
                logger.error(f"Error closing Redis client: {e}")
        logger.info("Application shut down")

    app = FastAPI(title="Chat Relay", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=CORS_METHODS,
        allow_headers=["*"],
    )
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.include_router(messages_router)

    @app.websocket("/")
    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Signaling relay and message notifications share this socket."""
        await websocket.app.state.hub.serve(websocket)

    logger.info("FastAPI application initialized")
    return app


app = create_app()

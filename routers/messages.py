from fastapi import APIRouter, Depends, HTTPException, Request
from schemas.messages import (
    CreateMessageRequest,
    UpdateMessageRequest,
    Message,
    MessageResponse,
    DeleteMessageResponse,
    ErrorResponse,
)
from schemas.events import BroadcastEvent, EventType
from backend import MessageStore
from hub.socket_hub import SocketHub
from typing import Optional
from logging_config import get_logger

logger = get_logger(__name__)

messages_router = APIRouter(prefix="/messages", tags=["messages"])

NOT_FOUND = "Message not found"
INTERNAL_ERROR = "Internal server error"

BAD_REQUEST_RESPONSE = {400: {"model": ErrorResponse, "description": "Missing or invalid field"}}
NOT_FOUND_RESPONSE = {404: {"model": ErrorResponse, "description": NOT_FOUND}}
STORE_ERROR_RESPONSE = {500: {"model": ErrorResponse, "description": "Redis failure"}}


def get_message_store(request: Request) -> MessageStore:
    return request.app.state.message_store


def get_socket_hub(request: Request) -> SocketHub:
    return request.app.state.hub


def parse_message_id(message_id: str) -> Optional[int]:
    # anything that cannot be a counter value simply does not exist
    try:
        value = int(message_id)
    except ValueError:
        return None
    return value if value > 0 else None


def notify(hub: SocketHub, event: BroadcastEvent):
    """Broadcast after a successful write. A failure here never fails the request."""
    try:
        delivered = hub.broadcast(event)
        logger.debug(f"Broadcast {event.type.value} to {delivered} connections")
    except Exception as e:
        logger.error(f"Error broadcasting {event.type.value}: {e}", exc_info=True)


@messages_router.post("", status_code=201, response_model=MessageResponse, response_model_exclude_none=True,
    responses={**BAD_REQUEST_RESPONSE, **STORE_ERROR_RESPONSE})
async def create_message(
    body: CreateMessageRequest,
    request: Request,
    store: MessageStore = Depends(get_message_store),
    hub: SocketHub = Depends(get_socket_hub),
):
    client_host = request.client.host if request.client else 'unknown'
    logger.info(f"Message creation request from {client_host}: {body.sender_id} -> {body.receiver_id}")
    if not body.sender_id or not body.receiver_id or not body.content:
        logger.warning(f"Message creation failed: missing fields from {client_host}")
        raise HTTPException(status_code=400, detail="sender_id, receiver_id, and content are required")

    try:
        message = await store.create_message(body.sender_id, body.receiver_id, body.content)
    except Exception as e:
        logger.error(f"Error creating message: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=INTERNAL_ERROR)

    notify(hub, BroadcastEvent(type=EventType.NEW_MESSAGE, data=message.model_dump(exclude_none=True)))
    return MessageResponse(message="Message created", data=message)


@messages_router.get("", response_model=list[Message], response_model_exclude_none=True, responses=STORE_ERROR_RESPONSE)
async def list_messages(store: MessageStore = Depends(get_message_store)):
    """All messages, oldest first."""
    try:
        messages = await store.list_messages()
    except Exception as e:
        logger.error(f"Error listing messages: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=INTERNAL_ERROR)
    logger.info(f"Listed {len(messages)} messages")
    return messages


@messages_router.get("/{message_id}", response_model=Message, response_model_exclude_none=True,
    responses={**NOT_FOUND_RESPONSE, **STORE_ERROR_RESPONSE})
async def get_message(message_id: str, store: MessageStore = Depends(get_message_store)):
    parsed_id = parse_message_id(message_id)
    message = None
    if parsed_id is not None:
        try:
            message = await store.get_message(parsed_id)
        except Exception as e:
            logger.error(f"Error fetching message {message_id}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=INTERNAL_ERROR)

    if message is None:
        logger.warning(f"Message {message_id} not found")
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return message


@messages_router.put("/{message_id}", response_model=MessageResponse, response_model_exclude_none=True,
    responses={**BAD_REQUEST_RESPONSE, **NOT_FOUND_RESPONSE, **STORE_ERROR_RESPONSE})
async def update_message(
    message_id: str,
    body: UpdateMessageRequest,
    store: MessageStore = Depends(get_message_store),
    hub: SocketHub = Depends(get_socket_hub),
):
    logger.info(f"Update request for message {message_id}")
    if not body.content:
        logger.warning(f"Update of message {message_id} failed: content missing")
        raise HTTPException(status_code=400, detail="Content is required")

    parsed_id = parse_message_id(message_id)
    message = None
    if parsed_id is not None:
        try:
            message = await store.update_message(parsed_id, body.content)
        except Exception as e:
            logger.error(f"Error updating message {message_id}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=INTERNAL_ERROR)

    if message is None:
        logger.warning(f"Update failed: message {message_id} not found")
        raise HTTPException(status_code=404, detail=NOT_FOUND)

    notify(hub, BroadcastEvent(type=EventType.UPDATE_MESSAGE, data=message.model_dump(exclude_none=True)))
    return MessageResponse(message="Message updated", data=message)


@messages_router.delete("/{message_id}", response_model=DeleteMessageResponse,
    responses={**NOT_FOUND_RESPONSE, **STORE_ERROR_RESPONSE})
async def delete_message(
    message_id: str,
    store: MessageStore = Depends(get_message_store),
    hub: SocketHub = Depends(get_socket_hub),
):
    logger.info(f"Delete request for message {message_id}")
    parsed_id = parse_message_id(message_id)
    deleted = False
    if parsed_id is not None:
        try:
            deleted = await store.delete_message(parsed_id)
        except Exception as e:
            logger.error(f"Error deleting message {message_id}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=INTERNAL_ERROR)

    if not deleted:
        logger.warning(f"Delete failed: message {message_id} not found")
        raise HTTPException(status_code=404, detail=NOT_FOUND)

    notify(hub, BroadcastEvent(type=EventType.DELETE_MESSAGE, data={"id": parsed_id}))
    return DeleteMessageResponse(message="Message deleted")

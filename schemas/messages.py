from pydantic import BaseModel
from typing import Optional


class CreateMessageRequest(BaseModel):
    # Optional so that a missing field reaches the handler and becomes a 400
    sender_id: Optional[str] = None
    receiver_id: Optional[str] = None
    content: Optional[str] = None

class UpdateMessageRequest(BaseModel):
    content: Optional[str] = None

class Message(BaseModel):
    id: int
    sender_id: str
    receiver_id: str
    content: str
    created_at: str
    updated_at: Optional[str] = None

class MessageResponse(BaseModel):
    message: str
    data: Message

class DeleteMessageResponse(BaseModel):
    message: str

class ErrorResponse(BaseModel):
    error: str

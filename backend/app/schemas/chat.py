from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class MessageCreate(BaseModel):
    message: str = Field(min_length=1, max_length=4000)


class MessageResponse(BaseModel):
    id: int
    appointment_id: int
    sender_id: int
    sender_role: str
    sender_name: Optional[str] = None
    message: str
    is_read: bool
    timestamp: Optional[datetime] = None

    class Config:
        from_attributes = True


class ChatThread(BaseModel):
    appointment_id: int
    counterpart_name: str
    start_time: datetime
    end_time: datetime
    status: str
    message_count: int
    last_message_time: Optional[datetime] = None

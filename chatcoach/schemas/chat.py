"""
Chat session API schemas
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from chatcoach.models.chat_history import ChatSession
from chatcoach.schemas.profile import ProfileCreate


class ChatSessionSchema(BaseModel):
    id: str
    user_id: str
    profile_id: str = ""
    name: str = ""
    avatar: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


def chat_session_to_schema(chat_session: ChatSession) -> ChatSessionSchema:
    return ChatSessionSchema(
        id=str(chat_session.id),
        user_id=str(chat_session.user_id),
        profile_id=str(chat_session.profile_id) if chat_session.profile_id else "",
        name=chat_session.name or "",
        avatar=chat_session.avatar or "",
        created_at=chat_session.created_at,
        updated_at=chat_session.updated_at,
    )


class CreateChatSessionRequest(BaseModel):
    """A new session is always created with a new friend profile"""
    profile: ProfileCreate = Field(default_factory=ProfileCreate)


class UpdateChatSessionRequest(BaseModel):
    name: str = ""
    avatar: str = ""


class ListChatSessionsResponse(BaseModel):
    data: List[ChatSessionSchema] = Field(default_factory=list)

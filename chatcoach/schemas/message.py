"""
Message API schemas
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, validator

from chatcoach.models.chat_history import ChatMessage, MessageRole, MessageType
from chatcoach.services.message_assembly import AssembledMessage

_ROLES = {role.value for role in MessageRole}
_TYPES = {msg_type.value for msg_type in MessageType}


def _id_str(value: Optional[int]) -> str:
    return str(value) if value else ""


class MessageSchema(BaseModel):
    """A message as returned to clients; ids are decimal strings"""
    id: str
    user_id: str
    session_id: str
    parent_id: str = ""
    profile_id: str = ""
    role: str
    msg_type: str
    content: str
    tags: List[str] = Field(default_factory=list)
    msg_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    translate_content: Optional[str] = Field(None, description="Newest translation of this message")


def message_to_schema(msg: ChatMessage, translate_content: Optional[str] = None) -> MessageSchema:
    return MessageSchema(
        id=_id_str(msg.id),
        user_id=_id_str(msg.user_id),
        session_id=_id_str(msg.session_id),
        parent_id=_id_str(msg.parent_id),
        profile_id=_id_str(msg.profile_id),
        role=msg.role,
        msg_type=msg.msg_type,
        content=msg.content or "",
        tags=list(msg.tags or []),
        msg_at=msg.msg_at,
        created_at=msg.created_at,
        updated_at=msg.updated_at,
        translate_content=translate_content,
    )


def assembled_to_schema(item: AssembledMessage) -> MessageSchema:
    return message_to_schema(item.message, item.translate_content)


class ListMessagesResponse(BaseModel):
    messages: List[MessageSchema] = Field(default_factory=list)
    next_page_token: str = ""


class MessageCreate(BaseModel):
    """One message to append to a session's log"""
    session_id: str = Field(..., min_length=1)
    parent_id: str = ""
    role: str
    msg_type: str = MessageType.HISTORY.value
    content: str = ""
    tags: List[str] = Field(default_factory=list)
    msg_at: Optional[datetime] = None

    @validator('role')
    def validate_role(cls, v):
        if v not in _ROLES:
            raise ValueError(f"role must be one of {sorted(_ROLES)}")
        return v

    @validator('msg_type')
    def validate_msg_type(cls, v):
        if v not in _TYPES:
            raise ValueError(f"msg_type must be one of {sorted(_TYPES)}")
        return v


class CreateMessagesRequest(BaseModel):
    messages: List[MessageCreate] = Field(default_factory=list)


class MessageUpdate(BaseModel):
    """Partial update; empty fields are left unchanged"""
    id: str = ""
    content: str = ""
    role: str = ""
    msg_type: str = ""
    tags: List[str] = Field(default_factory=list)


class UpdateMessagesRequest(BaseModel):
    messages: List[MessageUpdate] = Field(default_factory=list)


class MessagesResponse(BaseModel):
    messages: List[MessageSchema] = Field(default_factory=list)


class DeleteMessagesRequest(BaseModel):
    ids: List[str] = Field(default_factory=list)


class DeleteMessagesResponse(BaseModel):
    deleted_count: int


class FeedbackRequest(BaseModel):
    session_id: str = ""
    message_id: str = ""
    attitude: str = ""


class FeedbackResponse(BaseModel):
    success: bool


class ConsultRequest(BaseModel):
    session_id: str = ""
    content: str = ""
    target_id: str = Field("", description="Latest AI reply to regenerate")


class ConsultResponse(BaseModel):
    consult: MessageSchema
    reply: MessageSchema


class TranslateRequest(BaseModel):
    chat_session_id: str = ""
    target_message_id: str = ""


class TranslateResponse(BaseModel):
    new_message_id: str
    content: str


class TranslateTextRequest(BaseModel):
    """Free text to translate; ``from``/``to`` are MALE or FEMALE"""
    model_config = ConfigDict(populate_by_name=True)

    content: str = ""
    from_target: str = Field("", alias="from")
    to_target: str = Field("", alias="to")
    history: str = Field("", description="Conversation so far, as plain text")


class TranslateTextResponse(BaseModel):
    content: str

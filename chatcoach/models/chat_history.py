"""
Chat history database models
"""

from enum import Enum
from sqlalchemy import Column, BigInteger, String, DateTime, Text, JSON, Index
from sqlalchemy.sql import func
from chatcoach.core.database import Base


class MessageRole(str, Enum):
    """Who authored a message"""
    SELF = "SELF"  # The user, inside the logged conversation with the friend
    FRIEND = "FRIEND"
    AI = "AI"
    USER = "USER"  # The user, talking to the AI coach


class MessageType(str, Enum):
    """Kind of entry in the message log"""
    HISTORY = "HISTORY"
    CONSULT = "CONSULT"
    TRANSLATE = "TRANSLATE"


DEMO_TAG = "demo"
DISABLE_INTERACT_TAG = "disable_interact"
AI_REPLY_TAG = "ai_reply"


class ChatSession(Base):
    """Conversation thread between a user and a friend profile"""
    __tablename__ = "chat_session"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    name = Column(String(255), nullable=False, default="")
    avatar = Column(Text, nullable=False, default="")
    user_id = Column(BigInteger, nullable=False, index=True)
    profile_id = Column(BigInteger, nullable=False, default=0)  # 0 when no friend profile is linked
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class ChatMessage(Base):
    """Append-only message log entry"""
    __tablename__ = "chat_message"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    user_id = Column(BigInteger, nullable=False)
    session_id = Column(BigInteger, nullable=False, default=0)
    parent_id = Column(BigInteger, nullable=False, default=0)
    profile_id = Column(BigInteger, nullable=False, default=0)
    role = Column(String(20), nullable=False)
    msg_type = Column(String(20), nullable=False)
    content = Column(Text, nullable=False, default="")
    tags = Column(JSON, nullable=False, default=list)
    msg_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('idx_chat_message_user_session_id', 'user_id', 'session_id', 'id'),
        Index('idx_chat_message_parent_id', 'parent_id'),
    )

    def has_tag(self, tag: str) -> bool:
        return tag in (self.tags or [])

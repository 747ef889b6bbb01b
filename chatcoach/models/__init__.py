# Database models
from chatcoach.core.database import Base
from .user import User, Profile, UserFile
from .chat_history import ChatSession, ChatMessage, MessageRole, MessageType
from .app_config import Config

__all__ = [
    "Base", "User", "Profile", "UserFile", "ChatSession", "ChatMessage",
    "MessageRole", "MessageType", "Config",
]

"""
User, profile and uploaded file models
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional
from sqlalchemy import Column, BigInteger, Integer, String, DateTime, Text, JSON
from sqlalchemy.sql import func
from chatcoach.core.database import Base


GENDER_LABELS = {
    "male": "Male",
    "female": "Female",
}


class User(Base):
    """Identity anchor, reachable by external login id or phone"""
    __tablename__ = "user"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    name = Column(String(255), nullable=False, default="")
    im_name = Column(String(255), nullable=False, default="")
    external_id = Column(String(128), unique=True, nullable=True)
    phone = Column(String(32), unique=True, nullable=True)
    avatar = Column(Text, nullable=False, default="")
    profile_id = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Profile(Base):
    """Descriptive data for the user themself or for one of their friends"""
    __tablename__ = "profile"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    user_id = Column(BigInteger, nullable=False, index=True)
    name = Column(String(255), nullable=False, default="")
    im_name = Column(String(255), nullable=False, default="")
    avatar = Column(Text, nullable=False, default="")
    avatar_file_id = Column(BigInteger, nullable=False, default=0)
    age = Column(Integer, nullable=False, default=0)
    gender = Column(String(16), nullable=False, default="")
    prompt = Column(Text, nullable=False, default="")  # Persona prompt, never exposed through the API
    intro = Column(Text, nullable=False, default="")
    custom = Column(JSON, nullable=False, default=list)  # [{"name": ..., "value": ...}]
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def gender_label(self) -> str:
        return GENDER_LABELS.get(self.gender or "", "")

    def format_property_lines(self) -> List[str]:
        """Render gender, age, intro and custom attributes as ``name:value`` lines"""
        properties = []
        if self.gender:
            properties.append(("Gender", self.gender_label()))
        if self.age and self.age > 0:
            properties.append(("Age", str(self.age)))
        if self.intro:
            properties.append(("Intro", self.intro))
        for prop in self.custom or []:
            properties.append((prop.get("name", ""), prop.get("value", "")))
        return [f"{name}:{value}" for name, value in properties]

    def format_property_text(self) -> str:
        return "\n".join(self.format_property_lines())


class FileStatus:
    NORMAL = 1
    DELETED = 2


class FileUsage:
    AVATAR = "avatar"
    CHAT_IMAGE = "chat_image"
    TEMP_UPLOAD = "temp_upload"


def expiration_for_usage(usage_type: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """Expiry of a stored file by usage type; avatars never expire"""
    now = now or datetime.now(timezone.utc)
    if usage_type == FileUsage.AVATAR:
        return None
    if usage_type == FileUsage.TEMP_UPLOAD:
        return now + timedelta(hours=24)
    if usage_type == FileUsage.CHAT_IMAGE:
        return now + timedelta(days=30)
    return now + timedelta(days=7)


class UserFile(Base):
    """Metadata for an object uploaded to storage"""
    __tablename__ = "user_file"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    user_id = Column(BigInteger, nullable=False, index=True)
    original_name = Column(String(255), nullable=False, default="")
    file_size = Column(BigInteger, nullable=False, default=0)
    file_type = Column(String(100), nullable=False, default="")
    file_ext = Column(String(16), nullable=False, default="")
    storage_key = Column(String(512), nullable=False)
    public_url = Column(Text, nullable=False, default="")
    public_expire = Column(DateTime(timezone=True), nullable=True)
    file_hash = Column(String(64), nullable=False, index=True)
    status = Column(Integer, nullable=False, default=FileStatus.NORMAL)
    usage_type = Column(String(32), nullable=False, default="")
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

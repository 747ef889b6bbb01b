"""
Uploaded file schemas
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from chatcoach.models.user import UserFile


class UserFileSchema(BaseModel):
    id: str
    original_name: str
    file_size: int
    file_type: str
    file_ext: str
    public_url: str
    usage_type: str
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


def user_file_to_schema(user_file: UserFile) -> UserFileSchema:
    return UserFileSchema(
        id=str(user_file.id),
        original_name=user_file.original_name or "",
        file_size=user_file.file_size or 0,
        file_type=user_file.file_type or "",
        file_ext=user_file.file_ext or "",
        public_url=user_file.public_url or "",
        usage_type=user_file.usage_type or "",
        expires_at=user_file.expires_at,
        created_at=user_file.created_at,
    )


class UpdateUsageTypeRequest(BaseModel):
    usage_type: str

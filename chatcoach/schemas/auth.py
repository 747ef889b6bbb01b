"""
Authentication Pydantic schemas for request/response validation
"""

from typing import Optional
from pydantic import BaseModel

from chatcoach.models.user import User
from chatcoach.schemas.profile import ProfileSchema


class PhoneLoginRequest(BaseModel):
    """Request schema for phone login"""
    phone: str = ""
    code: str = ""


class AuthResponse(BaseModel):
    """Response schema for authentication"""
    access_token: str
    token_type: str = "bearer"
    user_id: str


class UserResponse(BaseModel):
    """Response schema for user data"""
    id: str
    name: str = ""
    im_name: str = ""
    phone: str = ""
    avatar: str = ""
    profile: Optional[ProfileSchema] = None


def user_to_response(user: User, profile: Optional[ProfileSchema] = None) -> UserResponse:
    return UserResponse(
        id=str(user.id),
        name=user.name or "",
        im_name=user.im_name or "",
        phone=user.phone or "",
        avatar=user.avatar or "",
        profile=profile,
    )

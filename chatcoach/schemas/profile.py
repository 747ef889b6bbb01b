"""
Profile API schemas
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from chatcoach.models.user import Profile


class PropertySchema(BaseModel):
    """Free-form profile attribute"""
    name: str = ""
    value: str = ""


class ProfileSchema(BaseModel):
    id: str
    user_id: str
    name: str = ""
    im_name: str = ""
    avatar: str = ""
    avatar_file_id: str = ""
    age: int = 0
    gender: str = ""
    intro: str = ""
    custom: List[PropertySchema] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


def profile_to_schema(profile: Profile, avatar: Optional[str] = None) -> ProfileSchema:
    """The persona prompt is internal and never exposed"""
    return ProfileSchema(
        id=str(profile.id),
        user_id=str(profile.user_id),
        name=profile.name or "",
        im_name=profile.im_name or "",
        avatar=avatar if avatar is not None else (profile.avatar or ""),
        avatar_file_id=str(profile.avatar_file_id) if profile.avatar_file_id else "",
        age=profile.age or 0,
        gender=profile.gender or "",
        intro=profile.intro or "",
        custom=[PropertySchema(name=p.get("name", ""), value=p.get("value", "")) for p in profile.custom or []],
        created_at=profile.created_at,
        updated_at=profile.updated_at,
    )


class ProfileCreate(BaseModel):
    name: str = ""
    im_name: str = ""
    avatar: str = ""
    gender: str = Field("", description="male, female or empty")
    age: int = Field(0, ge=0)
    intro: str = ""
    custom: List[PropertySchema] = Field(default_factory=list)


class ProfileUpdate(BaseModel):
    """Partial update; empty fields are left unchanged"""
    name: str = ""
    im_name: str = ""
    avatar: str = ""
    avatar_file_id: str = ""
    gender: str = ""
    age: int = Field(0, ge=0)
    intro: str = ""
    custom: List[PropertySchema] = Field(default_factory=list)


class ListProfilesResponse(BaseModel):
    profiles: List[ProfileSchema] = Field(default_factory=list)
    next_page_token: str = ""

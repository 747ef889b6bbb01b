"""
Profile API endpoints
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from chatcoach.core.database import get_db
from chatcoach.deps.idgen import IdFactory, get_id_generator
from chatcoach.deps.object_storage import ObjectStorage, get_object_storage
from chatcoach.domain.appconfig import AppConfigCond
from chatcoach.middleware.auth import get_current_user
from chatcoach.models.user import User
from chatcoach.schemas.profile import (
    ListProfilesResponse,
    ProfileCreate,
    ProfileSchema,
    ProfileUpdate,
    profile_to_schema,
)
from chatcoach.services.files import FileService
from chatcoach.services.profiles import ProfileService

router = APIRouter()


def get_profile_service(
    storage: ObjectStorage = Depends(get_object_storage),
    id_factory: IdFactory = Depends(get_id_generator)
) -> ProfileService:
    return ProfileService(FileService(storage, id_factory), id_factory)


@router.get("/profiles", response_model=ListProfilesResponse)
def list_profiles(
    search_name: str = "",
    page_token: str = "",
    page_size: int = 0,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ProfileService = Depends(get_profile_service)
):
    """
    The user's profiles in creation order, optionally filtered by name
    """
    profiles, next_page_token = service.list_profiles(
        db, current_user.id, search_name=search_name, page_token=page_token, page_size=page_size
    )
    return ListProfilesResponse(
        profiles=[profile_to_schema(p, service.avatar_url(db, current_user.id, p)) for p in profiles],
        next_page_token=next_page_token
    )


@router.post("/profiles", response_model=ProfileSchema)
def create_profile(
    data: ProfileCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ProfileService = Depends(get_profile_service)
):
    return profile_to_schema(service.create_profile(db, current_user.id, data))


@router.get("/profiles/{profile_id}", response_model=ProfileSchema)
def get_profile(
    profile_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ProfileService = Depends(get_profile_service)
):
    profile = service.get_profile(db, current_user.id, profile_id)
    return profile_to_schema(profile, service.avatar_url(db, current_user.id, profile))


@router.put("/profiles/{profile_id}", response_model=ProfileSchema)
def update_profile(
    profile_id: str,
    data: ProfileUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ProfileService = Depends(get_profile_service)
):
    """
    Partially update a profile

    The first profile update of a user without demo data also seeds the
    demo sessions for the profile's gender.
    """
    profile = service.update_profile(
        db, current_user.id, profile_id, data, cond=AppConfigCond.from_headers(request.headers)
    )
    return profile_to_schema(profile)


@router.delete("/profiles/{profile_id}")
def delete_profile(
    profile_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ProfileService = Depends(get_profile_service)
):
    deleted = service.delete_profile(db, current_user.id, profile_id)
    return {"deleted_count": deleted}

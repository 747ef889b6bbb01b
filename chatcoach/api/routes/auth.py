"""
Authentication API routes
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from chatcoach.core.database import get_db
from chatcoach.deps.idgen import IdFactory, get_id_generator
from chatcoach.middleware.auth import get_current_user
from chatcoach.models.user import User
from chatcoach.schemas.auth import AuthResponse, PhoneLoginRequest, UserResponse, user_to_response
from chatcoach.schemas.profile import profile_to_schema
from chatcoach.services.auth import AuthService

router = APIRouter()


@router.post("/phone-login", response_model=AuthResponse)
def phone_login(
    login: PhoneLoginRequest,
    db: Session = Depends(get_db),
    id_factory: IdFactory = Depends(get_id_generator)
):
    """
    Log in with phone number and verification code; first login registers
    """
    token, user = AuthService.phone_login(db, login.phone, login.code, id_factory)
    return AuthResponse(access_token=token, user_id=str(user.id))


@router.get("/me", response_model=UserResponse)
def get_current_user_info(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Current user with their own profile
    """
    user, profile = AuthService.get_user_profile(db, current_user.id)
    return user_to_response(user, profile_to_schema(profile) if profile is not None else None)

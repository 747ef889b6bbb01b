"""
Authentication services for phone login and JWT validation
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Tuple
from jose import JWTError, jwt
from sqlalchemy.orm import Session
from chatcoach.core.config import settings
from chatcoach.deps.idgen import IdFactory
from chatcoach.domain.errors import NotFoundError, ParamInvalidError, ParamMissingError
from chatcoach.domain.users import find_or_register_user
from chatcoach.models.user import Profile, User

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"^\d{11}$")


class JWTService:
    """Service for JWT token management"""

    @staticmethod
    def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
        """Create a JWT access token"""
        to_encode = data.copy()
        if expires_delta:
            expire = datetime.now(timezone.utc) + expires_delta
        else:
            expire = datetime.now(timezone.utc) + timedelta(days=settings.access_token_expire_days)

        to_encode.update({"exp": expire, "type": "access"})
        encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)
        return encoded_jwt

    @staticmethod
    def verify_token(token: str, token_type: str = "access") -> Optional[Dict[str, Any]]:
        """Verify and decode a JWT token"""
        try:
            payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
            if payload.get("type") != token_type:
                return None
            return payload
        except JWTError:
            return None


class AuthService:
    """Main authentication service"""

    @staticmethod
    def issue_token(user: User) -> str:
        # Ids exceed the JSON safe integer range, so they travel as strings
        return JWTService.create_access_token({"user_id": str(user.id)})

    @staticmethod
    def phone_login(db: Session, phone: str, code: str, id_factory: Optional[IdFactory] = None) -> Tuple[str, User]:
        """
        Log in by phone number and verification code, registering on first use

        Returns:
            Access token and the canonical user

        Raises:
            ParamMissingError: If phone or code is empty
            ParamInvalidError: If the phone is malformed or the code is wrong
        """
        phone = (phone or "").strip()
        code = (code or "").strip()
        if not phone:
            raise ParamMissingError("phone is required")
        if not code:
            raise ParamMissingError("code is required")
        if not PHONE_PATTERN.match(phone):
            raise ParamInvalidError("phone must be 11 digits")
        if code != settings.phone_login_code:
            raise ParamInvalidError("verification code is incorrect")

        masked = f"{phone[:3]}****{phone[-4:]}"
        user = find_or_register_user(db, User(phone=phone, name=masked, im_name=masked), id_factory)
        logger.info(f"Phone login for user {user.id}")
        return AuthService.issue_token(user), user

    @staticmethod
    def get_user_profile(db: Session, user_id: int) -> Tuple[User, Optional[Profile]]:
        """The user together with their root profile"""
        user = db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise NotFoundError("user not found")
        profile = None
        if user.profile_id:
            profile = db.query(Profile).filter(
                Profile.id == user.profile_id,
                Profile.user_id == user.id
            ).first()
        return user, profile

    @staticmethod
    def get_current_user(db: Session, token: str) -> Optional[User]:
        """Get current user from JWT token"""
        payload = JWTService.verify_token(token, "access")
        if not payload:
            return None

        try:
            user_id = int(payload.get("user_id") or 0)
        except (TypeError, ValueError):
            return None
        if not user_id:
            return None

        return db.query(User).filter(User.id == user_id).first()

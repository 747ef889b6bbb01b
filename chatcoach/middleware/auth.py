"""
Authentication dependency for JWT bearer tokens
"""

from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from chatcoach.core.database import get_db
from chatcoach.domain.errors import UnauthenticatedError
from chatcoach.services.auth import AuthService
from chatcoach.models.user import User

# Missing credentials are reported through our own error body rather than a bare 403
security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """
    Dependency to get current authenticated user
    Raises UnauthenticatedError if authentication fails
    """
    if credentials is None or not credentials.credentials:
        raise UnauthenticatedError("missing bearer token")

    user = AuthService.get_current_user(db, credentials.credentials)
    if user is None:
        raise UnauthenticatedError("could not validate credentials")
    return user

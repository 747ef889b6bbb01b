"""
User resolution for external-id and phone logins
"""

import logging
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from chatcoach.deps.idgen import IdFactory, assign_id, get_id_generator
from chatcoach.domain.errors import InternalError, ParamMissingError
from chatcoach.models.user import Profile, User

logger = logging.getLogger(__name__)


def _find_existing(db: Session, external_id: Optional[str], phone: Optional[str]) -> Optional[User]:
    query = db.query(User)
    if external_id and phone:
        query = query.filter(or_(User.external_id == external_id, User.phone == phone))
    elif external_id:
        query = query.filter(User.external_id == external_id)
    else:
        query = query.filter(User.phone == phone)
    # Row lock serializes concurrent logins for an identity that already exists
    return query.order_by(User.id).with_for_update().first()


def _register(db: Session, user: User, id_factory: IdFactory) -> User:
    assign_id(user, id_factory)
    db.add(user)
    db.flush()

    profile = Profile(user_id=user.id, name=user.name or "", im_name=user.im_name or "")
    assign_id(profile, id_factory)
    db.add(profile)
    db.flush()

    user.profile_id = profile.id
    db.flush()
    return user


def find_or_register_user(db: Session, user: User, id_factory: Optional[IdFactory] = None) -> User:
    """
    Return the account for ``user``'s external id or phone, creating it if needed.

    When both identifiers are given, an account matching either one is
    returned. A new account is created together with its root profile in
    one transaction. The unique indexes on both identifiers make a losing
    concurrent insert fail, after which the winner's row is returned.

    Args:
        db: Database session
        user: Unsaved user carrying the login identifiers and display names
        id_factory: Source of fresh ids, the process generator by default

    Returns:
        The canonical persisted user; callers use it in place of ``user``

    Raises:
        ParamMissingError: If neither external id nor phone is given
        InternalError: If the store fails
    """
    external_id = user.external_id or None
    phone = user.phone or None
    if not external_id and not phone:
        raise ParamMissingError("external_id or phone is required")
    user.external_id = external_id
    user.phone = phone

    try:
        existing = _find_existing(db, external_id, phone)
        if existing is not None:
            db.commit()
            return existing

        created = _register(db, user, id_factory or get_id_generator())
        db.commit()
        logger.info(f"Registered user {created.id} with profile {created.profile_id}")
        return created

    except IntegrityError:
        db.rollback()
        logger.info(f"Concurrent registration for external_id={external_id} phone={phone}, reading winner")
        try:
            existing = _find_existing(db, external_id, phone)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to read user after registration conflict: {e}")
            raise InternalError() from e
        if existing is None:
            logger.error(f"Registration conflict but no user found for external_id={external_id} phone={phone}")
            raise InternalError()
        return existing

    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to find or register user external_id={external_id} phone={phone}: {e}")
        raise InternalError() from e

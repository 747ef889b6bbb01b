"""
Chat session management
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chatcoach.deps.idgen import IdFactory, assign_id, get_id_generator
from chatcoach.domain.errors import InternalError, parse_id
from chatcoach.models.chat_history import ChatSession
from chatcoach.models.user import Profile
from chatcoach.schemas.profile import ProfileCreate
from chatcoach.services.message_assembly import get_owned_session
from chatcoach.services.profiles import validate_gender

logger = logging.getLogger(__name__)


class ChatSessionService:
    """Sessions between the user and a friend profile"""

    def __init__(self, id_factory: Optional[IdFactory] = None):
        self.id_factory = id_factory or get_id_generator()

    def list_sessions(self, db: Session, user_id: int) -> List[ChatSession]:
        """
        The user's sessions, newest first.

        Name and avatar come from the friend profile when it still exists.
        The overlay is display-only and never written back.
        """
        sessions = db.query(ChatSession).filter(
            ChatSession.user_id == user_id
        ).order_by(ChatSession.id.desc()).all()

        profile_ids = {s.profile_id for s in sessions if s.profile_id}
        if profile_ids:
            profiles = {
                p.id: p for p in db.query(Profile).filter(Profile.id.in_(profile_ids)).all()
            }
            for chat_session in sessions:
                profile = profiles.get(chat_session.profile_id)
                if profile is not None:
                    db.expunge(chat_session)
                    chat_session.name = profile.name
                    chat_session.avatar = profile.avatar
        return sessions

    def create_session(self, db: Session, user_id: int, friend: ProfileCreate) -> ChatSession:
        """Create the friend profile and a session with it in one transaction"""
        validate_gender(friend.gender)
        profile = Profile(
            user_id=user_id,
            name=friend.name,
            im_name=friend.im_name,
            avatar=friend.avatar,
            gender=friend.gender,
            age=friend.age,
            intro=friend.intro,
            custom=[p.model_dump() for p in friend.custom],
        )
        assign_id(profile, self.id_factory)
        chat_session = ChatSession(
            user_id=user_id,
            name=friend.name,
            avatar=friend.avatar,
            profile_id=profile.id,
        )
        assign_id(chat_session, self.id_factory)

        try:
            db.add(profile)
            db.flush()
            db.add(chat_session)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to create chat session for user {user_id}: {e}")
            raise InternalError() from e

        logger.info(f"Created chat session {chat_session.id} with profile {profile.id}")
        return chat_session

    def update_session(self, db: Session, user_id: int, session_id, name: str = "", avatar: str = "") -> ChatSession:
        chat_session = get_owned_session(db, user_id, parse_id(session_id, "session_id"))
        if name:
            chat_session.name = name
        if avatar:
            chat_session.avatar = avatar
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to update chat session {chat_session.id}: {e}")
            raise InternalError() from e
        return chat_session

    def delete_session(self, db: Session, user_id: int, session_id) -> int:
        session_id = parse_id(session_id, "session_id")
        try:
            deleted = db.query(ChatSession).filter(
                ChatSession.id == session_id,
                ChatSession.user_id == user_id
            ).delete(synchronize_session=False)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to delete chat session {session_id}: {e}")
            raise InternalError() from e
        return deleted

"""
Message log writes: batch create, partial update, delete and feedback
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chatcoach.deps.idgen import IdFactory, assign_id, get_id_generator
from chatcoach.domain.errors import (
    InternalError,
    NotFoundError,
    ParamInvalidError,
    ParamMissingError,
    parse_id,
)
from chatcoach.models.chat_history import ChatMessage
from chatcoach.schemas.message import MessageCreate, MessageUpdate
from chatcoach.services.message_assembly import get_owned_session

logger = logging.getLogger(__name__)

ATTITUDE_UP = "up"
ATTITUDE_DOWN = "down"
VALID_ATTITUDES = (ATTITUDE_UP, ATTITUDE_DOWN, "")


def _lenient_id(value: Optional[str]) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def message_from_create(item: MessageCreate, user_id: int, now: datetime) -> ChatMessage:
    return ChatMessage(
        user_id=user_id,
        session_id=parse_id(item.session_id, "session_id"),
        parent_id=parse_id(item.parent_id, "parent_id", required=False),
        profile_id=0,
        role=item.role,
        msg_type=item.msg_type,
        content=item.content,
        tags=list(item.tags),
        msg_at=item.msg_at or now,
    )


def create_messages(
    db: Session,
    user_id: int,
    items: List[MessageCreate],
    id_factory: Optional[IdFactory] = None,
) -> List[ChatMessage]:
    """
    Append messages to the user's sessions in one transaction.

    Raises:
        ParamMissingError: If an item has no session id
        ParamInvalidError: If an id is malformed
        NotFoundError: If a session is not the user's
        InternalError: If the write fails
    """
    if not items:
        return []

    id_factory = id_factory or get_id_generator()
    now = datetime.now(timezone.utc)
    messages = [message_from_create(item, user_id, now) for item in items]

    for session_id in {msg.session_id for msg in messages}:
        get_owned_session(db, user_id, session_id)

    # Ids follow input order so the batch lists in the order it was sent
    for msg in messages:
        assign_id(msg, id_factory)

    try:
        db.add_all(messages)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to create {len(messages)} messages for user {user_id}: {e}")
        raise InternalError() from e

    logger.info(f"Created {len(messages)} messages for user {user_id}")
    return messages


def update_messages(db: Session, user_id: int, items: List[MessageUpdate]) -> List[ChatMessage]:
    """
    Apply partial updates; all or nothing.

    Items without a usable id are skipped. Only non-empty fields are written.

    Raises:
        NotFoundError: If any addressed message is not the user's; no update is kept
        InternalError: If the write fails
    """
    updated = []
    try:
        for item in items:
            message_id = _lenient_id(item.id)
            if message_id <= 0:
                continue

            msg = db.query(ChatMessage).filter(
                ChatMessage.id == message_id,
                ChatMessage.user_id == user_id
            ).first()
            if msg is None:
                raise NotFoundError(f"message {message_id} not found")

            if item.content:
                msg.content = item.content
            if item.role:
                msg.role = item.role
            if item.msg_type:
                msg.msg_type = item.msg_type
            if item.tags:
                msg.tags = list(item.tags)
            updated.append(msg)

        db.commit()
    except NotFoundError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to update messages for user {user_id}: {e}")
        raise InternalError() from e

    return updated


def delete_messages(db: Session, user_id: int, ids: List[str]) -> int:
    """Hard-delete the user's messages by id; unparsable ids are ignored"""
    message_ids = [i for i in (_lenient_id(raw) for raw in ids) if i > 0]
    if not message_ids:
        return 0

    try:
        deleted = db.query(ChatMessage).filter(
            ChatMessage.id.in_(message_ids),
            ChatMessage.user_id == user_id
        ).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to delete messages for user {user_id}: {e}")
        raise InternalError() from e

    logger.info(f"Deleted {deleted} messages for user {user_id}")
    return deleted


def feedback(db: Session, user_id: int, session_id: str, message_id: str, attitude: str) -> ChatMessage:
    """
    Record a thumbs up or down on a message as a tag.

    Any earlier up/down tag is replaced; an empty attitude clears it.

    Raises:
        ParamMissingError: If the session or message id is empty
        ParamInvalidError: If the attitude is unknown or an id is malformed
        NotFoundError: If the message is not in the user's session
    """
    if not session_id or not message_id:
        raise ParamMissingError("session_id and message_id are required")
    if attitude not in VALID_ATTITUDES:
        raise ParamInvalidError(f"attitude must be one of: {', '.join(a for a in VALID_ATTITUDES if a)} or empty")

    parsed_session_id = parse_id(session_id, "session_id")
    parsed_message_id = parse_id(message_id, "message_id")

    msg = db.query(ChatMessage).filter(
        ChatMessage.id == parsed_message_id,
        ChatMessage.user_id == user_id,
        ChatMessage.session_id == parsed_session_id
    ).first()
    if msg is None:
        raise NotFoundError("message not found")

    tags = [tag for tag in (msg.tags or []) if tag not in (ATTITUDE_UP, ATTITUDE_DOWN)]
    if attitude:
        tags.append(attitude)
    # New list so the JSON column is marked dirty
    msg.tags = tags

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to save feedback on message {parsed_message_id}: {e}")
        raise InternalError() from e

    logger.info(f"Feedback {attitude!r} on message {parsed_message_id} by user {user_id}")
    return msg

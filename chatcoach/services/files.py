"""
User file uploads backed by object storage
"""

import hashlib
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chatcoach.core.config import settings
from chatcoach.deps.idgen import IdFactory, assign_id, get_id_generator
from chatcoach.deps.object_storage import ObjectStorage, ObjectStorageError
from chatcoach.domain.errors import InternalError, NotFoundError, ParamInvalidError, ParamMissingError
from chatcoach.models.user import FileStatus, FileUsage, UserFile, expiration_for_usage

logger = logging.getLogger(__name__)

VALID_USAGE_TYPES = (FileUsage.AVATAR, FileUsage.CHAT_IMAGE, FileUsage.TEMP_UPLOAD, "")


def calculate_file_hash(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def _as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands timestamps back without tzinfo
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


class FileService:
    """Stores uploads once per content hash and keeps their signed URLs fresh"""

    def __init__(self, storage: ObjectStorage, id_factory: Optional[IdFactory] = None):
        self.storage = storage
        self.id_factory = id_factory or get_id_generator()

    def _url_ttl(self, usage_type: str) -> int:
        if usage_type == FileUsage.AVATAR:
            return settings.avatar_url_ttl_seconds
        return settings.file_url_ttl_seconds

    def _sign(self, user_file: UserFile, now: datetime):
        ttl = self._url_ttl(user_file.usage_type)
        try:
            user_file.public_url = self.storage.signed_url(user_file.storage_key, expires=ttl)
        except ObjectStorageError as e:
            raise InternalError() from e
        user_file.public_expire = now + timedelta(seconds=ttl)

    def upload(
        self,
        db: Session,
        user_id: int,
        filename: str,
        content: bytes,
        content_type: str = "",
        usage_type: str = FileUsage.TEMP_UPLOAD,
    ) -> UserFile:
        """
        Store an uploaded file for the user.

        An existing, non-deleted file of the same user with identical content
        is returned instead of uploading again.

        Raises:
            ParamMissingError: If the content is empty
            ParamInvalidError: If the file is too large or the usage type is unknown
            InternalError: If storage or the database fails
        """
        if not content:
            raise ParamMissingError("file is empty")
        max_bytes = settings.max_upload_mb * 1024 * 1024
        if len(content) > max_bytes:
            raise ParamInvalidError(f"file exceeds {settings.max_upload_mb} MB")
        if usage_type not in VALID_USAGE_TYPES:
            raise ParamInvalidError(f"unknown usage type: {usage_type}")

        file_hash = calculate_file_hash(content)
        existing = db.query(UserFile).filter(
            UserFile.user_id == user_id,
            UserFile.file_hash == file_hash,
            UserFile.status == FileStatus.NORMAL
        ).first()
        if existing is not None:
            logger.info(f"Reusing file {existing.id} for user {user_id} (hash {file_hash[:12]})")
            return self._refresh_url(db, existing)

        file_ext = os.path.splitext(filename or "")[1].lower()
        storage_key = f"user/{user_id}/{file_hash}{file_ext}"
        try:
            self.storage.put_object(storage_key, content, content_type or None)
        except ObjectStorageError as e:
            raise InternalError() from e

        now = datetime.now(timezone.utc)
        user_file = UserFile(
            user_id=user_id,
            original_name=filename or "",
            file_size=len(content),
            file_type=content_type or "",
            file_ext=file_ext,
            storage_key=storage_key,
            file_hash=file_hash,
            status=FileStatus.NORMAL,
            usage_type=usage_type,
            expires_at=expiration_for_usage(usage_type, now),
        )
        assign_id(user_file, self.id_factory)
        self._sign(user_file, now)

        try:
            db.add(user_file)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to save file record for user {user_id}: {e}")
            raise InternalError() from e

        logger.info(f"Uploaded file {user_file.id} ({len(content)} bytes) to {storage_key}")
        return user_file

    def _refresh_url(self, db: Session, user_file: UserFile) -> UserFile:
        now = datetime.now(timezone.utc)
        expire = _as_utc(user_file.public_expire)
        if user_file.public_url and expire is not None and expire > now:
            return user_file

        self._sign(user_file, now)
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to refresh URL of file {user_file.id}: {e}")
            raise InternalError() from e
        return user_file

    def get_file(self, db: Session, user_id: int, file_id: int) -> UserFile:
        """Owned, non-deleted file with a valid signed URL"""
        user_file = db.query(UserFile).filter(
            UserFile.id == file_id,
            UserFile.user_id == user_id,
            UserFile.status == FileStatus.NORMAL
        ).first()
        if user_file is None:
            raise NotFoundError("file not found")
        return self._refresh_url(db, user_file)

    def update_usage_type(self, db: Session, user_id: int, file_id: int, usage_type: str) -> UserFile:
        """Change what a file is used for; its expiry follows the new usage"""
        if usage_type not in VALID_USAGE_TYPES:
            raise ParamInvalidError(f"unknown usage type: {usage_type}")
        user_file = db.query(UserFile).filter(
            UserFile.id == file_id,
            UserFile.user_id == user_id,
            UserFile.status == FileStatus.NORMAL
        ).first()
        if user_file is None:
            raise NotFoundError("file not found")

        user_file.usage_type = usage_type
        user_file.expires_at = expiration_for_usage(usage_type)
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to update usage of file {file_id}: {e}")
            raise InternalError() from e
        return user_file

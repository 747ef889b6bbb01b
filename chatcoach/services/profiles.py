"""
Profile management and demo onboarding trigger
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chatcoach.core.config import settings
from chatcoach.deps.idgen import IdFactory, assign_id, get_id_generator
from chatcoach.domain.appconfig import AppConfigCond
from chatcoach.domain.demo_seeding import has_demo_messages, seed_demo_data
from chatcoach.domain.errors import CoachError, InternalError, NotFoundError, ParamInvalidError, parse_id
from chatcoach.models.user import FileUsage, GENDER_LABELS, Profile, User
from chatcoach.schemas.profile import ProfileCreate, ProfileUpdate
from chatcoach.services.files import FileService

logger = logging.getLogger(__name__)


def validate_gender(gender: str):
    if gender and gender not in GENDER_LABELS:
        raise ParamInvalidError(f"gender must be 'male' or 'female', got: {gender}")


def _commit(db: Session, action: str):
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to {action}: {e}")
        raise InternalError() from e


class ProfileService:
    """CRUD over the user's profiles"""

    def __init__(self, file_service: Optional[FileService] = None, id_factory: Optional[IdFactory] = None):
        self.file_service = file_service
        self.id_factory = id_factory or get_id_generator()

    def _get_owned(self, db: Session, user_id: int, profile_id) -> Profile:
        profile_id = parse_id(profile_id, "profile_id")
        profile = db.query(Profile).filter(
            Profile.id == profile_id,
            Profile.user_id == user_id
        ).first()
        if profile is None:
            raise NotFoundError("profile not found")
        return profile

    def avatar_url(self, db: Session, user_id: int, profile: Profile) -> str:
        """Fresh signed URL for a file-backed avatar, else the stored avatar"""
        if profile.avatar_file_id and self.file_service is not None:
            try:
                user_file = self.file_service.get_file(db, user_id, profile.avatar_file_id)
            except CoachError as e:
                logger.warning(f"Avatar file {profile.avatar_file_id} of profile {profile.id} unavailable: {e}")
            else:
                if user_file.public_url:
                    return user_file.public_url
        return profile.avatar or ""

    def list_profiles(
        self,
        db: Session,
        user_id: int,
        search_name: str = "",
        page_token: str = "",
        page_size: int = 0,
    ) -> Tuple[List[Profile], str]:
        """Profiles in ascending id order, paged forward by the last id seen"""
        if page_size <= 0:
            page_size = settings.profile_page_size_default

        query = db.query(Profile).filter(Profile.user_id == user_id)
        if search_name:
            pattern = f"%{search_name}%"
            query = query.filter(or_(Profile.name.like(pattern), Profile.im_name.like(pattern)))
        last_id = parse_id(page_token, "page_token", required=False)
        if last_id:
            query = query.filter(Profile.id > last_id)

        profiles = query.order_by(Profile.id.asc()).limit(page_size).all()
        next_page_token = str(profiles[-1].id) if len(profiles) == page_size else ""
        return profiles, next_page_token

    def create_profile(self, db: Session, user_id: int, data: ProfileCreate) -> Profile:
        validate_gender(data.gender)
        profile = Profile(
            user_id=user_id,
            name=data.name,
            im_name=data.im_name,
            avatar=data.avatar,
            gender=data.gender,
            age=data.age,
            intro=data.intro,
            custom=[p.model_dump() for p in data.custom],
        )
        assign_id(profile, self.id_factory)
        db.add(profile)
        _commit(db, f"create profile for user {user_id}")
        return profile

    def get_profile(self, db: Session, user_id: int, profile_id) -> Profile:
        return self._get_owned(db, user_id, profile_id)

    def update_profile(
        self,
        db: Session,
        user_id: int,
        profile_id,
        data: ProfileUpdate,
        cond: Optional[AppConfigCond] = None,
    ) -> Profile:
        """
        Apply a partial update, then onboard demo data if the user has none.

        The update is committed before onboarding starts; an onboarding
        failure is logged and does not fail the update.

        Args:
            db: Database session
            user_id: Owner of the profile
            profile_id: Profile to update
            data: Fields to change; empty values are ignored
            cond: Client version and environment for the demo template lookup

        Returns:
            The updated profile

        Raises:
            ParamInvalidError: If the gender or an id is invalid
            NotFoundError: If the profile or the avatar file is not the user's
        """
        validate_gender(data.gender)
        profile = self._get_owned(db, user_id, profile_id)

        # Resolved before any field changes: file lookups commit URL refreshes
        avatar_file = None
        if data.avatar_file_id:
            file_id = parse_id(data.avatar_file_id, "avatar_file_id")
            if self.file_service is None:
                raise InternalError()
            avatar_file = self.file_service.get_file(db, user_id, file_id)
            if avatar_file.usage_type != FileUsage.AVATAR:
                avatar_file = self.file_service.update_usage_type(db, user_id, file_id, FileUsage.AVATAR)

        if data.name:
            profile.name = data.name
        if data.im_name:
            profile.im_name = data.im_name
        if data.gender:
            profile.gender = data.gender
        if data.age > 0:
            profile.age = data.age
        if data.intro:
            profile.intro = data.intro
        if data.custom:
            profile.custom = [p.model_dump() for p in data.custom]

        if avatar_file is not None:
            profile.avatar_file_id = avatar_file.id
            profile.avatar = avatar_file.public_url
        elif data.avatar:
            profile.avatar = data.avatar

        _commit(db, f"update profile {profile.id}")

        self._seed_demo_data_once(db, user_id, profile, cond or AppConfigCond())
        db.refresh(profile)
        return profile

    def _seed_demo_data_once(self, db: Session, user_id: int, profile: Profile, cond: AppConfigCond):
        try:
            # Row lock on the user, held until seeding commits or rolls back,
            # so concurrent updates of one user seed at most once
            db.query(User).filter(User.id == user_id).with_for_update().first()
            if has_demo_messages(db, user_id):
                db.rollback()
                return
            summary = seed_demo_data(db, user_id, profile, cond, self.id_factory)
            if not summary.cases:
                # Empty template, nothing written; release the lock
                db.rollback()
        except (CoachError, SQLAlchemyError) as e:
            db.rollback()
            logger.error(f"Demo onboarding failed for user {user_id} (gender={profile.gender!r}): {e}")

    def delete_profile(self, db: Session, user_id: int, profile_id) -> int:
        profile_id = parse_id(profile_id, "profile_id")
        deleted = db.query(Profile).filter(
            Profile.id == profile_id,
            Profile.user_id == user_id
        ).delete(synchronize_session=False)
        _commit(db, f"delete profile {profile_id}")
        return deleted

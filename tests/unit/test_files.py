"""
Unit tests for file uploads
"""

import hashlib
from datetime import datetime, timedelta, timezone
import pytest
from chatcoach.core.config import settings
from chatcoach.domain.errors import InternalError, NotFoundError, ParamInvalidError, ParamMissingError
from chatcoach.models.user import FileStatus, FileUsage, UserFile
from chatcoach.services.files import FileService, calculate_file_hash


@pytest.fixture
def service(fake_storage, id_factory):
    return FileService(fake_storage, id_factory)


class TestUpload:
    """Storing uploads"""

    def test_stores_under_user_and_hash(self, db_session, user, service, fake_storage):
        content = b"hello image"
        user_file = service.upload(db_session, user.id, "Photo.PNG", content, "image/png")

        digest = hashlib.sha256(content).hexdigest()
        assert user_file.storage_key == f"user/{user.id}/{digest}.png"
        assert fake_storage.objects[user_file.storage_key] == content
        assert user_file.file_hash == calculate_file_hash(content)
        assert user_file.file_size == len(content)
        assert user_file.public_url.startswith("https://storage.test/")
        assert user_file.usage_type == FileUsage.TEMP_UPLOAD
        assert user_file.expires_at is not None

    def test_same_content_is_reused(self, db_session, user, service, fake_storage):
        first = service.upload(db_session, user.id, "a.txt", b"same")
        second = service.upload(db_session, user.id, "b.txt", b"same")

        assert second.id == first.id
        assert len(fake_storage.objects) == 1
        assert db_session.query(UserFile).count() == 1

    def test_deleted_file_is_not_reused(self, db_session, user, service):
        first = service.upload(db_session, user.id, "a.txt", b"same")
        first.status = FileStatus.DELETED
        db_session.commit()

        second = service.upload(db_session, user.id, "a.txt", b"same")
        assert second.id != first.id

    def test_avatar_never_expires(self, db_session, user, service):
        user_file = service.upload(db_session, user.id, "me.jpg", b"face", usage_type=FileUsage.AVATAR)
        assert user_file.expires_at is None
        assert f"expires={settings.avatar_url_ttl_seconds}" in user_file.public_url

    @pytest.mark.parametrize("content,usage,error", [
        (b"", FileUsage.TEMP_UPLOAD, ParamMissingError),
        (b"x", "wallpaper", ParamInvalidError),
    ])
    def test_rejected_uploads(self, db_session, user, service, content, usage, error):
        with pytest.raises(error):
            service.upload(db_session, user.id, "f.bin", content, usage_type=usage)

    def test_too_large(self, db_session, user, service, monkeypatch):
        monkeypatch.setattr(settings, "max_upload_mb", 0)
        with pytest.raises(ParamInvalidError):
            service.upload(db_session, user.id, "f.bin", b"x")

    def test_storage_failure(self, db_session, user, service, fake_storage):
        fake_storage.fail = True
        with pytest.raises(InternalError):
            service.upload(db_session, user.id, "f.bin", b"x")
        assert db_session.query(UserFile).count() == 0


class TestGetFile:
    """Lookup and URL refresh"""

    def test_valid_url_is_kept(self, db_session, user, service, fake_storage):
        uploaded = service.upload(db_session, user.id, "a.txt", b"data")
        url = uploaded.public_url

        assert service.get_file(db_session, user.id, uploaded.id).public_url == url
        assert len(fake_storage.signed) == 1

    def test_expired_url_is_resigned(self, db_session, user, service, fake_storage):
        uploaded = service.upload(db_session, user.id, "a.txt", b"data")
        old_url = uploaded.public_url
        uploaded.public_expire = datetime.now(timezone.utc) - timedelta(minutes=1)
        db_session.commit()

        refreshed = service.get_file(db_session, user.id, uploaded.id)

        assert refreshed.public_url != old_url
        assert len(fake_storage.signed) == 2

    def test_other_users_file(self, db_session, user, other_user, service):
        uploaded = service.upload(db_session, user.id, "a.txt", b"data")
        with pytest.raises(NotFoundError):
            service.get_file(db_session, other_user.id, uploaded.id)


class TestUpdateUsageType:
    """Usage change moves the expiry"""

    def test_becoming_avatar_clears_expiry(self, db_session, user, service):
        uploaded = service.upload(db_session, user.id, "a.png", b"img")
        updated = service.update_usage_type(db_session, user.id, uploaded.id, FileUsage.AVATAR)
        assert updated.usage_type == FileUsage.AVATAR
        assert updated.expires_at is None

    def test_chat_image_expires_later(self, db_session, user, service):
        uploaded = service.upload(db_session, user.id, "a.png", b"img", usage_type=FileUsage.AVATAR)
        updated = service.update_usage_type(db_session, user.id, uploaded.id, FileUsage.CHAT_IMAGE)
        expires_at = updated.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        assert expires_at > datetime.now(timezone.utc) + timedelta(days=29)

    def test_unknown_usage(self, db_session, user, service):
        uploaded = service.upload(db_session, user.id, "a.png", b"img")
        with pytest.raises(ParamInvalidError):
            service.update_usage_type(db_session, user.id, uploaded.id, "poster")

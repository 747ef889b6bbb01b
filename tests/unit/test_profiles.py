"""
Unit tests for profiles and chat sessions
"""

import pytest
from chatcoach.domain.errors import InternalError, NotFoundError, ParamInvalidError
from chatcoach.models.chat_history import ChatMessage, ChatSession, DEMO_TAG
from chatcoach.models.user import FileUsage, Profile
from chatcoach.schemas.profile import ProfileCreate, ProfileUpdate, PropertySchema
from chatcoach.services.chat_sessions import ChatSessionService
from chatcoach.services.files import FileService
from chatcoach.services.profiles import ProfileService


@pytest.fixture
def file_service(fake_storage, id_factory):
    return FileService(fake_storage, id_factory)


@pytest.fixture
def profile_service(file_service, id_factory):
    return ProfileService(file_service, id_factory)


class TestProfileService:
    """Profile CRUD"""

    def test_create_and_get(self, db_session, user, profile_service):
        created = profile_service.create_profile(db_session, user.id, ProfileCreate(
            name="Carol", gender="female", age=30, custom=[PropertySchema(name="Job", value="Pilot")]
        ))

        fetched = profile_service.get_profile(db_session, user.id, str(created.id))
        assert fetched.name == "Carol"
        assert fetched.custom == [{"name": "Job", "value": "Pilot"}]

    def test_invalid_gender(self, db_session, user, profile_service):
        with pytest.raises(ParamInvalidError):
            profile_service.create_profile(db_session, user.id, ProfileCreate(name="X", gender="other"))

    def test_owner_scoped(self, db_session, user, other_user, profile_service):
        with pytest.raises(NotFoundError):
            profile_service.get_profile(db_session, other_user.id, user.profile_id)

    def test_list_pages_by_id(self, db_session, user, profile_service):
        for name in ["Ann", "Ben", "Cat", "Dan"]:
            profile_service.create_profile(db_session, user.id, ProfileCreate(name=name))

        page1, token1 = profile_service.list_profiles(db_session, user.id, page_size=3)
        page2, token2 = profile_service.list_profiles(db_session, user.id, page_token=token1, page_size=3)

        names = [p.name for p in page1 + page2]
        # The fixture's own profile "Alice" comes first
        assert names == ["Alice", "Ann", "Ben", "Cat", "Dan"]
        assert token1 == str(page1[-1].id)
        assert token2 == ""

    def test_list_search(self, db_session, user, profile_service):
        profile_service.create_profile(db_session, user.id, ProfileCreate(name="Daniel", im_name="dan"))
        profile_service.create_profile(db_session, user.id, ProfileCreate(name="Eve", im_name="danish_eve"))
        profile_service.create_profile(db_session, user.id, ProfileCreate(name="Frank"))

        found, _ = profile_service.list_profiles(db_session, user.id, search_name="dan")
        assert sorted(p.name for p in found) == ["Daniel", "Eve"]

    def test_delete(self, db_session, user, profile_service):
        created = profile_service.create_profile(db_session, user.id, ProfileCreate(name="Temp"))
        assert profile_service.delete_profile(db_session, user.id, created.id) == 1
        assert db_session.query(Profile).filter(Profile.id == created.id).first() is None


class TestUpdateProfile:
    """Partial update and onboarding trigger"""

    def test_partial_update_seeds_demo_once(self, db_session, user, profile_service):
        profile = profile_service.update_profile(db_session, user.id, user.profile_id, ProfileUpdate(intro="Loves cats"))

        assert profile.intro == "Loves cats"
        assert profile.name == "Alice"
        assert profile.age == 28
        demo_count = db_session.query(ChatMessage).filter(ChatMessage.user_id == user.id).count()
        assert demo_count > 0
        assert all(DEMO_TAG in m.tags for m in db_session.query(ChatMessage).all())

        profile_service.update_profile(db_session, user.id, user.profile_id, ProfileUpdate(age=29))
        assert db_session.query(ChatMessage).filter(ChatMessage.user_id == user.id).count() == demo_count

    def test_seeding_failure_does_not_fail_update(self, db_session, user, profile_service, monkeypatch):
        from chatcoach.services import profiles

        def broken_seed(*args, **kwargs):
            raise InternalError()

        monkeypatch.setattr(profiles, "seed_demo_data", broken_seed)
        profile = profile_service.update_profile(db_session, user.id, user.profile_id, ProfileUpdate(name="Alicia"))

        assert profile.name == "Alicia"
        assert db_session.query(ChatMessage).count() == 0

    @pytest.mark.parametrize("template", [
        '{"demo_cases": ["oops"]}',
        '{"demo_cases": [{"profile": {"name": "X"}, "messages": [{"role": "AI", "tags": 5}]}]}',
        '{"demo_cases": [{"profile": "nope"}]}',
    ])
    def test_malformed_configured_template_does_not_fail_update(
        self, db_session, user, profile_service, add_config, template
    ):
        add_config("demo:male", template)

        profile = profile_service.update_profile(db_session, user.id, user.profile_id, ProfileUpdate(gender="male"))

        assert profile.gender == "male"
        assert db_session.query(ChatMessage).count() == 0
        assert db_session.query(ChatSession).count() == 0

    def test_onboarding_skipped_when_demo_data_exists(self, db_session, user, profile_service, id_factory):
        from chatcoach.domain.appconfig import AppConfigCond
        from chatcoach.domain.demo_seeding import seed_demo_data

        seed_demo_data(db_session, user.id, db_session.get(Profile, user.profile_id), AppConfigCond(), id_factory)
        seeded = db_session.query(ChatMessage).count()

        profile_service.update_profile(db_session, user.id, user.profile_id, ProfileUpdate(intro="again"))

        assert db_session.query(ChatMessage).count() == seeded
        assert db_session.query(ChatSession).count() == 1

    def test_avatar_from_uploaded_file(self, db_session, user, profile_service, file_service):
        upload = file_service.upload(db_session, user.id, "me.png", b"png-bytes", "image/png")

        profile = profile_service.update_profile(
            db_session, user.id, user.profile_id, ProfileUpdate(avatar_file_id=str(upload.id))
        )

        assert profile.avatar_file_id == upload.id
        assert profile.avatar.startswith("https://storage.test/")
        db_session.refresh(upload)
        assert upload.usage_type == FileUsage.AVATAR
        assert upload.expires_at is None

    def test_avatar_file_of_someone_else(self, db_session, user, other_user, profile_service, file_service):
        upload = file_service.upload(db_session, other_user.id, "x.png", b"theirs")
        with pytest.raises(NotFoundError):
            profile_service.update_profile(
                db_session, user.id, user.profile_id, ProfileUpdate(avatar_file_id=str(upload.id))
            )


class TestChatSessionService:
    """Chat sessions with friend profiles"""

    def test_create_makes_profile_and_session(self, db_session, user, id_factory):
        service = ChatSessionService(id_factory)
        session = service.create_session(db_session, user.id, ProfileCreate(name="Gina", gender="female"))

        friend = db_session.query(Profile).filter(Profile.id == session.profile_id).one()
        assert friend.user_id == user.id
        assert friend.name == "Gina"
        assert session.name == "Gina"

    def test_create_rejects_bad_gender(self, db_session, user, id_factory):
        with pytest.raises(ParamInvalidError):
            ChatSessionService(id_factory).create_session(db_session, user.id, ProfileCreate(gender="x"))
        assert db_session.query(ChatSession).count() == 0

    def test_list_newest_first_with_profile_overlay(self, db_session, user, id_factory):
        service = ChatSessionService(id_factory)
        first = service.create_session(db_session, user.id, ProfileCreate(name="Old"))
        second = service.create_session(db_session, user.id, ProfileCreate(name="New"))
        friend = db_session.query(Profile).filter(Profile.id == first.profile_id).one()
        friend.name = "Renamed"
        friend.avatar = "https://img.test/a.png"
        db_session.commit()

        sessions = service.list_sessions(db_session, user.id)

        assert [s.id for s in sessions] == [second.id, first.id]
        assert sessions[1].name == "Renamed"
        assert sessions[1].avatar == "https://img.test/a.png"
        stored = db_session.query(ChatSession).filter(ChatSession.id == first.id).one()
        assert stored.name == "Old"

    def test_update_and_delete(self, db_session, user, other_user, chat_session, id_factory):
        service = ChatSessionService(id_factory)
        updated = service.update_session(db_session, user.id, str(chat_session.id), name="Bobby")
        assert updated.name == "Bobby"

        with pytest.raises(NotFoundError):
            service.update_session(db_session, other_user.id, chat_session.id, name="hijack")

        assert service.delete_session(db_session, other_user.id, chat_session.id) == 0
        assert service.delete_session(db_session, user.id, chat_session.id) == 1

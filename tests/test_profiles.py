"""Profile Service Tests"""

import pytest

from teamtodo.errors import InvalidInputError, RequestRejectedError
from teamtodo.profiles import ProfileService
from teamtodo.services.storage import AvatarStorage, validate_avatar

from tests.factories import create_profile, create_task

PNG = b"\x89PNG\r\n\x1a\n" + b"0" * 64


@pytest.fixture
def storage(backend, settings):
    return AvatarStorage(backend, bucket=settings.avatar_bucket, max_bytes=settings.avatar_max_bytes)


@pytest.fixture
def profiles(backend, session, storage, settings, engine):
    return ProfileService(backend, session, storage, settings, tasks=engine)


class TestProfile:
    """Tests for reading and editing the profile row"""

    @pytest.mark.asyncio
    async def test_profile_is_created_on_first_access(self, profiles, backend, signed_in):
        profile = await profiles.get_or_create_profile()

        assert profile.id == signed_in.id
        assert [row["id"] for row in backend.rows("profiles")] == [signed_in.id]

        again = await profiles.get_or_create_profile()
        assert again.id == profile.id
        assert len(backend.rows("profiles")) == 1

    @pytest.mark.asyncio
    async def test_signed_out_has_no_profile(self, profiles, backend):
        assert await profiles.get_or_create_profile() is None
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_update_profile_trims_and_clears(self, profiles, backend, signed_in):
        backend.seed("profiles", create_profile(signed_in.id, display_name="Old"))

        profile = await profiles.update_profile(display_name="  Aiko  ", bio="   ")

        assert profile.display_name == "Aiko"
        assert profile.bio is None


class TestAvatar:
    """Tests for avatar validation and upload"""

    @pytest.mark.parametrize("content_type,size", [
        ("application/pdf", 10),
        ("", 10),
        ("image/png", 5 * 1024 * 1024 + 1),
    ])
    def test_validate_avatar_rejects(self, content_type, size):
        with pytest.raises(InvalidInputError) as exc_info:
            validate_avatar(content_type, size, 5 * 1024 * 1024)
        assert exc_info.value.field == "avatar"

    def test_validate_avatar_accepts_limit(self):
        validate_avatar("image/jpeg", 5 * 1024 * 1024, 5 * 1024 * 1024)

    @pytest.mark.asyncio
    async def test_non_image_is_rejected_before_upload(self, profiles, backend, signed_in):
        with pytest.raises(InvalidInputError):
            await profiles.upload_avatar("resume.pdf", b"%PDF", "application/pdf")

        assert backend.count("upload") == 0

    @pytest.mark.asyncio
    async def test_upload_replaces_previous_avatar(self, profiles, backend, signed_in):
        old_url = backend.public_url("avatars", f"{signed_in.id}/100.png")
        backend.objects[f"avatars/{signed_in.id}/100.png"] = (b"old", "image/png")
        backend.seed("profiles", create_profile(signed_in.id, avatar_url=old_url))

        profile = await profiles.upload_avatar("Me.PNG", PNG, "image/png")

        assert f"avatars/{signed_in.id}/100.png" not in backend.objects
        (key,) = backend.objects
        assert key.startswith(f"avatars/{signed_in.id}/") and key.endswith(".png")
        assert profile.avatar_url == backend.public_url("avatars", key.split("/", 1)[1])
        assert backend.rows("profiles")[0]["avatar_url"] == profile.avatar_url

    @pytest.mark.asyncio
    async def test_failed_old_avatar_removal_does_not_block_upload(self, profiles, backend, signed_in):
        backend.seed("profiles", create_profile(signed_in.id, avatar_url="https://cdn/old.png"))
        backend.reject_next("remove", 500, "storage error")

        profile = await profiles.upload_avatar("new.jpg", PNG, "image/jpeg")

        assert profile.avatar_url.endswith(".jpg")

    @pytest.mark.asyncio
    async def test_profile_update_failure_after_upload_is_raised(self, profiles, backend, signed_in, caplog):
        backend.seed("profiles", create_profile(signed_in.id))
        backend.reject_next("update", 500, "profile update failed", target="profiles")

        with pytest.raises(RequestRejectedError):
            await profiles.upload_avatar("a.png", PNG, "image/png")

        assert len(backend.objects) == 1
        assert "Avatar uploaded" in caplog.text


class TestPassword:
    """Tests for password changes"""

    @pytest.mark.asyncio
    async def test_mismatch(self, profiles, backend, signed_in):
        with pytest.raises(InvalidInputError) as exc_info:
            await profiles.change_password("secret1", "secret2")
        assert exc_info.value.field == "confirm_password"
        assert backend.count("update_password") == 0

    @pytest.mark.asyncio
    async def test_too_short(self, profiles, backend, signed_in):
        with pytest.raises(InvalidInputError) as exc_info:
            await profiles.change_password("abc", "abc")
        assert exc_info.value.field == "new_password"

    @pytest.mark.asyncio
    async def test_change_password(self, profiles, backend, signed_in):
        await profiles.change_password("longer-secret", "longer-secret")

        assert backend.users[signed_in.email]["password"] == "longer-secret"


class TestDeleteAccount:
    """Tests for account deletion"""

    @pytest.mark.asyncio
    async def test_requires_literal_confirmation(self, profiles, backend, signed_in):
        with pytest.raises(InvalidInputError):
            await profiles.delete_account("delete")
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_deletes_everything_and_signs_out(self, profiles, backend, session, engine, signed_in):
        avatar_key = f"{signed_in.id}/1.png"
        backend.objects[f"avatars/{avatar_key}"] = (PNG, "image/png")
        backend.seed("profiles", create_profile(signed_in.id, avatar_url=backend.public_url("avatars", avatar_key)))
        backend.seed("tasks", create_task(user_id=signed_in.id), create_task(text="someone else's"))
        await engine.load()

        await profiles.delete_account("DELETE")

        assert [row["text"] for row in backend.rows("tasks")] == ["someone else's"]
        assert backend.objects == {}
        assert backend.rows("profiles") == []
        assert engine.tasks == []
        assert session.current_identity is None

    @pytest.mark.asyncio
    async def test_task_failure_is_skipped(self, profiles, backend, session, signed_in):
        backend.seed("profiles", create_profile(signed_in.id))
        backend.reject_next("delete", target="tasks")

        await profiles.delete_account("DELETE")

        assert backend.rows("profiles") == []
        assert session.current_identity is None

    @pytest.mark.asyncio
    async def test_profile_failure_stops_and_keeps_session(self, profiles, backend, session, signed_in):
        backend.seed("profiles", create_profile(signed_in.id))
        backend.reject_next("delete", target="profiles")

        with pytest.raises(RequestRejectedError):
            await profiles.delete_account("DELETE")

        assert session.current_identity is not None
        assert backend.count("sign_out") == 0

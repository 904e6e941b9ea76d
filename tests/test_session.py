"""Session Manager Tests"""

import pytest

from teamtodo.errors import NotAuthenticatedError, RequestRejectedError


class TestSessionManager:
    """Tests for identity tracking and listener notification"""

    @pytest.mark.asyncio
    async def test_listeners_fire_only_on_identity_change(self, session, user, other_user):
        seen = []

        async def listener(identity):
            seen.append(identity.id if identity else None)

        session.add_listener(listener)
        await session.set_identity(user)
        await session.set_identity(user)
        await session.set_identity(other_user)
        await session.set_identity(None)

        assert seen == [user.id, other_user.id, None]

    @pytest.mark.asyncio
    async def test_removed_listener_is_not_called(self, session, user):
        seen = []

        async def listener(identity):
            seen.append(identity)

        session.add_listener(listener)
        session.remove_listener(listener)
        await session.set_identity(user)

        assert seen == []

    @pytest.mark.asyncio
    async def test_sign_in_sets_token(self, session, backend, user):
        identity = await session.sign_in(user.email, "secret-password")

        assert identity.id == user.id
        assert session.session_active is True
        assert backend.access_token == user.access_token

    @pytest.mark.asyncio
    async def test_wrong_password(self, session, user):
        with pytest.raises(RequestRejectedError):
            await session.sign_in(user.email, "wrong")
        assert session.current_identity is None

    @pytest.mark.asyncio
    async def test_sign_out_clears_identity_even_when_remote_fails(self, session, backend, signed_in):
        backend.drop_next("sign_out")

        await session.sign_out()

        assert session.current_identity is None
        assert backend.access_token is None

    def test_require_identity(self, session):
        with pytest.raises(NotAuthenticatedError):
            session.require_identity()

"""Application Wiring Tests

Identity changes drive the task list and its change feed subscription.
"""

import logging
from unittest.mock import patch

import pytest
import pytest_asyncio

from teamtodo.app import LOG_FORMAT, TodoApp, configure_logging
from teamtodo.models.change import ChangeEvent, ChangeType

from tests.factories import create_task
from tests.fakes import settle


@pytest_asyncio.fixture
async def app(settings, backend, cache, feed):
    todo = TodoApp(settings=settings, client=backend, cache=cache, feed=feed)
    yield todo
    await todo.close()


class TestIdentityWiring:
    """Tests for sign-in/sign-out side effects"""

    @pytest.mark.asyncio
    async def test_sign_in_loads_and_subscribes(self, app, backend, user):
        backend.seed("tasks", create_task(text="existing", user_id=user.id))

        await app.session.sign_in(user.email, "secret-password")

        assert [t.text for t in app.tasks.tasks] == ["existing"]
        assert app.feed.active("tasks").channel == f"tasks:{user.id}"
        assert app.stats.stats.total_tasks == 1

    @pytest.mark.asyncio
    async def test_change_feed_triggers_reload(self, app, backend, user):
        await app.session.sign_in(user.email, "secret-password")
        backend.seed("tasks", create_task(text="from elsewhere", user_id=user.id))

        await app.feed.publish("tasks", user.id, ChangeEvent(table="tasks", type=ChangeType.INSERT))
        await settle()

        assert [t.text for t in app.tasks.tasks] == ["from elsewhere"]
        assert app.stats.stats.total_tasks == 1

    @pytest.mark.asyncio
    async def test_switching_identity_moves_subscription(self, app, backend, user, other_user):
        await app.session.sign_in(user.email, "secret-password")
        first = app.feed.active("tasks")

        await app.session.sign_in(other_user.email, "secret-password")

        assert first.pubsub.closed is True
        assert app.feed.active("tasks").channel == f"tasks:{other_user.id}"

    @pytest.mark.asyncio
    async def test_sign_out_clears_state(self, app, backend, user):
        backend.seed("tasks", create_task(user_id=user.id))
        await app.session.sign_in(user.email, "secret-password")

        await app.session.sign_out()

        assert app.tasks.tasks == []
        assert app.feed.active("tasks") is None
        assert app.stats.stats.total_tasks == 0

    @pytest.mark.asyncio
    async def test_start_restores_session(self, app, backend, user):
        identity = await app.start(user.access_token)

        assert identity.id == user.id
        assert app.session.session_active is True

    @pytest.mark.asyncio
    async def test_start_with_bad_token_stays_signed_out(self, app, backend):
        assert await app.start("expired-token") is None
        assert app.session.current_identity is None


class TestAppServices:
    """Tests for preferences and the backend probe"""

    @pytest.mark.asyncio
    async def test_dark_mode_is_persisted(self, app, cache):
        assert app.dark_mode is False

        assert app.toggle_dark_mode() is True
        assert cache.get_dark_mode() is True
        assert app.toggle_dark_mode() is False
        assert cache.get_dark_mode() is False

    @pytest.mark.asyncio
    async def test_check_backend(self, app, backend):
        assert await app.check_backend() == {"teams": True, "team_members": True}

        backend.reject_next("select", 404, 'relation "public.team_members" does not exist', target="team_members")

        assert await app.check_backend() == {"teams": True, "team_members": False}

    @pytest.mark.asyncio
    async def test_start_logs_app_name(self, app, caplog):
        with caplog.at_level(logging.INFO, logger="teamtodo.app"):
            await app.start()

        assert "Team Todo starting against https://backend.test" in caplog.text


class TestLoggingSetup:
    """Tests for root logging configuration"""

    def test_explicit_level(self):
        with patch("teamtodo.app.logging.basicConfig") as basic_config:
            configure_logging("debug")

        basic_config.assert_called_once_with(level=logging.DEBUG, format=LOG_FORMAT)

    def test_level_defaults_to_settings(self, settings):
        warning_settings = settings.model_copy(update={"log_level": "WARNING"})
        with patch("teamtodo.app.get_settings", return_value=warning_settings), \
                patch("teamtodo.app.logging.basicConfig") as basic_config:
            configure_logging()

        basic_config.assert_called_once_with(level=logging.WARNING, format=LOG_FORMAT)

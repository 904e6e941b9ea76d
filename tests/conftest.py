"""Shared test fixtures for teamtodo tests.

Everything runs in-process: the hosted backend is replaced by FakeBackend,
the change feed by FakeRedis, and the local cache uses TinyDB's
MemoryStorage unless a test asks for a file.
"""

import uuid

import pytest
import pytest_asyncio

from teamtodo.config import Settings
from teamtodo.services.cache import LocalCache
from teamtodo.services.realtime import ChangeFeed
from teamtodo.services.session import SessionManager
from teamtodo.task_sync import TaskSyncEngine
from teamtodo.team_sync import TeamService

from tests.fakes import FakeBackend, FakeRedis


# =============================================================================
# Configuration
# =============================================================================

@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment and any .env file"""
    return Settings(
        _env_file=None,
        api_url="https://backend.test",
        api_key="anon-key",
        site_origin="https://todo.example.com",
        cache_path=str(tmp_path / "cache.json"),
        invite_redirect_delay=0.0,
    )


# =============================================================================
# Collaborators
# =============================================================================

@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def cache():
    local = LocalCache(in_memory=True)
    yield local
    local.close()


@pytest.fixture
def session(backend):
    return SessionManager(backend)


@pytest.fixture
def user(backend):
    """Identity of the signed-in test user"""
    uid = str(uuid.uuid4())
    return backend.add_user(uid, f"user-{uid[:8]}@example.com")


@pytest.fixture
def other_user(backend):
    uid = str(uuid.uuid4())
    return backend.add_user(uid, f"other-{uid[:8]}@example.com")


@pytest_asyncio.fixture
async def signed_in(session, user):
    await session.set_identity(user)
    return user


@pytest.fixture
def engine(backend, session, cache):
    return TaskSyncEngine(backend, session, cache)


@pytest.fixture
def teams(backend, session, settings):
    return TeamService(backend, session, settings)


@pytest.fixture
def redis_client():
    return FakeRedis()


@pytest_asyncio.fixture
async def feed(redis_client):
    change_feed = ChangeFeed(client=redis_client)
    yield change_feed
    await change_feed.close()

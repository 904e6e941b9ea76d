"""
Team Todo client core

Composition root: builds the collaborators from settings and wires the
identity, task sync and change feed together. No module-level client exists;
everything hangs off one TodoApp instance.
"""
import logging
from typing import Optional

from redis.exceptions import RedisError

from .config import Settings, get_settings
from .errors import RemoteError
from .models.profile import Identity
from .profiles import ProfileService
from .services.cache import LocalCache
from .services.realtime import ChangeFeed
from .services.remote import BackendClient
from .services.session import SessionManager
from .services.storage import AvatarStorage
from .stats import StatsAggregator
from .task_sync import TABLE as TASKS_TABLE
from .task_sync import TaskSyncEngine
from .team_sync import MEMBERS, TEAMS, TeamService

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

REQUIRED_TABLES = (TEAMS, MEMBERS)


def configure_logging(level: Optional[str] = None):
    """Root logging setup; the level defaults to `Settings.log_level`"""
    level = level or get_settings().log_level
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )


class TodoApp:
    """One running client: session, tasks, stats, teams and profile"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[BackendClient] = None,
        cache: Optional[LocalCache] = None,
        feed: Optional[ChangeFeed] = None,
    ):
        self.settings = settings or get_settings()
        self.client = client or BackendClient.from_settings(self.settings)
        self.cache = cache or LocalCache(self.settings.cache_path)
        self.feed = feed or ChangeFeed(self.settings.redis_url)

        self.session = SessionManager(self.client)
        self.tasks = TaskSyncEngine(self.client, self.session, self.cache)
        self.stats = StatsAggregator(self.tasks, week_start=self.settings.week_start)
        self.teams = TeamService(self.client, self.session, self.settings)
        self.avatars = AvatarStorage(
            self.client,
            bucket=self.settings.avatar_bucket,
            max_bytes=self.settings.avatar_max_bytes,
        )
        self.profiles = ProfileService(
            self.client, self.session, self.avatars, self.settings, tasks=self.tasks
        )

        self.dark_mode = self.cache.get_dark_mode()
        self.session.add_listener(self._on_identity_changed)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _on_identity_changed(self, identity: Optional[Identity]):
        await self.feed.unsubscribe_name(TASKS_TABLE)
        await self.tasks.load()
        if identity is None:
            return

        try:
            await self.feed.subscribe(TASKS_TABLE, identity.id, self.tasks.on_remote_change)
        except (RedisError, OSError) as e:
            logger.warning(f"Change feed unavailable, live updates disabled: {e}")

    async def start(self, access_token: Optional[str] = None) -> Optional[Identity]:
        """Restore a stored session, or load the signed-out state"""
        logger.info(f"{self.settings.app_name} starting against {self.settings.api_url}")
        if access_token:
            return await self.session.restore(access_token)
        await self.tasks.load()
        return None

    def toggle_dark_mode(self) -> bool:
        self.dark_mode = not self.dark_mode
        self.cache.set_dark_mode(self.dark_mode)
        return self.dark_mode

    async def check_backend(self) -> dict:
        """Probe the team tables; maps table name to reachable/missing"""
        results = {}
        for table in REQUIRED_TABLES:
            try:
                await self.client.select(table, limit=1)
                results[table] = True
            except RemoteError as e:
                logger.warning(f"Table check failed for {table}: {e}")
                results[table] = False

        if not all(results.values()):
            missing = [t for t, ok in results.items() if not ok]
            logger.error(f"Team tables not available: {', '.join(missing)}")
        return results

    async def close(self):
        self.stats.detach()
        await self.feed.close()
        await self.client.aclose()
        self.cache.close()
        logger.info("Client closed")

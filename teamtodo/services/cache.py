"""TinyDB local cache for the task list and UI preferences"""

import logging
from pathlib import Path
from typing import Optional

from tinydb import TinyDB, Query
from tinydb.storages import MemoryStorage

logger = logging.getLogger(__name__)

PREFERENCES_DOC = "preferences"


class LocalCache:
    """Durable key/value store that survives restarts

    Holds the last-known task list (fallback when the backend is unreachable)
    and the dark-mode flag. Rows are not namespaced per identity.
    """

    def __init__(self, path: Optional[Path] = None, in_memory: bool = False):
        self.path = Path(path) if path else None
        self.in_memory = in_memory or path is None
        self.db: Optional[TinyDB] = None

    def _ensure_db(self) -> TinyDB:
        """Ensure the database exists and is open"""
        if self.db is None:
            if self.in_memory:
                self.db = TinyDB(storage=MemoryStorage)
            else:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self.db = TinyDB(str(self.path))
                logger.info(f"Local cache opened: {self.path}")
        return self.db

    @property
    def tasks(self):
        """Cached task rows, in list order"""
        return self._ensure_db().table("tasks")

    @property
    def preferences(self):
        return self._ensure_db().table("preferences")

    # =========================================================================
    # Tasks
    # =========================================================================

    def load_tasks(self) -> list:
        return [dict(row) for row in self.tasks.all()]

    def save_tasks(self, rows: list) -> None:
        """Replace the cached list with `rows`"""
        table = self.tasks
        table.truncate()
        if rows:
            table.insert_multiple(rows)
        logger.debug(f"Cached {len(rows)} tasks")

    def clear_tasks(self) -> None:
        self.tasks.truncate()

    # =========================================================================
    # Preferences
    # =========================================================================

    def get_dark_mode(self) -> bool:
        doc = self.preferences.get(Query().key == PREFERENCES_DOC)
        return bool(doc.get("dark_mode", False)) if doc else False

    def set_dark_mode(self, enabled: bool) -> None:
        self.preferences.upsert(
            {"key": PREFERENCES_DOC, "dark_mode": bool(enabled)},
            Query().key == PREFERENCES_DOC,
        )

    def close(self) -> None:
        if self.db is not None:
            self.db.close()
            self.db = None

"""
Task Sync Engine

Keeps the signed-in identity's task list in memory, applies every mutation
optimistically, and reconciles with the backend.

Failure handling:
- backend rejected the call: delete/toggle/edit roll back, add keeps the
  optimistic row; the cache mirrors the result
- backend unreachable: the optimistic state is kept and mirrored to the
  cache, to be reconciled by the next successful load
- no identity: every mutation is a no-op

Each task id carries a revision stamp. A rollback or reconciliation is only
applied while the stamp it captured is still the latest one for that task,
so in-flight calls on different tasks never clobber each other and a full
reload supersedes anything still in flight.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import ValidationError

from .errors import BackendUnavailableError, RemoteError, RequestRejectedError
from .models.change import ChangeEvent
from .models.task import TEMP_ID_PREFIX, Priority, Task
from .services.cache import LocalCache
from .services.remote import BackendClient, eq
from .services.session import SessionManager

logger = logging.getLogger(__name__)

TABLE = "tasks"

OFFLINE_MESSAGE = "You are offline. Changes are kept on this device."

TasksListener = Callable[[list], None]


def arrange_tasks(tasks: list, sort_by_priority: bool = False, hide_completed: bool = False) -> list:
    """Presentation order as (original_index, task) pairs.

    The priority sort is stable, so ties keep their insertion order.
    """
    indexed = list(enumerate(tasks))
    if sort_by_priority:
        indexed.sort(key=lambda pair: pair[1].priority.rank)
    if hide_completed:
        indexed = [pair for pair in indexed if not pair[1].completed]
    return indexed


class TaskSyncEngine:
    """Optimistic task list for one session"""

    def __init__(
        self,
        client: BackendClient,
        session: SessionManager,
        cache: LocalCache,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.client = client
        self.session = session
        self.cache = cache
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self.tasks: list[Task] = []
        self.editing_index: Optional[int] = None
        self.last_synced_at: Optional[datetime] = None
        self.offline = False
        self.error: Optional[str] = None

        self._listeners: list[TasksListener] = []
        self._revisions: dict[str, int] = {}
        self._sequence = 0
        self._last_temp_ms = 0
        self._inflight_inserts: set[str] = set()
        self._discarded: set[str] = set()
        # cached provisional rows created by another identity, keyed by id
        self._foreign_rows: dict[str, dict] = {}

    # =========================================================================
    # Observers
    # =========================================================================

    def add_listener(self, listener: TasksListener):
        self._listeners.append(listener)

    def remove_listener(self, listener: TasksListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _set_tasks(self, tasks: list):
        self.tasks = tasks
        for listener in list(self._listeners):
            listener(list(tasks))

    # =========================================================================
    # Bookkeeping
    # =========================================================================

    def _bump(self, task_id: str) -> int:
        self._sequence += 1
        self._revisions[task_id] = self._sequence
        return self._sequence

    def _is_current(self, task_id: str, revision: int) -> bool:
        return self._revisions.get(task_id) == revision

    def _index_of(self, task_id: str) -> Optional[int]:
        for i, task in enumerate(self.tasks):
            if task.id == task_id:
                return i
        return None

    def _temp_id(self) -> str:
        ms = int(time.time() * 1000)
        if ms <= self._last_temp_ms:
            ms = self._last_temp_ms + 1
        self._last_temp_ms = ms
        return f"{TEMP_ID_PREFIX}{ms}"

    def _mirror(self):
        rows = []
        for task in self.tasks:
            row = task.to_row()
            foreign = self._foreign_rows.get(task.id)
            if foreign is not None:
                row["user_id"] = foreign.get("user_id")
            rows.append(row)
        shown = {task.id for task in self.tasks}
        rows += [row for task_id, row in self._foreign_rows.items() if task_id not in shown]
        self.cache.save_tasks(rows)

    def _mark_synced(self):
        self.last_synced_at = self._clock()
        self.offline = False
        self.error = None

    def _record_failure(self, action: str, error: RemoteError):
        if isinstance(error, BackendUnavailableError):
            logger.warning(f"Backend unreachable during {action}, keeping local state: {error}")
            self.offline = True
            self.error = OFFLINE_MESSAGE
        else:
            logger.error(f"Backend rejected {action}: {error}")
            self.error = f"Could not {action} the task: {error}"

    def _replace(self, task_id: str, task: Task) -> bool:
        index = self._index_of(task_id)
        if index is None:
            return False
        tasks = list(self.tasks)
        tasks[index] = task
        self._set_tasks(tasks)
        return True

    def _scope(self, task_id: str, owner_id: str) -> dict:
        return {"id": eq(task_id), "user_id": eq(owner_id)}

    # =========================================================================
    # Load
    # =========================================================================

    def _cached_tasks(self, owner_id: str, only_own: bool = False) -> list:
        tasks = []
        for row in self.cache.load_tasks():
            if only_own and row.get("user_id") not in (None, owner_id):
                continue
            if str(row.get("id", "")).startswith(TEMP_ID_PREFIX) and row.get("user_id") not in (None, owner_id):
                # shown to this identity, but never pushed under its id
                self._foreign_rows[row["id"]] = row
            try:
                tasks.append(Task.model_validate({**row, "user_id": owner_id}))
            except ValidationError as e:
                logger.warning(f"Skipping unreadable cached task: {e}")
        return tasks

    def _provisional_tasks(self, owner_id: str) -> list:
        """Unconfirmed tasks of `owner_id`, memory first then cache"""
        provisional: dict[str, Task] = {}
        candidates = [t for t in self.tasks if t.owner_id == owner_id and t.id not in self._foreign_rows]
        candidates += self._cached_tasks(owner_id, only_own=True)
        for task in candidates:
            if task.is_provisional and task.id not in self._discarded:
                provisional.setdefault(task.id, task)
        return list(provisional.values())

    async def load(self):
        """Replace the in-memory list with the backend's, or the cache when that fails"""
        identity = self.session.current_identity
        if identity is None:
            self.editing_index = None
            self._revisions.clear()
            self._set_tasks([])
            return

        try:
            rows = await self.client.select(
                TABLE,
                {"user_id": eq(identity.id)},
                order="created_at.asc",
            )
        except RemoteError as e:
            self._record_failure("load", e)
            self._revisions.clear()
            self._set_tasks(self._cached_tasks(identity.id))
            return

        fetched = [Task.model_validate(row) for row in rows]
        self._foreign_rows = {
            task_id: row for task_id, row in self._foreign_rows.items() if row.get("user_id") != identity.id
        }
        provisional = self._provisional_tasks(identity.id)
        pending = [t for t in provisional if t.id not in self._inflight_inserts]

        kept = {t.id for t in provisional}
        self._revisions = {tid: rev for tid, rev in self._revisions.items() if tid in kept}
        self._set_tasks(fetched + provisional)
        self._mirror()
        self._mark_synced()
        logger.info(f"Loaded {len(fetched)} tasks for {identity.id}, {len(pending)} pending")

        # claim them all now so an overlapping reload does not insert them twice
        self._inflight_inserts.update(t.id for t in pending)
        for task in pending:
            await self._push_insert(task, identity.id)

    async def on_remote_change(self, event: ChangeEvent):
        """Change feed callback; always a full reload"""
        logger.debug(f"Remote {event.type.value} on {event.table}, reloading")
        await self.load()

    # =========================================================================
    # Add
    # =========================================================================

    async def add(self, text: str, priority: Priority = Priority.MEDIUM) -> Optional[Task]:
        identity = self.session.current_identity
        if identity is None:
            return None

        text = (text or "").strip()
        if not text:
            return None

        provisional = Task(
            id=self._temp_id(),
            text=text,
            completed=False,
            priority=Priority(priority),
            owner_id=identity.id,
        )
        self._bump(provisional.id)
        self._set_tasks([*self.tasks, provisional])
        self._mirror()

        return await self._push_insert(provisional, identity.id)

    async def _push_insert(self, provisional: Task, owner_id: str) -> Task:
        """Insert a provisional task and swap in the stored row"""
        revision = self._revisions.get(provisional.id) or self._bump(provisional.id)
        self._inflight_inserts.add(provisional.id)
        try:
            row = await self.client.insert(TABLE, provisional.to_insert())
        except RemoteError as e:
            self._record_failure("add", e)
            self._discarded.discard(provisional.id)
            self._mirror()
            return provisional
        finally:
            self._inflight_inserts.discard(provisional.id)

        created = Task.model_validate(row)

        if provisional.id in self._discarded:
            # deleted locally while the insert was in flight
            self._discarded.discard(provisional.id)
            await self._delete_remote_quietly(created, owner_id)
            return created

        current_index = self._index_of(provisional.id)
        if current_index is None or self._index_of(created.id) is not None:
            # a reload already replaced the provisional row
            if current_index is not None:
                self._set_tasks([t for t in self.tasks if t.id != provisional.id])
            self._mirror()
            return created

        current = self.tasks[current_index]
        edited_meanwhile = not self._is_current(provisional.id, revision)
        if edited_meanwhile:
            created = created.model_copy(update={
                "text": current.text,
                "completed": current.completed,
                "priority": current.priority,
            })

        self._revisions.pop(provisional.id, None)
        created_revision = self._bump(created.id)
        self._replace(provisional.id, created)
        self._mirror()
        self._mark_synced()

        if edited_meanwhile:
            await self._push_update(
                created,
                {"text": created.text, "completed": created.completed, "priority": created.priority.value},
                created_revision,
                owner_id,
                previous=None,
            )
        return created

    async def _delete_remote_quietly(self, task: Task, owner_id: str):
        try:
            await self.client.delete(TABLE, self._scope(task.id, owner_id))
        except RemoteError as e:
            logger.error(f"Could not delete task {task.id} discarded during insert: {e}")

    # =========================================================================
    # Delete
    # =========================================================================

    async def delete(self, index: int) -> bool:
        identity = self.session.current_identity
        if identity is None or not 0 <= index < len(self.tasks):
            return False

        target = self.tasks[index]
        if self.editing_index == index:
            self.editing_index = None
        elif self.editing_index is not None and self.editing_index > index:
            self.editing_index -= 1

        revision = self._bump(target.id)
        self._set_tasks(self.tasks[:index] + self.tasks[index + 1:])

        if target.is_provisional:
            # nothing stored remotely yet
            self._foreign_rows.pop(target.id, None)
            if target.id in self._inflight_inserts:
                self._discarded.add(target.id)
            self._mirror()
            return True

        try:
            await self.client.delete(TABLE, self._scope(target.id, identity.id))
        except BackendUnavailableError as e:
            self._record_failure("delete", e)
            self._mirror()
            return True
        except RequestRejectedError as e:
            self._record_failure("delete", e)
            if self._is_current(target.id, revision) and self._index_of(target.id) is None:
                tasks = list(self.tasks)
                tasks.insert(min(index, len(tasks)), target)
                self._set_tasks(tasks)
            self._mirror()
            return False

        self._revisions.pop(target.id, None)
        self._mirror()
        self._mark_synced()
        return True

    # =========================================================================
    # Toggle / edit
    # =========================================================================

    def start_edit(self, index: int) -> Optional[Task]:
        if not 0 <= index < len(self.tasks):
            return None
        self.editing_index = index
        return self.tasks[index]

    def cancel_edit(self):
        self.editing_index = None

    async def toggle_completed(self, index: int) -> Optional[Task]:
        if self.session.current_identity is None or not 0 <= index < len(self.tasks):
            return None
        target = self.tasks[index]
        return await self._update(target, {"completed": not target.completed}, close_edit=False)

    async def edit(self, index: int, new_text: str, new_priority: Priority) -> Optional[Task]:
        if self.session.current_identity is None or not 0 <= index < len(self.tasks):
            return None

        text = (new_text or "").strip()
        if not text:
            return None

        target = self.tasks[index]
        return await self._update(
            target,
            {"text": text, "priority": Priority(new_priority)},
            close_edit=True,
        )

    async def _update(self, target: Task, changes: dict, close_edit: bool) -> Optional[Task]:
        identity = self.session.current_identity
        updated = target.model_copy(update=changes)

        revision = self._bump(target.id)
        self._replace(target.id, updated)

        if target.is_provisional:
            # the pending insert (or the next load) carries the new values
            if close_edit:
                self.editing_index = None
            self._mirror()
            return updated

        patch = {
            key: value.value if isinstance(value, Priority) else value
            for key, value in changes.items()
        }
        result = await self._push_update(updated, patch, revision, identity.id, previous=target)
        if close_edit:
            self.editing_index = None
        return result

    async def _push_update(
        self,
        updated: Task,
        patch: dict,
        revision: int,
        owner_id: str,
        previous: Optional[Task],
    ) -> Optional[Task]:
        try:
            rows = await self.client.update(TABLE, patch, self._scope(updated.id, owner_id))
        except BackendUnavailableError as e:
            self._record_failure("update", e)
            self._mirror()
            return updated
        except RequestRejectedError as e:
            self._record_failure("update", e)
            if previous is not None and self._is_current(updated.id, revision):
                self._replace(updated.id, previous)
            self._mirror()
            return None

        if rows and self._is_current(updated.id, revision):
            updated = Task.model_validate(rows[0])
            self._replace(updated.id, updated)
        self._mirror()
        self._mark_synced()
        return updated

    # =========================================================================
    # Account deletion
    # =========================================================================

    async def delete_all_for_owner(self):
        """Delete every task of the signed-in identity, remotely and locally"""
        identity = self.session.require_identity()
        await self.client.delete(TABLE, {"user_id": eq(identity.id)})
        self._foreign_rows.clear()
        self._revisions.clear()
        self.editing_index = None
        self._set_tasks([])
        self.cache.clear_tasks()

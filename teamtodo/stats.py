"""
Task Statistics

Dashboard aggregates derived from the in-memory task list. All calendar
boundaries are local midnights: in the timezone of an aware `now`, otherwise
in the system zone with its daylight-saving rules applied per timestamp.
"""
from datetime import date, datetime, timedelta, tzinfo
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from .models.task import Priority, Task

PRIORITY_COLORS = {
    Priority.HIGH: "#ef4444",
    Priority.MEDIUM: "#f59e0b",
    Priority.LOW: "#3b82f6",
}

SUNDAY = 6

StatsListener = Callable[["TaskStats"], None]


class PrioritySlice(BaseModel):
    name: str
    value: int
    color: str


class DayActivity(BaseModel):
    date: str
    completed: int


class TaskStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_tasks: int = Field(0, alias="totalTasks")
    completed_tasks: int = Field(0, alias="completedTasks")
    completion_rate: int = Field(0, alias="completionRate")
    this_week_completed: int = Field(0, alias="thisWeekCompleted")
    this_month_completed: int = Field(0, alias="thisMonthCompleted")
    priority_distribution: list[PrioritySlice] = Field(default_factory=list, alias="priorityDistribution")
    last_7_days_activity: list[DayActivity] = Field(default_factory=list, alias="last7DaysActivity")


def completion_rate(completed: int, total: int) -> int:
    """Percentage rounded half up; 0 for an empty list"""
    if total <= 0:
        return 0
    return (200 * completed + total) // (2 * total)


def _local_date(dt: datetime, tz: Optional[tzinfo]) -> date:
    """Calendar date of `dt` in `tz`; None means the system zone"""
    if dt.tzinfo is None:
        return dt.date()
    return dt.astimezone(tz).date()


def _day_label(day: date) -> str:
    return f"{day.month}/{day.day}"


def calculate_stats(tasks: list, now: Optional[datetime] = None, week_start: int = SUNDAY) -> TaskStats:
    if now is None:
        now = datetime.now()
    # naive `now` is system local time; a fixed offset would break across DST
    tz = now.tzinfo
    today = now.date()
    start_of_week = today - timedelta(days=(today.weekday() - week_start) % 7)
    start_of_month = today.replace(day=1)

    total = len(tasks)
    completed = [t for t in tasks if t.completed]
    completion_days = [_local_date(t.updated_at, tz) for t in completed if t.updated_at is not None]

    this_week = sum(1 for d in completion_days if d >= start_of_week)
    this_month = sum(1 for d in completion_days if d >= start_of_month)

    counts = {priority: 0 for priority in Priority}
    for task in tasks:
        counts[task.priority] += 1

    distribution = [
        PrioritySlice(name=priority.value, value=counts[priority], color=PRIORITY_COLORS[priority])
        for priority in (Priority.HIGH, Priority.MEDIUM, Priority.LOW)
    ]

    activity = []
    for offset in range(6, -1, -1):
        day = today - timedelta(days=offset)
        activity.append(DayActivity(
            date=_day_label(day),
            completed=sum(1 for d in completion_days if d == day),
        ))

    return TaskStats(
        total_tasks=total,
        completed_tasks=len(completed),
        completion_rate=completion_rate(len(completed), total),
        this_week_completed=this_week,
        this_month_completed=this_month,
        priority_distribution=distribution,
        last_7_days_activity=activity,
    )


class StatsAggregator:
    """Recomputes stats synchronously whenever the engine's list changes"""

    def __init__(
        self,
        engine,
        week_start: int = SUNDAY,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.engine = engine
        self.week_start = week_start
        self._clock = clock or datetime.now
        self._listeners: list[StatsListener] = []
        self.stats = calculate_stats(engine.tasks, now=self._clock(), week_start=week_start)
        engine.add_listener(self._on_tasks_changed)

    def add_listener(self, listener: StatsListener):
        self._listeners.append(listener)

    def _on_tasks_changed(self, tasks: list):
        self.stats = calculate_stats(tasks, now=self._clock(), week_start=self.week_start)
        for listener in list(self._listeners):
            listener(self.stats)

    def detach(self):
        self.engine.remove_listener(self._on_tasks_changed)

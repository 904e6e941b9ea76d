"""Team Todo - client-side sync, permission and stats core"""

from teamtodo.app import TodoApp, configure_logging
from teamtodo.config import Settings, get_settings
from teamtodo.permissions import Action, is_allowed
from teamtodo.profiles import ProfileService
from teamtodo.stats import StatsAggregator, TaskStats, calculate_stats
from teamtodo.task_sync import TaskSyncEngine, arrange_tasks
from teamtodo.team_sync import InvitationAcceptance, TeamService, build_invitation_link

__version__ = "1.0.0"

__all__ = [
    "Action",
    "InvitationAcceptance",
    "ProfileService",
    "Settings",
    "StatsAggregator",
    "TaskStats",
    "TaskSyncEngine",
    "TeamService",
    "TodoApp",
    "arrange_tasks",
    "build_invitation_link",
    "calculate_stats",
    "configure_logging",
    "get_settings",
    "is_allowed",
]

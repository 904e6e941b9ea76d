"""Services module - collaborators the sync engines talk to"""

from teamtodo.services.cache import LocalCache
from teamtodo.services.realtime import ChangeFeed, Subscription
from teamtodo.services.remote import BackendClient
from teamtodo.services.session import SessionManager
from teamtodo.services.storage import AvatarStorage

__all__ = [
    "AvatarStorage",
    "BackendClient",
    "ChangeFeed",
    "LocalCache",
    "SessionManager",
    "Subscription",
]

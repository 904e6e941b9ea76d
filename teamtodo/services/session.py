"""Session service - tracks the signed-in identity and notifies listeners"""

import logging
from typing import Awaitable, Callable, Optional

from teamtodo.errors import NotAuthenticatedError, RemoteError
from teamtodo.models.profile import Identity
from teamtodo.services.remote import BackendClient

logger = logging.getLogger(__name__)

IdentityListener = Callable[[Optional[Identity]], Awaitable[None]]


class SessionManager:
    """Owns the current identity for one running client

    Created at startup and passed to every engine; listeners are awaited in
    registration order whenever the identity changes.
    """

    def __init__(self, client: BackendClient):
        self.client = client
        self._identity: Optional[Identity] = None
        self._listeners: list[IdentityListener] = []

    @property
    def current_identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def session_active(self) -> bool:
        return self._identity is not None

    def require_identity(self) -> Identity:
        if self._identity is None:
            raise NotAuthenticatedError()
        return self._identity

    def add_listener(self, listener: IdentityListener):
        self._listeners.append(listener)

    def remove_listener(self, listener: IdentityListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def set_identity(self, identity: Optional[Identity]):
        previous = self._identity
        self._identity = identity
        self.client.set_access_token(identity.access_token if identity else None)

        if (previous.id if previous else None) == (identity.id if identity else None):
            return

        logger.info(f"Identity changed: {previous.id if previous else None} -> {identity.id if identity else None}")
        for listener in list(self._listeners):
            await listener(identity)

    async def sign_in(self, email: str, password: str) -> Identity:
        identity = await self.client.sign_in_with_password(email, password)
        await self.set_identity(identity)
        return identity

    async def restore(self, access_token: str) -> Optional[Identity]:
        """Re-validate a stored access token with the backend"""
        self.client.set_access_token(access_token)
        try:
            identity = await self.client.get_user()
        except RemoteError as e:
            logger.warning(f"Could not restore session: {e}")
            identity = None
        await self.set_identity(identity)
        return identity

    async def sign_out(self):
        """Sign out remotely; the local identity is cleared even if that fails"""
        try:
            await self.client.sign_out()
        except RemoteError as e:
            logger.error(f"Sign out error: {e}")
        finally:
            await self.set_identity(None)

"""
Profiles

Per-identity profile row, avatar, password and account deletion.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from .config import Settings
from .errors import InvalidInputError, RemoteError
from .models.profile import Profile, ProfileUpdate
from .services.remote import BackendClient, eq
from .services.session import SessionManager
from .services.storage import AvatarStorage
from .task_sync import TABLE as TASKS_TABLE
from .team_sync import validated

logger = logging.getLogger(__name__)

PROFILES = "profiles"
DELETE_CONFIRMATION = "DELETE"


class ProfileService:

    def __init__(
        self,
        client: BackendClient,
        session: SessionManager,
        storage: AvatarStorage,
        settings: Settings,
        tasks=None,
    ):
        self.client = client
        self.session = session
        self.storage = storage
        self.settings = settings
        self.tasks = tasks

    async def get_or_create_profile(self) -> Optional[Profile]:
        """Profile of the signed-in identity, created empty on first access"""
        identity = self.session.current_identity
        if identity is None:
            return None

        row = await self.client.select_one(PROFILES, {"id": eq(identity.id)})
        if row is None:
            row = await self.client.insert(PROFILES, {"id": identity.id})
            logger.info(f"Profile created for {identity.id}")
        return Profile.model_validate(row)

    async def _save(self, identity_id: str, changes: dict) -> Profile:
        changes = {**changes, "updated_at": datetime.now(timezone.utc).isoformat()}
        rows = await self.client.update(PROFILES, changes, {"id": eq(identity_id)})
        if not rows:
            row = await self.client.insert(PROFILES, {"id": identity_id, **changes})
            return Profile.model_validate(row)
        return Profile.model_validate(rows[0])

    async def update_profile(self, display_name: Optional[str] = None, bio: Optional[str] = None) -> Profile:
        data = validated(ProfileUpdate, display_name=display_name, bio=bio)
        identity = self.session.require_identity()
        profile = await self._save(identity.id, data.model_dump())
        logger.info(f"Profile updated for {identity.id}")
        return profile

    async def upload_avatar(self, filename: str, content: bytes, content_type: str) -> Profile:
        identity = self.session.require_identity()
        current = await self.get_or_create_profile()

        url = await self.storage.upload(
            identity.id,
            filename,
            content,
            content_type,
            previous_url=current.avatar_url if current else None,
        )

        try:
            return await self._save(identity.id, {"avatar_url": url})
        except RemoteError as e:
            logger.error(f"Avatar uploaded to {url} but profile update failed for {identity.id}: {e}")
            raise

    async def change_password(self, new_password: str, confirm_password: str):
        if new_password != confirm_password:
            raise InvalidInputError("confirm_password", "Passwords do not match")
        minimum = self.settings.password_min_length
        if len(new_password) < minimum:
            raise InvalidInputError("new_password", f"Password must be at least {minimum} characters")

        identity = self.session.require_identity()
        await self.client.update_password(new_password)
        logger.info(f"Password changed for {identity.id}")

    async def delete_account(self, confirmation: str):
        """Delete tasks, avatar and profile of the signed-in identity, then sign out.

        Task and avatar cleanup failures are logged and skipped. A failed
        profile delete stops the sequence and the session stays active.
        """
        if confirmation != DELETE_CONFIRMATION:
            raise InvalidInputError("confirmation", f'Type "{DELETE_CONFIRMATION}" to confirm')
        identity = self.session.require_identity()

        try:
            if self.tasks is not None:
                await self.tasks.delete_all_for_owner()
            else:
                await self.client.delete(TASKS_TABLE, {"user_id": eq(identity.id)})
        except RemoteError as e:
            logger.error(f"Task deletion failed for {identity.id}: {e}")

        try:
            row = await self.client.select_one(PROFILES, {"id": eq(identity.id)}, columns="avatar_url")
            if row and row.get("avatar_url"):
                await self.storage.remove_url(identity.id, row["avatar_url"])
        except RemoteError as e:
            logger.error(f"Avatar deletion failed for {identity.id}: {e}")

        await self.client.delete(PROFILES, {"id": eq(identity.id)})
        logger.info(f"Account data deleted for {identity.id}")

        await self.session.sign_out()

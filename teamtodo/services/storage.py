"""Avatar storage - validation and upload of profile/team images"""

import logging
import time
from typing import Optional

from teamtodo.errors import InvalidInputError, RemoteError
from teamtodo.services.remote import BackendClient

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 5 * 1024 * 1024


def validate_avatar(content_type: str, size: int, max_bytes: int = DEFAULT_MAX_BYTES):
    """Reject non-image files and files larger than `max_bytes`"""
    if not content_type or not content_type.startswith("image/"):
        raise InvalidInputError("avatar", "Please choose an image file")
    if size > max_bytes:
        raise InvalidInputError("avatar", f"File size must be {max_bytes // (1024 * 1024)}MB or less")


def _extension(filename: str) -> str:
    if "." not in filename:
        return "png"
    return filename.rsplit(".", 1)[-1].lower() or "png"


class AvatarStorage:
    """Avatar objects live under "<owner_key>/<file>" in one bucket"""

    def __init__(self, client: BackendClient, bucket: str = "avatars", max_bytes: int = DEFAULT_MAX_BYTES):
        self.client = client
        self.bucket = bucket
        self.max_bytes = max_bytes

    def object_path(self, owner_key: str, url: str) -> str:
        """Storage path of a previously published avatar URL"""
        return f"{owner_key}/{url.rstrip('/').split('/')[-1]}"

    async def remove_url(self, owner_key: str, url: str):
        await self.client.remove(self.bucket, [self.object_path(owner_key, url)])

    async def upload(
        self,
        owner_key: str,
        filename: str,
        content: bytes,
        content_type: str,
        previous_url: Optional[str] = None,
    ) -> str:
        """Upload a new avatar and return its public URL"""
        validate_avatar(content_type, len(content), self.max_bytes)

        if previous_url:
            try:
                await self.remove_url(owner_key, previous_url)
            except RemoteError as e:
                logger.warning(f"Could not remove old avatar {previous_url}: {e}")

        path = f"{owner_key}/{int(time.time() * 1000)}.{_extension(filename)}"
        await self.client.upload(self.bucket, path, content, content_type, upsert=True)
        logger.info(f"Avatar uploaded: {path}")
        return self.client.public_url(self.bucket, path)

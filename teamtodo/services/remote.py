"""Backend client - data, auth, RPC and storage calls against the hosted backend"""

import logging
from typing import Any, Optional

import httpx

from teamtodo.config import Settings
from teamtodo.errors import BackendUnavailableError, RequestRejectedError
from teamtodo.models.profile import Identity

logger = logging.getLogger(__name__)

# Timeout settings
CONNECT_TIMEOUT = 5.0
READ_TIMEOUT = 30.0

SINGLE_OBJECT = "application/vnd.pgrst.object+json"


# =============================================================================
# Filter helpers (PostgREST operator syntax)
# =============================================================================

def eq(value: Any) -> str:
    return f"eq.{value}"


def gt(value: Any) -> str:
    return f"gt.{value}"


def in_(values) -> str:
    return "in.(" + ",".join(str(v) for v in values) + ")"


def _error_message(response: httpx.Response) -> tuple[str, Optional[str]]:
    """Pull a readable message and error code out of an error response"""
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase, None

    if isinstance(payload, dict):
        message = (
            payload.get("message")
            or payload.get("error_description")
            or payload.get("msg")
            or payload.get("error")
            or response.reason_phrase
        )
        code = payload.get("code") or payload.get("error_code")
        return str(message), str(code) if code is not None else None
    return str(payload), None


class BackendClient:
    """Async client for the hosted backend

    Every call is scoped to the signed-in identity through its access token;
    the backend's row-level policies decide what that identity may touch.
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        connect_timeout: float = CONNECT_TIMEOUT,
        read_timeout: float = READ_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self._transport = transport
        self._access_token: Optional[str] = None
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "BackendClient":
        return cls(
            settings.api_url,
            settings.api_key,
            connect_timeout=settings.connect_timeout,
            read_timeout=settings.read_timeout,
            **kwargs,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    connect=self.connect_timeout,
                    read=self.read_timeout,
                    write=self.read_timeout,
                    pool=self.read_timeout
                ),
                transport=self._transport,
            )
        return self._client

    async def aclose(self):
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    def set_access_token(self, token: Optional[str]):
        self._access_token = token

    def _headers(self, extra: Optional[dict] = None) -> dict:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self._access_token or self.api_key}",
        }
        if extra:
            headers.update(extra)
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict] = None,
        json: Any = None,
        content: Optional[bytes] = None,
        headers: Optional[dict] = None,
    ) -> httpx.Response:
        """Send a request and map failures onto the error taxonomy"""
        url = f"{self.api_url}/{path.lstrip('/')}"
        logger.debug(f"{method} {url} params={params}")

        try:
            response = await self._get_client().request(
                method,
                url,
                params=params,
                json=json,
                content=content,
                headers=self._headers(headers),
            )
        except httpx.RequestError as e:
            logger.warning(f"Backend unreachable: {method} {url}: {e}")
            raise BackendUnavailableError(f"Could not connect to backend: {e}") from e

        if response.is_error:
            message, code = _error_message(response)
            logger.error(f"Backend rejected {method} {url}: {response.status_code} {message}")
            raise RequestRejectedError(response.status_code, message, code)

        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        if not response.content:
            return None
        return response.json()

    # =========================================================================
    # Data API
    # =========================================================================

    async def select(
        self,
        table: str,
        filters: Optional[dict] = None,
        columns: str = "*",
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list:
        """Select rows matching `filters`, optionally ordered (e.g. created_at.asc)"""
        params = {"select": columns, **(filters or {})}
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = str(limit)
        response = await self._request("GET", f"rest/v1/{table}", params=params)
        return self._json(response) or []

    async def select_one(self, table: str, filters: dict, columns: str = "*") -> Optional[dict]:
        """Fetch exactly one row, or None when nothing matches"""
        params = {"select": columns, **filters}
        try:
            response = await self._request(
                "GET", f"rest/v1/{table}", params=params, headers={"Accept": SINGLE_OBJECT}
            )
        except RequestRejectedError as e:
            if e.is_not_found:
                return None
            raise
        return self._json(response)

    async def insert(self, table: str, row: dict) -> dict:
        """Insert a row and return it as stored"""
        response = await self._request(
            "POST",
            f"rest/v1/{table}",
            json=[row],
            headers={"Prefer": "return=representation"},
        )
        rows = self._json(response) or []
        return rows[0] if rows else {}

    async def update(self, table: str, patch: dict, filters: dict) -> list:
        response = await self._request(
            "PATCH",
            f"rest/v1/{table}",
            params=filters,
            json=patch,
            headers={"Prefer": "return=representation"},
        )
        return self._json(response) or []

    async def delete(self, table: str, filters: dict) -> None:
        await self._request("DELETE", f"rest/v1/{table}", params=filters)

    async def rpc(self, function: str, params: Optional[dict] = None) -> Any:
        """Call a server-side procedure"""
        response = await self._request("POST", f"rest/v1/rpc/{function}", json=params or {})
        return self._json(response)

    # =========================================================================
    # Auth API
    # =========================================================================

    async def sign_in_with_password(self, email: str, password: str) -> Identity:
        response = await self._request(
            "POST",
            "auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        data = self._json(response) or {}
        user = data.get("user") or {}
        identity = Identity(
            id=user["id"],
            email=user.get("email"),
            access_token=data.get("access_token"),
        )
        self.set_access_token(identity.access_token)
        return identity

    async def get_user(self) -> Optional[Identity]:
        if not self._access_token:
            return None
        response = await self._request("GET", "auth/v1/user")
        data = self._json(response) or {}
        return Identity(id=data["id"], email=data.get("email"), access_token=self._access_token)

    async def sign_out(self) -> None:
        try:
            if self._access_token:
                await self._request("POST", "auth/v1/logout")
        finally:
            self.set_access_token(None)

    async def update_password(self, new_password: str) -> None:
        await self._request("PUT", "auth/v1/user", json={"password": new_password})

    async def reset_password_for_email(self, email: str, redirect_to: Optional[str] = None) -> None:
        params = {"redirect_to": redirect_to} if redirect_to else None
        await self._request("POST", "auth/v1/recover", params=params, json={"email": email})

    # =========================================================================
    # Storage API
    # =========================================================================

    async def upload(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str,
        upsert: bool = False,
    ) -> None:
        await self._request(
            "POST",
            f"storage/v1/object/{bucket}/{path}",
            content=content,
            headers={"Content-Type": content_type, "x-upsert": "true" if upsert else "false"},
        )

    async def remove(self, bucket: str, paths: list) -> None:
        await self._request("DELETE", f"storage/v1/object/{bucket}", json={"prefixes": paths})

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.api_url}/storage/v1/object/public/{bucket}/{path}"

"""
HTTP client for the boxsync API, used by the box.
"""

from typing import Any

import httpx

from boxsync.config import get_settings
from boxsync.errors import (
    AccessDenied,
    BoxSyncError,
    InvalidArgument,
    JobFailed,
    NotFound,
    QueueUnavailable,
)
from boxsync.observability.logging import get_logger
from boxsync.types.api import AccountResponse, JobResponse, SyncResponse

logger = get_logger(__name__)

_ERRORS_BY_STATUS: dict[int, type[BoxSyncError]] = {
    403: AccessDenied,
    404: NotFound,
    422: InvalidArgument,
    500: JobFailed,
    503: QueueUnavailable,
}


def _raise_for_status(response: httpx.Response) -> None:
    if response.is_success:
        return
    error_type = _ERRORS_BY_STATUS.get(response.status_code, BoxSyncError)
    raise error_type(f"HTTP {response.status_code} from {response.request.url.path}")


class BoxApiClient:
    """
    Async client for one box.

    Use as an async context manager, or call ``aclose()`` when done.

    Args:
        base_url: Server URL. Defaults to ``client_server_url``.
        token: Bearer token, if already known.
        transport: Optional httpx transport (e.g. ASGITransport in tests).
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.client_server_url,
            timeout=settings.client_request_timeout_seconds,
            transport=transport,
        )
        if token:
            self.set_token(token)

    async def __aenter__(self) -> "BoxApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def set_token(self, token: str) -> None:
        self._client.headers["Authorization"] = f"Bearer {token}"

    async def authenticate(self, api_key: str, box_id: str) -> str:
        """Exchange the box API key for a token and use it from now on."""
        response = await self._client.post(
            "/auth/token", json={"api_key": api_key, "box_id": box_id}
        )
        _raise_for_status(response)
        token = response.json()["access_token"]
        self.set_token(token)
        return token

    async def register_account(self, account_id: str, **fields: Any) -> AccountResponse | JobResponse:
        """
        Register a payment account. Safe to repeat with the same id.

        Returns:
            The account, or the registration status while it is pending.
        """
        response = await self._client.post("/v1/accounts", json={"id": account_id, **fields})
        return self._account_or_pending(response)

    async def get_account(self, account_id: str) -> AccountResponse | JobResponse:
        response = await self._client.get(f"/v1/accounts/{account_id}")
        return self._account_or_pending(response)

    async def verify_account(self, account_id: str) -> AccountResponse:
        response = await self._client.put(f"/v1/accounts/{account_id}/verify")
        _raise_for_status(response)
        return AccountResponse.model_validate(response.json())

    async def sync(self) -> SyncResponse:
        """Pull the box's tasks and accounts."""
        response = await self._client.get("/v1/sync")
        _raise_for_status(response)
        snapshot = SyncResponse.model_validate(response.json())
        logger.debug("Sync pulled", tasks=len(snapshot.tasks), accounts=len(snapshot.accounts))
        return snapshot

    @staticmethod
    def _account_or_pending(response: httpx.Response) -> AccountResponse | JobResponse:
        _raise_for_status(response)
        if response.status_code == 202:
            return JobResponse.model_validate(response.json())
        return AccountResponse.model_validate(response.json())

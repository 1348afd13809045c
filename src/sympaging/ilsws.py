"""
SirsiDynix Symphony web services (ILSWS) client.

Only the calls the hold pull list workflow needs: login, the branch pull list
and single-record lookups for hold records, items, bibs, calls and patrons.
Every request goes through the shared RequestGate.
"""

import logging
from typing import Any

import httpx

from .config import IlswsConfig
from .errors import AuthenticationError
from .gate import RequestGate
from .models import Session

logger = logging.getLogger(__name__)

PULL_LIST_INCLUDE_FIELDS = (
    "pullList{holdRecord{holdType,status},"
    "item{call{bib{title,author,titleControlNumber},callNumber,volumetric},"
    "barcode,currentLocation{description}}}"
)
ITEM_INCLUDE_FIELDS = "barcode,call,currentLocation{description}"
HOLD_RECORD_INCLUDE_FIELDS = "holdType,status,bib,item,patron"
BIB_INCLUDE_FIELDS = "title,author,titleControlNumber"
CALL_INCLUDE_FIELDS = "callNumber,volumetric"
PATRON_INCLUDE_FIELDS = "barcode,displayName"


class IlswsClient:
    """ILSWS client for session login and record lookups."""

    def __init__(
        self,
        config: IlswsConfig,
        gate: RequestGate,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the client.

        Args:
            config: ILSWS connection settings
            gate: Shared request gate
            http_client: Optional preconfigured httpx client (for testing)
        """
        self.config = config
        self.gate = gate
        self._http = http_client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
        )
        self._headers = {
            "sd-originating-app-id": config.originating_app_id,
            "x-sirs-clientID": config.client_id,
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    async def __aenter__(self) -> "IlswsClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        session: Session | None = None,
        params: dict[str, Any] | None = None,
        description: str,
    ) -> dict[str, Any]:
        """Send one gated request and return the decoded JSON body."""
        headers = dict(self._headers)
        if session is not None:
            headers["x-sirs-sessionToken"] = session.token

        async def send() -> dict[str, Any]:
            response = await self._http.request(method, path, params=params, headers=headers)
            response.raise_for_status()
            return response.json()

        return await self.gate.call(send, description=description)

    async def login(self, username: str, password: str) -> Session:
        """
        Log in and return a session.

        Raises:
            AuthenticationError: If the call fails or returns no token
        """
        try:
            data = await self._request(
                "POST",
                "rest/security/loginUser",
                params={"login": username, "password": password},
                description="login",
            )
        except Exception as e:
            raise AuthenticationError(f"login failed for {username}: {e}") from e

        token = data.get("sessionToken")
        if not token:
            raise AuthenticationError(f"login response for {username} carried no sessionToken")

        logger.debug(f"Logged in to ILSWS as {username}")
        return Session(token=token)

    async def get_pull_list(
        self,
        session: Session,
        branch_key: str,
        include_fields: bool = False,
    ) -> dict[str, Any]:
        """
        Get the hold item pull list for a branch.

        With include_fields the entries embed hold record, item, call and bib
        fields; otherwise they carry only record keys.
        """
        params = {"includeFields": PULL_LIST_INCLUDE_FIELDS} if include_fields else None
        return await self._request(
            "GET",
            f"circulation/holdItemPullList/key/{branch_key}",
            session=session,
            params=params,
            description=f"pull list {branch_key}",
        )

    async def get_hold_record(self, session: Session, key: str) -> dict[str, Any]:
        return await self._get_record(
            session, "circulation/holdRecord", key, HOLD_RECORD_INCLUDE_FIELDS
        )

    async def get_item(self, session: Session, key: str) -> dict[str, Any]:
        return await self._get_record(session, "catalog/item", key, ITEM_INCLUDE_FIELDS)

    async def get_bib(self, session: Session, key: str) -> dict[str, Any]:
        return await self._get_record(session, "catalog/bib", key, BIB_INCLUDE_FIELDS)

    async def get_call(self, session: Session, key: str) -> dict[str, Any]:
        return await self._get_record(session, "catalog/call", key, CALL_INCLUDE_FIELDS)

    async def get_patron(self, session: Session, key: str) -> dict[str, Any]:
        return await self._get_record(session, "user/patron", key, PATRON_INCLUDE_FIELDS)

    async def _get_record(
        self,
        session: Session,
        resource: str,
        key: str,
        include_fields: str,
    ) -> dict[str, Any]:
        return await self._request(
            "GET",
            f"{resource}/key/{key}",
            session=session,
            params={"includeFields": include_fields},
            description=f"{resource} {key}",
        )


def record_fields(record: dict[str, Any] | None) -> dict[str, Any]:
    """Return the field bag of an ILSWS record ({} when absent)."""
    if not record:
        return {}
    return record.get("fields") or {}


def record_key(record: dict[str, Any] | None) -> str | None:
    """Return the key of an ILSWS record reference."""
    if not record:
        return None
    key = record.get("key")
    return str(key) if key is not None else None

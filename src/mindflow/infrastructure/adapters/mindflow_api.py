import logging
from typing import Any

import httpx

from mindflow.domain.constants import (
    DEFAULT_API_URL,
    INTERACTIONS_PATH,
    REQUEST_TIMEOUT,
    VOCABULARY_PATH,
)
from mindflow.domain.errors import AuthError, NetworkError, ServerError, SyncError
from mindflow.domain.ports import RemoteSyncClient


class MindFlowApiClient(RemoteSyncClient):
    """Adapter for pushing records to the MindFlow backend over HTTPS."""

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        supabase_url: str | None = None,
        supabase_anon_key: str | None = None,
        timeout: float = REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.api_url = api_url.rstrip("/")
        self.supabase_url = supabase_url.rstrip("/") if supabase_url else None
        self._anon_key = supabase_anon_key
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def create_interaction(self, payload: dict[str, Any], token: str) -> str:
        url = f"{self.api_url}{INTERACTIONS_PATH}"
        data = await self._post(url, payload, self._headers(token), expected=(201,))

        interaction = data.get("interaction") if isinstance(data, dict) else None
        if not isinstance(interaction, dict) or not interaction.get("id"):
            raise ServerError(201, "response did not include an interaction id")
        return str(interaction["id"])

    async def create_vocabulary(self, payload: dict[str, Any], token: str) -> str:
        if not self.supabase_url:
            raise SyncError("Vocabulary sync is not configured (supabase_url missing)")

        url = f"{self.supabase_url}{VOCABULARY_PATH}"
        headers = self._headers(token)
        headers["Prefer"] = "return=representation"
        if self._anon_key:
            headers["apikey"] = self._anon_key
        data = await self._post(url, payload, headers, expected=(200, 201))

        # PostgREST returns the inserted rows as a list
        row = data[0] if isinstance(data, list) and data else data
        if not isinstance(row, dict) or not row.get("id"):
            raise ServerError(201, "response did not include a vocabulary id")
        return str(row["id"])

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _headers(token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    async def _post(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str],
        expected: tuple[int, ...],
    ) -> Any:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

        self.logger.debug(f"POST {url} ({len(payload)} fields)")
        try:
            resp = await self._client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request to {url} timed out") from e
        except httpx.TransportError as e:
            raise NetworkError(f"Could not reach {url}: {e}") from e

        if resp.status_code in (401, 403):
            raise AuthError(f"Authentication failed (HTTP {resp.status_code})")
        if resp.status_code not in expected:
            raise ServerError(resp.status_code, self._error_message(resp))

        try:
            return resp.json()
        except ValueError as e:
            raise ServerError(resp.status_code, "response was not valid JSON") from e

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return resp.text[:200]
        if isinstance(body, dict):
            for key in ("error", "message", "details"):
                if body.get(key):
                    return str(body[key])
        return str(body)[:200]

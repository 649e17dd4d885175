from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx

from .config import ClientSettings
from .errors import AuthenticationRequired, TransportError, provider_error_message

logger = logging.getLogger(__name__)

ROLES = {"patient", "doctor"}


class ClinicalApiClient:
    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout_seconds, connect=8.0),
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: ClientSettings,
        *,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "ClinicalApiClient":
        return cls(
            settings.api_base_url,
            token=token or settings.api_token,
            timeout_seconds=settings.timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "ClinicalApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _check_role(role: str) -> str:
        if role not in ROLES:
            raise ValueError(f"Unsupported chat role: {role}")
        return role

    async def open_chat_stream(
        self,
        role: str,
        message: str,
        session_id: str | int | None = None,
    ) -> httpx.Response:
        logger.debug("opening %s chat stream (session=%s)", role, session_id)
        request = self._client.build_request(
            "POST",
            f"/chat/{self._check_role(role)}/stream",
            json={"message": message, "session_id": session_id},
        )
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise TransportError(f"Chat stream request failed: {exc}") from exc

        if response.status_code == 401:
            await response.aclose()
            raise AuthenticationRequired()
        if response.status_code >= 400:
            await response.aread()
            detail = provider_error_message(response)
            await response.aclose()
            raise TransportError(detail, status_code=response.status_code)
        return response

    @asynccontextmanager
    async def stream_chat(
        self,
        role: str,
        message: str,
        session_id: str | int | None = None,
    ) -> AsyncIterator[httpx.Response]:
        response = await self.open_chat_stream(role, message, session_id)
        try:
            yield response
        finally:
            await response.aclose()

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc
        if response.status_code == 401:
            raise AuthenticationRequired()
        if response.status_code >= 400:
            raise TransportError(provider_error_message(response), status_code=response.status_code)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"{method} {path} returned invalid JSON.", status_code=response.status_code) from exc

    async def list_sessions(self, role: str) -> list[dict[str, Any]]:
        payload = await self.request_json("GET", f"/{self._check_role(role)}/sessions")
        if not isinstance(payload, dict):
            return []
        sessions = payload.get("sessions") or []
        return [item for item in sessions if isinstance(item, dict)]

    async def create_session(self, role: str, name: str | None = None) -> dict[str, Any]:
        payload = await self.request_json(
            "POST",
            f"/{self._check_role(role)}/sessions",
            json={"session_name": name},
        )
        if not isinstance(payload, dict):
            raise TransportError("Session create returned an unexpected payload.")
        return payload

    async def rename_session(self, role: str, session_id: str | int, name: str) -> None:
        await self.request_json(
            "PUT",
            f"/{self._check_role(role)}/sessions/{session_id}",
            json={"session_name": name},
        )

    async def delete_session(self, role: str, session_id: str | int) -> None:
        await self.request_json("DELETE", f"/{self._check_role(role)}/sessions/{session_id}")

    async def get_session_history(
        self,
        role: str,
        session_id: str | int,
        *,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        payload = await self.request_json(
            "GET",
            f"/{self._check_role(role)}/sessions/{session_id}/history",
            params={"limit": limit},
        )
        if not isinstance(payload, dict):
            return []
        messages = payload.get("messages") or []
        return [item for item in messages if isinstance(item, dict)]

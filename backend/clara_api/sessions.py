from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from .client import ClinicalApiClient
from .errors import AuthenticationRequired, ClinicalApiError

logger = logging.getLogger(__name__)


@dataclass
class ChatSession:
    session_id: str | int
    session_name: str
    message_count: int = 0
    created_at: str = ""
    last_message_at: str | None = None
    status: str | None = None
    current_memory_count: int | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ChatSession":
        return cls(
            session_id=payload["session_id"],
            session_name=str(payload.get("session_name") or ""),
            message_count=int(payload.get("message_count") or 0),
            created_at=str(payload.get("created_at") or ""),
            last_message_at=payload.get("last_message_at"),
            status=payload.get("status"),
            current_memory_count=payload.get("current_memory_count"),
        )


def _same_id(left: str | int | None, right: str | int | None) -> bool:
    if left is None or right is None:
        return False
    return str(left) == str(right)


class SessionDirectory:
    """Session list for one chat role.

    Failures are logged and reported through neutral return values so a broken
    session endpoint never interrupts the chat itself. A 401 additionally calls
    ``on_auth_required``.
    """

    def __init__(
        self,
        api: ClinicalApiClient,
        role: str,
        *,
        on_auth_required: Callable[[], None] | None = None,
    ) -> None:
        self._api = api
        self.role = role
        self._on_auth_required = on_auth_required
        self.sessions: list[ChatSession] = []
        self.current_session_id: str | int | None = None
        self.is_loading = False

    def _auth_required(self) -> None:
        logger.info("%s session request rejected; login required", self.role)
        if self._on_auth_required is not None:
            self._on_auth_required()

    def find(self, session_id: str | int) -> ChatSession | None:
        for session in self.sessions:
            if _same_id(session.session_id, session_id):
                return session
        return None

    async def fetch_sessions(self) -> list[ChatSession]:
        self.is_loading = True
        try:
            payloads = await self._api.list_sessions(self.role)
            self.sessions = [ChatSession.from_payload(item) for item in payloads if "session_id" in item]
        except AuthenticationRequired:
            self._auth_required()
        except ClinicalApiError as exc:
            logger.warning("failed to fetch %s sessions: %s", self.role, exc)
        finally:
            self.is_loading = False
        return self.sessions

    async def create_session(self, name: str | None = None) -> ChatSession | None:
        try:
            payload = await self._api.create_session(self.role, name)
        except AuthenticationRequired:
            self._auth_required()
            return None
        except ClinicalApiError as exc:
            logger.warning("failed to create %s session: %s", self.role, exc)
            return None
        if "session_id" not in payload:
            logger.warning("%s session create returned no session_id", self.role)
            return None
        session = ChatSession.from_payload(payload)
        self.sessions.insert(0, session)
        return session

    async def delete_session(self, session_id: str | int) -> bool:
        try:
            await self._api.delete_session(self.role, session_id)
        except AuthenticationRequired:
            self._auth_required()
            return False
        except ClinicalApiError as exc:
            logger.warning("failed to delete %s session %s: %s", self.role, session_id, exc)
            return False
        self.sessions = [s for s in self.sessions if not _same_id(s.session_id, session_id)]
        if _same_id(self.current_session_id, session_id):
            self.current_session_id = None
        return True

    async def rename_session(self, session_id: str | int, name: str) -> bool:
        try:
            await self._api.rename_session(self.role, session_id, name)
        except AuthenticationRequired:
            self._auth_required()
            return False
        except ClinicalApiError as exc:
            logger.warning("failed to rename %s session %s: %s", self.role, session_id, exc)
            return False
        session = self.find(session_id)
        if session is not None:
            session.session_name = name
        return True

    async def get_session_history(self, session_id: str | int, *, limit: int = 50) -> list[dict[str, Any]]:
        try:
            return await self._api.get_session_history(self.role, session_id, limit=limit)
        except AuthenticationRequired:
            self._auth_required()
        except ClinicalApiError as exc:
            logger.warning("failed to fetch history for %s session %s: %s", self.role, session_id, exc)
        return []

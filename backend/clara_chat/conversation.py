from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Mapping

import httpx

from clara_api.client import ClinicalApiClient
from clara_api.errors import AuthenticationRequired, ClinicalApiError
from clara_api.sessions import SessionDirectory

from .models import STREAM_ERROR_MESSAGE, ChatMessage, StreamSession
from .observers import ConversationObservers
from .sessions import SESSION_HEADER, derive_session_name, extract_session_id
from .stream_reader import StreamAccumulator, StreamReader

logger = logging.getLogger(__name__)

GREETINGS = {
    "patient": (
        "Hello! I'm your friendly CardioChat assistant. I'm here to provide educational information "
        "about heart health and general wellness. How are you feeling today?"
    ),
    "doctor": (
        "Hello Doctor! I'm your AI medical assistant. I can help you with medical queries, research, "
        "and clinical guidance. How can I assist you today?"
    ),
}

_HISTORY_USER_ROLES = {"user", "doctor"}


class ConversationBusy(Exception):
    pass


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return datetime.now(timezone.utc)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc)


def message_from_history(item: dict[str, Any]) -> ChatMessage:
    role = str(item.get("role") or "").strip().lower()
    sender = "user" if role in _HISTORY_USER_ROLES else "assistant"
    message = ChatMessage(
        content=str(item.get("content") or ""),
        sender=sender,
        timestamp=_parse_timestamp(item.get("timestamp")),
    )
    if item.get("message_id") is not None:
        message.id = str(item["message_id"])
    return message


class ChatConversation:
    """One chat thread against the streaming endpoint of a single role.

    At most one stream is in flight; ``send`` raises ``ConversationBusy`` while
    ``is_streaming`` is set. Every decoded chunk updates ``streaming_content``
    and the pending assistant placeholder and is published to the observers
    right away.

    The stream runs in its own task so ``cancel`` interrupts a pending read.
    ``reset`` abandons the current stream: chunks, session ids and status
    changes from an abandoned stream never reach the new state.
    """

    def __init__(
        self,
        api: ClinicalApiClient,
        role: str,
        *,
        sessions: SessionDirectory | None = None,
        greeting: str | None = None,
        session_header: str = SESSION_HEADER,
    ) -> None:
        self._api = api
        self.role = role
        self.sessions = sessions or SessionDirectory(api, role)
        self.observers = ConversationObservers()
        self._greeting = GREETINGS.get(role) if greeting is None else greeting
        self._session_header = session_header
        self._stream_task: asyncio.Task[str] | None = None
        self._background_tasks: set[asyncio.Task[None]] = set()

        self.session_id: str | int | None = None
        self.messages: list[ChatMessage] = []
        self.stream: StreamSession | None = None
        self.is_streaming = False
        self.streaming_content = ""
        self.reset()

    def reset(self, session_id: str | int | None = None) -> None:
        self.cancel()
        self.session_id = session_id
        self.stream = None
        self._stream_task = None
        self.is_streaming = False
        self.streaming_content = ""
        self.messages = [ChatMessage(content=self._greeting, sender="assistant")] if self._greeting else []
        self.observers.publish_messages(self.messages)

    def cancel(self) -> None:
        stream = self.stream
        if not self.is_streaming or stream is None or stream.closed:
            return
        stream.cancel_requested = True
        task = self._stream_task
        if task is not None and not task.done():
            task.cancel()

    def _index_of(self, message_id: str) -> int | None:
        for index, message in enumerate(self.messages):
            if message.id == message_id:
                return index
        return None

    def _replace_message(self, message_id: str, replacement: ChatMessage | None) -> None:
        index = self._index_of(message_id)
        if index is None:
            return
        if replacement is None:
            del self.messages[index]
        else:
            self.messages[index] = replacement
        self.observers.publish_messages(self.messages)

    def _on_chunk(self, stream: StreamSession, placeholder: ChatMessage, text: str) -> None:
        if self.stream is not stream:
            return
        self.streaming_content = text
        self.observers.publish_content(text)
        if self._index_of(placeholder.id) is None:
            return
        placeholder.content = text
        self.observers.publish_messages(self.messages)

    def _adopt_session(self, headers: Mapping[str, str], message: str) -> None:
        adopted = extract_session_id(headers, self.session_id, self._session_header)
        if adopted is None:
            return
        self.session_id = adopted
        self.sessions.current_session_id = adopted
        task = asyncio.create_task(self._rename_and_refresh(adopted, derive_session_name(message)))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _rename_and_refresh(self, session_id: str | int, name: str) -> None:
        try:
            if not await self.sessions.rename_session(session_id, name):
                logger.info("could not rename new %s session %s", self.role, session_id)
            await self.sessions.fetch_sessions()
        except Exception:
            logger.exception("session rename/refresh failed for %s session %s", self.role, session_id)

    async def _stream_reply(self, message: str, stream: StreamSession, reader: StreamReader) -> str:
        async with self._api.stream_chat(self.role, message, self.session_id) as response:
            if self.stream is stream:
                self._adopt_session(response.headers, message)
                stream.session_id = self.session_id
            return await reader.consume(response.aiter_bytes())

    async def drain_background_tasks(self) -> None:
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    async def send(self, message: str) -> ChatMessage | None:
        if not message.strip():
            return None
        if self.is_streaming:
            raise ConversationBusy("A response is still streaming for this conversation.")

        self.messages.append(ChatMessage(content=message, sender="user"))
        placeholder = ChatMessage.placeholder()
        self.messages.append(placeholder)
        self.is_streaming = True
        self.streaming_content = ""
        self.observers.publish_messages(self.messages)

        stream = StreamSession(session_id=self.session_id)
        self.stream = stream
        reader = StreamReader(
            StreamAccumulator(stream),
            on_chunk=lambda text: self._on_chunk(stream, placeholder, text),
            should_cancel=lambda: stream.cancel_requested,
        )
        task = asyncio.create_task(self._stream_reply(message, stream, reader))
        self._stream_task = task
        try:
            content = await task
        except asyncio.CancelledError:
            if not stream.cancel_requested:
                raise
            stream.finalize("cancelled")
            content = stream.accumulated_text
        except AuthenticationRequired:
            stream.finalize("failed")
            self._replace_message(placeholder.id, None)
            raise
        except (ClinicalApiError, httpx.HTTPError) as exc:
            logger.warning("%s chat stream failed: %s", self.role, exc)
            stream.finalize("failed")
            reply = ChatMessage(content=STREAM_ERROR_MESSAGE, sender="assistant")
            self._replace_message(placeholder.id, reply)
            return reply
        finally:
            if self.stream is stream:
                self.is_streaming = False
                self.streaming_content = ""
            if self._stream_task is task:
                self._stream_task = None

        if stream.status == "cancelled" and not content:
            self._replace_message(placeholder.id, None)
            return None
        reply = ChatMessage(content=content, sender="assistant")
        self._replace_message(placeholder.id, reply)
        return reply

    async def load_session(self, session_id: str | int) -> list[ChatMessage]:
        if self.is_streaming:
            raise ConversationBusy("Cannot switch sessions while a response is streaming.")
        history = await self.sessions.get_session_history(session_id)
        self.reset(session_id)
        self.sessions.current_session_id = session_id
        restored = [message_from_history(item) for item in history]
        if restored:
            self.messages = restored
            self.observers.publish_messages(self.messages)
        return self.messages

from __future__ import annotations

from typing import Callable

from .models import ChatMessage


ContentListener = Callable[[str], None]
MessagesListener = Callable[[list[ChatMessage]], None]


class ConversationObservers:
    def __init__(self) -> None:
        self._content_listeners: list[ContentListener] = []
        self._messages_listeners: list[MessagesListener] = []

    def add_content_listener(self, listener: ContentListener) -> None:
        self._content_listeners.append(listener)

    def add_messages_listener(self, listener: MessagesListener) -> None:
        self._messages_listeners.append(listener)

    def publish_content(self, text: str) -> None:
        for listener in self._content_listeners:
            listener(text)

    def publish_messages(self, messages: list[ChatMessage]) -> None:
        snapshot = list(messages)
        for listener in self._messages_listeners:
            listener(snapshot)

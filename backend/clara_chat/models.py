from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


STREAM_ERROR_MESSAGE = (
    "I'm sorry, but I'm unable to process your message at this time. Please try again later."
)

STREAM_STATES = {"open", "completed", "failed", "cancelled"}
TERMINAL_STREAM_STATES = {"completed", "failed", "cancelled"}

SENDERS = {"user", "assistant"}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StreamClosedError(Exception):
    pass


@dataclass
class ChatMessage:
    content: str
    sender: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=_utc_now)
    pending: bool = False

    @classmethod
    def placeholder(cls) -> "ChatMessage":
        return cls(content="", sender="assistant", id=f"temp-{uuid.uuid4().hex}", pending=True)


@dataclass
class StreamSession:
    session_id: str | None = None
    accumulated_text: str = ""
    status: str = "open"
    cancel_requested: bool = field(default=False, repr=False)

    @property
    def closed(self) -> bool:
        return self.status in TERMINAL_STREAM_STATES

    def append(self, text: str) -> str:
        if self.closed:
            raise StreamClosedError(f"Stream is already {self.status}.")
        self.accumulated_text += text
        return self.accumulated_text

    def finalize(self, status: str = "completed") -> None:
        if status not in TERMINAL_STREAM_STATES:
            raise ValueError(f"Unsupported terminal stream state: {status}")
        if self.closed:
            return
        self.status = status


@dataclass(frozen=True)
class ParsedSection:
    title: str
    original_title: str
    content: str

    def as_dict(self) -> dict[str, str]:
        return {
            "title": self.title,
            "original_title": self.original_title,
            "content": self.content,
        }


@dataclass
class DisplayGroup:
    main: list[ParsedSection] = field(default_factory=list)
    hidden: list[ParsedSection] = field(default_factory=list)
    expert: ParsedSection | None = None
    patient: ParsedSection | None = None
    confidence: ParsedSection | None = None
    conclusion: ParsedSection | None = None
    others: list[ParsedSection] = field(default_factory=list)

    def all_sections(self) -> list[ParsedSection]:
        slots = [self.expert, self.patient, self.confidence, self.conclusion]
        return [*self.main, *self.hidden, *[s for s in slots if s is not None], *self.others]

    def as_dict(self) -> dict[str, Any]:
        def _one(section: ParsedSection | None) -> dict[str, str] | None:
            return section.as_dict() if section else None

        return {
            "main": [s.as_dict() for s in self.main],
            "hidden": [s.as_dict() for s in self.hidden],
            "expert": _one(self.expert),
            "patient": _one(self.patient),
            "confidence": _one(self.confidence),
            "conclusion": _one(self.conclusion),
            "others": [s.as_dict() for s in self.others],
        }

from __future__ import annotations

from typing import Mapping

SESSION_HEADER = "X-Session-ID"
SESSION_NAME_LIMIT = 40
ELLIPSIS = "..."


def derive_session_name(message: str, limit: int = SESSION_NAME_LIMIT) -> str:
    if len(message) > limit:
        return message[:limit] + ELLIPSIS
    return message


def extract_session_id(
    headers: Mapping[str, str],
    current_session_id: str | int | None,
    header_name: str = SESSION_HEADER,
) -> str | None:
    # Only the first send of a conversation may adopt a server-assigned id.
    if current_session_id is not None:
        return None
    value = headers.get(header_name)
    if value is None:
        return None
    value = value.strip()
    return value or None

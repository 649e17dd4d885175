from __future__ import annotations

import httpx


class ClinicalApiError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationRequired(ClinicalApiError):
    def __init__(self, message: str = "Authentication required.") -> None:
        super().__init__(message, status_code=401)


class TransportError(ClinicalApiError):
    pass


def provider_error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except (ValueError, httpx.ResponseNotRead):
        payload = None
    if isinstance(payload, dict):
        for key in ("detail", "message", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()[:300]
    try:
        text = response.text.strip()
    except httpx.ResponseNotRead:
        text = ""
    return text[:300] or f"Upstream returned HTTP {response.status_code}"

from __future__ import annotations

import logging
import os
from typing import Any, Awaitable, Callable

import httpx
from fastapi import Cookie, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from clara_api import (
    ROLES,
    AuthenticationRequired,
    ClientSettings,
    ClinicalApiClient,
    ClinicalApiError,
    bootstrap_local_env,
)
from clara_chat import CLINICAL_SECTION_KEYS, EDUCATION_SECTION_KEYS, SectionLayout, parse_sections

_loaded_env_keys = bootstrap_local_env()
logging.basicConfig(level=os.getenv("CLARA_LOG_LEVEL", "INFO").upper())

logger = logging.getLogger("clara.backend")
if _loaded_env_keys:
    logger.info("loaded %d settings from local .env files: %s", len(_loaded_env_keys), ", ".join(sorted(_loaded_env_keys)))

_TAXONOMIES = {
    "clinical": CLINICAL_SECTION_KEYS,
    "education": EDUCATION_SECTION_KEYS,
}


class ChatRequest(BaseModel):
    message: str
    session_id: str | int | None = None


class SessionCreatePayload(BaseModel):
    session_name: str | None = None


class SessionRenamePayload(BaseModel):
    session_name: str


class StructureRequest(BaseModel):
    content: str = ""
    taxonomy: str = "clinical"
    expanded: bool = False


class ClaraBackend:
    def __init__(self) -> None:
        self.settings = ClientSettings.from_env()
        # Tests swap in an httpx.MockTransport here.
        self.transport: httpx.AsyncBaseTransport | None = None

    def api_client(self, token: str | None) -> ClinicalApiClient:
        return ClinicalApiClient.from_settings(self.settings, token=token, transport=self.transport)


container = ClaraBackend()
app = FastAPI(title="CLARA Chat Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=container.settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[container.settings.session_header],
)


def resolve_token(authorization: str | None, user_token: str | None) -> str | None:
    if authorization:
        raw = authorization.replace("Bearer", "", 1).strip()
        if raw:
            return raw
    if user_token and user_token.strip():
        return user_token.strip()
    return None


def _ensure_role(role: str) -> None:
    if role not in ROLES:
        raise HTTPException(status_code=404, detail=f"Unknown chat role '{role}'.")


def _upstream_http_error(exc: ClinicalApiError) -> HTTPException:
    if isinstance(exc, AuthenticationRequired):
        return HTTPException(status_code=401, detail="Authentication required.")
    if exc.status_code is not None and 400 <= exc.status_code < 500:
        return HTTPException(status_code=exc.status_code, detail=str(exc))
    return HTTPException(status_code=502, detail="Upstream clinical API request failed.")


async def _call_upstream(token: str | None, operation: Callable[[ClinicalApiClient], Awaitable[Any]]) -> Any:
    async with container.api_client(token) as api:
        try:
            return await operation(api)
        except ClinicalApiError as exc:
            logger.warning("upstream call failed: %s", exc)
            raise _upstream_http_error(exc) from exc


@app.get("/health")
def health():
    return {"status": "ok", "upstream": container.settings.api_base_url}


@app.post("/responses/structure")
def structure_response(payload: StructureRequest):
    section_keys = _TAXONOMIES.get(payload.taxonomy)
    if section_keys is None:
        raise HTTPException(status_code=400, detail="Invalid taxonomy value.")
    sections = parse_sections(payload.content, section_keys)
    layout = SectionLayout.from_sections(sections)
    layout.expanded = payload.expanded
    return {
        "sections": [section.as_dict() for section in sections],
        "layout": layout.group.as_dict(),
        "visible": [section.as_dict() for section in layout.visible_sections()],
        "has_hidden": layout.has_hidden,
    }


@app.post("/chat/{role}/stream")
async def chat_stream(
    role: str,
    payload: ChatRequest,
    authorization: str | None = Header(default=None),
    user_token: str | None = Cookie(default=None, alias="userToken"),
):
    _ensure_role(role)
    api = container.api_client(resolve_token(authorization, user_token))
    try:
        upstream = await api.open_chat_stream(role, payload.message, payload.session_id)
    except ClinicalApiError as exc:
        await api.aclose()
        logger.warning("%s chat stream rejected upstream: %s", role, exc)
        raise _upstream_http_error(exc) from exc

    async def relay():
        try:
            # Decoded body, so Content-Encoding is never forwarded.
            async for chunk in upstream.aiter_bytes():
                yield chunk
        except httpx.HTTPError as exc:
            logger.warning("%s chat stream interrupted: %s", role, exc)
            raise
        finally:
            await upstream.aclose()
            await api.aclose()

    headers = {"Cache-Control": "no-cache"}
    session_header = container.settings.session_header
    session_id = upstream.headers.get(session_header)
    if session_id:
        headers[session_header] = session_id
    media_type = upstream.headers.get("content-type") or "text/plain; charset=utf-8"
    return StreamingResponse(relay(), media_type=media_type, headers=headers)


@app.get("/{role}/sessions")
async def list_sessions(
    role: str,
    authorization: str | None = Header(default=None),
    user_token: str | None = Cookie(default=None, alias="userToken"),
):
    _ensure_role(role)
    sessions = await _call_upstream(resolve_token(authorization, user_token), lambda api: api.list_sessions(role))
    return {"sessions": sessions}


@app.post("/{role}/sessions")
async def create_session(
    role: str,
    payload: SessionCreatePayload,
    authorization: str | None = Header(default=None),
    user_token: str | None = Cookie(default=None, alias="userToken"),
):
    _ensure_role(role)
    return await _call_upstream(
        resolve_token(authorization, user_token),
        lambda api: api.create_session(role, payload.session_name),
    )


@app.put("/{role}/sessions/{session_id}")
async def rename_session(
    role: str,
    session_id: str,
    payload: SessionRenamePayload,
    authorization: str | None = Header(default=None),
    user_token: str | None = Cookie(default=None, alias="userToken"),
):
    _ensure_role(role)
    name = payload.session_name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Session name must not be empty.")
    await _call_upstream(
        resolve_token(authorization, user_token),
        lambda api: api.rename_session(role, session_id, name),
    )
    return {"ok": True, "session_id": session_id, "session_name": name}


@app.delete("/{role}/sessions/{session_id}")
async def delete_session(
    role: str,
    session_id: str,
    authorization: str | None = Header(default=None),
    user_token: str | None = Cookie(default=None, alias="userToken"),
):
    _ensure_role(role)
    await _call_upstream(
        resolve_token(authorization, user_token),
        lambda api: api.delete_session(role, session_id),
    )
    return {"ok": True}


@app.get("/{role}/sessions/{session_id}/history")
async def session_history(
    role: str,
    session_id: str,
    limit: int = 50,
    authorization: str | None = Header(default=None),
    user_token: str | None = Cookie(default=None, alias="userToken"),
):
    _ensure_role(role)
    messages = await _call_upstream(
        resolve_token(authorization, user_token),
        lambda api: api.get_session_history(role, session_id, limit=max(1, min(limit, 200))),
    )
    return {"messages": messages}

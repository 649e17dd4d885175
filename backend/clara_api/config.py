from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

_ENV_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

DEFAULT_API_BASE_URL = "http://localhost:8000"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_SESSION_HEADER = "X-Session-ID"


def load_local_env_file(path: Path) -> list[str]:
    """Copy KEY=value lines from a dotenv file into os.environ.

    Variables already set in the environment win. Returns the keys this call set.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        return []
    loaded: list[str] = []
    for raw in text.splitlines():
        key, sep, value = raw.strip().partition("=")
        key = key.removeprefix("export ").strip()
        if not sep or not _ENV_KEY_RE.fullmatch(key) or key in os.environ:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        os.environ[key] = value
        loaded.append(key)
    return loaded


def bootstrap_local_env(repo_root: Path | None = None) -> list[str]:
    root = repo_root or Path(__file__).resolve().parents[2]
    loaded: list[str] = []
    for candidate in (root / ".env", root / "backend" / ".env"):
        if candidate.is_file():
            loaded.extend(load_local_env_file(candidate))
    return loaded


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class ClientSettings:
    api_base_url: str = DEFAULT_API_BASE_URL
    api_token: str | None = None
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    session_header: str = DEFAULT_SESSION_HEADER
    allowed_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])

    @classmethod
    def from_env(cls) -> "ClientSettings":
        base_url = (os.getenv("CLARA_API_BASE_URL") or DEFAULT_API_BASE_URL).strip().rstrip("/")
        token = (os.getenv("CLARA_API_TOKEN") or "").strip() or None
        origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
        return cls(
            api_base_url=base_url,
            api_token=token,
            timeout_seconds=_env_float("CLARA_API_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
            session_header=(os.getenv("CLARA_SESSION_HEADER") or DEFAULT_SESSION_HEADER).strip(),
            allowed_origins=[origin.strip() for origin in origins if origin.strip()],
        )

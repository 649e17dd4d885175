from __future__ import annotations

import importlib
import sys
from pathlib import Path
from typing import Callable

import httpx
import pytest
from fastapi.testclient import TestClient

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from upstream_utils import UPSTREAM_BASE_URL, FakeUpstream  # noqa: E402


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def backend_module(upstream, monkeypatch):
    monkeypatch.setenv("CLARA_API_BASE_URL", UPSTREAM_BASE_URL)
    monkeypatch.delenv("CLARA_API_TOKEN", raising=False)
    monkeypatch.delenv("CLARA_SESSION_HEADER", raising=False)

    if "main" in sys.modules:
        module = importlib.reload(sys.modules["main"])
    else:
        module = importlib.import_module("main")
    module.container.transport = httpx.MockTransport(upstream.handle)
    return module


@pytest.fixture
def client(backend_module):
    with TestClient(backend_module.app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> Callable[[str], dict[str, str]]:
    def _make(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    return _make

"""Shared fixtures: a fake Opencast server replacing aiohttp.ClientSession."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import aiohttp
import pytest

SERVER_URL = "https://oc.example.org"

ANONYMOUS_ME = {
    "user": {"username": "anonymous", "name": "Anonymous"},
    "roles": ["ROLE_ANONYMOUS"],
}


def user_me(username: str) -> dict[str, Any]:
    return {
        "user": {
            "username": username,
            "name": username.title(),
            "email": f"{username}@example.org",
        },
        "roles": ["ROLE_USER", "ROLE_STUDIO"],
    }


class _DummyResponse:
    def __init__(self, status: int = 200, body: bytes = b"", reason: str = "OK"):
        self.status = status
        self.reason = reason
        self.headers: dict[str, str] = {}
        self._body = body

    async def read(self) -> bytes:
        return self._body


class _DummyRequest:
    def __init__(
        self, session: "_DummySession", outcome: _DummyResponse | BaseException
    ):
        self._session = session
        self._outcome = outcome

    async def __aenter__(self) -> _DummyResponse:
        # Let other tasks run while the request is in flight
        await asyncio.sleep(0)
        if self._session.closed:
            raise aiohttp.ClientConnectionError("Connector is closed.")
        if isinstance(self._outcome, BaseException):
            raise self._outcome
        return self._outcome

    async def __aexit__(self, *exc_info) -> bool:
        return False


class _DummySession:
    def __init__(self, server: "FakeServer", **kwargs) -> None:
        self.server = server
        self.kwargs = kwargs
        self.closed = False

    def request(self, method: str, url: str, **kwargs) -> _DummyRequest:
        self.server.calls.append((method, url, kwargs))
        return _DummyRequest(self, self.server.next_outcome(method, url))

    async def close(self) -> None:
        self.closed = True


class FakeServer:
    """Records requests and answers them from registered routes."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[_DummyResponse | BaseException]] = {}
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.sessions: list[_DummySession] = []

    def route(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        body: bytes | None = None,
        status: int = 200,
        reason: str = "OK",
        error: BaseException | None = None,
    ) -> None:
        """Queue an outcome for `method path`; the last one repeats."""
        if error is not None:
            outcome: _DummyResponse | BaseException = error
        else:
            if body is None:
                body = json.dumps(json_body).encode() if json_body is not None else b""
            outcome = _DummyResponse(status=status, body=body, reason=reason)
        self.routes.setdefault((method, path), []).append(outcome)

    def next_outcome(self, method: str, url: str) -> _DummyResponse | BaseException:
        for (route_method, path), outcomes in self.routes.items():
            if route_method == method and url.endswith("/" + path):
                return outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        return _DummyResponse(status=404, reason="Not Found")

    def session_factory(self, **kwargs) -> _DummySession:
        session = _DummySession(self, **kwargs)
        self.sessions.append(session)
        return session

    def paths(self) -> list[tuple[str, str]]:
        return [(method, url) for method, url, _ in self.calls]


@pytest.fixture
def fake_server(monkeypatch) -> FakeServer:
    server = FakeServer()
    monkeypatch.setattr(
        "studio_connect.common.opencast.aiohttp.ClientSession",
        server.session_factory,
    )
    return server


@pytest.fixture(autouse=True)
def _isolated_config_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("STUDIO_CONNECT_CONFIG_DIR", str(tmp_path / "config"))

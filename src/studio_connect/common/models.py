"""
Shared data models for the Studio Connect client.

Defines the connection state enum, credential modes and the value objects
exchanged between the connection manager and its callers.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

ANONYMOUS_USERNAME = "anonymous"

# Statuses a browser reports as an opaque redirect when not following them
REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})


class ConnectionState(Enum):
    """State of the connection to the Opencast server."""

    UNCONFIGURED = "unconfigured"  # No server URL set
    CONNECTED = "connected"  # Server reachable, no login configured
    LOGGED_IN = "logged_in"  # Server reports a real user
    NETWORK_ERROR = "network_error"  # Server unreachable
    RESPONSE_NOT_OK = "response_not_ok"  # Non-success HTTP status
    INVALID_RESPONSE = "invalid_response"  # Body is not the expected JSON
    INCORRECT_LOGIN = "incorrect_login"  # Login configured, still anonymous

    @property
    def is_error(self) -> bool:
        return self in (
            ConnectionState.NETWORK_ERROR,
            ConnectionState.RESPONSE_NOT_OK,
            ConnectionState.INVALID_RESPONSE,
            ConnectionState.INCORRECT_LOGIN,
        )


@dataclass(frozen=True)
class NoCredentials:
    """No login data is configured."""


@dataclass(frozen=True)
class ImplicitCredentials:
    """The hosting environment already holds an authenticated session."""


@dataclass(frozen=True)
class ExplicitCredentials:
    """Username and password submitted through the login endpoint."""

    username: str
    password: str = field(repr=False)


CredentialMode = NoCredentials | ImplicitCredentials | ExplicitCredentials


@dataclass(frozen=True)
class ConnectionConfig:
    """Normalized configuration of the active connection."""

    server_url: str
    workflow_id: str | None = None
    credentials: CredentialMode = field(default_factory=NoCredentials)


@dataclass(frozen=True)
class Identity:
    """User reported by the identity endpoint (`info/me.json`)."""

    username: str
    name: str = ""
    email: str = ""
    roles: tuple[str, ...] = ()
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def is_anonymous(self) -> bool:
        return self.username == ANONYMOUS_USERNAME

    @classmethod
    def from_dict(cls, data: Any) -> "Identity":
        """
        Create from the parsed `info/me.json` payload.

        Raises:
            ValueError: If the payload has no `user.username` string
        """
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        user = data.get("user")
        if not isinstance(user, dict) or not isinstance(user.get("username"), str):
            raise ValueError("missing 'user.username' field")

        roles = data.get("roles") or []
        if not isinstance(roles, list):
            raise ValueError(
                f"expected 'roles' to be a list, got {type(roles).__name__}"
            )
        return cls(
            username=user["username"],
            name=user.get("name") or "",
            email=user.get("email") or "",
            roles=tuple(str(role) for role in roles if role),
            raw=data,
        )


# Settings keys as used by the web frontend and context settings files
SETTINGS_KEY_ALIASES = {
    "serverUrl": "server_url",
    "workflowId": "workflow_id",
    "loginProvided": "login_provided",
    "loginName": "login_name",
    "loginPassword": "login_password",
}


@dataclass(frozen=True)
class OpencastSettings:
    """Opencast settings record supplied by the settings provider."""

    server_url: str | None = None
    workflow_id: str | None = None
    login_provided: bool = False
    login_name: str = ""
    login_password: str = field(default="", repr=False)

    @staticmethod
    def normalize_keys(data: Mapping[str, Any] | None) -> dict[str, Any]:
        """Rename camelCase settings keys to their snake_case field names."""
        return {
            SETTINGS_KEY_ALIASES.get(key, key): value
            for key, value in (data or {}).items()
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "OpencastSettings":
        """Create from a dict using either snake_case or camelCase keys."""
        values = {
            key: value
            for key, value in cls.normalize_keys(data).items()
            if key in cls.__dataclass_fields__
        }

        return cls(
            server_url=values.get("server_url") or None,
            workflow_id=values.get("workflow_id") or None,
            login_provided=bool(values.get("login_provided", False)),
            login_name=values.get("login_name") or "",
            login_password=values.get("login_password") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a snake_case dict for persistence."""
        return {
            "server_url": self.server_url,
            "workflow_id": self.workflow_id,
            "login_provided": self.login_provided,
            "login_name": self.login_name,
            "login_password": self.login_password,
        }


@dataclass(frozen=True)
class RawResponse:
    """HTTP response with its body fully read."""

    status: int
    reason: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def is_redirect(self) -> bool:
        return self.status in REDIRECT_STATUSES

    def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding)

    def json(self) -> Any:
        """Parse the body as JSON."""
        return json.loads(self.text())

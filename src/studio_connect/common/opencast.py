"""
Connection manager for the Opencast server.

Handles:
- Normalizing the configured server URL and credential mode
- Logging in with username and password (Spring Security form login)
- Checking the current user via `info/me.json`
- Classifying every request failure into a `ConnectionState`

Exactly one connection is modeled at a time. Callers read `state()` and
`current_identity()` after `configure()` returns.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

import aiohttp

from studio_connect.common.models import (
    ConnectionConfig,
    ConnectionState,
    CredentialMode,
    ExplicitCredentials,
    Identity,
    ImplicitCredentials,
    NoCredentials,
    OpencastSettings,
    RawResponse,
)

logger = logging.getLogger(__name__)

LOGIN_PATH = "admin_ng/j_spring_security_check"
IDENTITY_PATH = "info/me.json"


class RequestError(Exception):
    """
    Raised when a request to the Opencast server fails.

    `kind` is the error state the failure put the manager into, so callers
    can branch on it without inspecting the exception type.
    """

    def __init__(
        self,
        kind: ConnectionState,
        message: str,
        url: str,
        status: int | None = None,
        reason: str | None = None,
        cause: Exception | None = None,
    ):
        self.kind = kind
        self.message = message
        self.url = url
        self.status = status
        self.reason = reason
        self.cause = cause
        super().__init__(message)


def normalize_server_url(server_url: str) -> str:
    """Strip exactly one trailing slash from the server URL."""
    return server_url[:-1] if server_url.endswith("/") else server_url


def credentials_from_settings(settings: OpencastSettings) -> CredentialMode:
    """Derive the credential mode from a settings record."""
    if settings.login_provided:
        # Running inside an Opencast instance behind its login: the session
        # cookies are already present.
        return ImplicitCredentials()
    if settings.login_name and settings.login_password:
        return ExplicitCredentials(settings.login_name, settings.login_password)
    return NoCredentials()


class ConnectionManager:
    """
    Tracks the connection to one Opencast server.
    """

    def __init__(self, timeout: float | None = None):
        """
        Initialize an unconfigured manager.

        Args:
            timeout: Optional total timeout per request in seconds. No
                timeout is applied when omitted.
        """
        self.timeout = timeout

        self._state = ConnectionState.UNCONFIGURED
        self._config: ConnectionConfig | None = None
        self._identity: Identity | None = None

        # Cookies from login (or the hosting context) persist across sessions
        self._cookie_jar: aiohttp.CookieJar | None = None
        self._cookie_jar_loop: asyncio.AbstractEventLoop | None = None

    @classmethod
    async def create(
        cls,
        settings: OpencastSettings | Mapping[str, Any],
        timeout: float | None = None,
    ) -> "ConnectionManager":
        """Create a manager and apply the given settings."""
        manager = cls(timeout=timeout)
        await manager.configure(settings)
        logger.debug(f"Initialized Opencast connection: {manager!r}")
        return manager

    def __repr__(self) -> str:
        server = self._config.server_url if self._config else None
        return f"<ConnectionManager server={server!r} state={self._state.value}>"

    def state(self) -> ConnectionState:
        """Get the current connection state."""
        return self._state

    def current_identity(self) -> Identity | None:
        """Get the user from the last successful identity check."""
        return self._identity

    @property
    def config(self) -> ConnectionConfig | None:
        return self._config

    @property
    def server_url(self) -> str | None:
        return self._config.server_url if self._config else None

    @property
    def workflow_id(self) -> str | None:
        return self._config.workflow_id if self._config else None

    def is_login_provided(self) -> bool:
        """Check if the hosting context provides the login."""
        return self._config is not None and isinstance(
            self._config.credentials, ImplicitCredentials
        )

    async def configure(self, settings: OpencastSettings | Mapping[str, Any]) -> None:
        """
        Apply new settings and refresh the current user.

        Classified request failures are logged, not raised: `state()` already
        reflects them. Any other exception propagates.
        """
        if not isinstance(settings, OpencastSettings):
            settings = OpencastSettings.from_dict(settings)

        if not settings.server_url:
            self._state = ConnectionState.UNCONFIGURED
            self._config = None
            self._identity = None
            logger.info("Opencast connection unconfigured (no server URL)")
            return

        self._config = ConnectionConfig(
            server_url=normalize_server_url(settings.server_url),
            workflow_id=settings.workflow_id,
            credentials=credentials_from_settings(settings),
        )
        logger.info(
            f"Opencast connection configured: {self._config.server_url} "
            f"(credentials: {type(self._config.credentials).__name__})"
        )

        try:
            await self.refresh_identity()
        except RequestError as e:
            logger.error(f"Opencast request failed: {e}")

    async def refresh_identity(self) -> None:
        """
        Update the current user by checking `info/me.json`.

        Logs in first when username and password are configured; a failed
        login request propagates before the identity check is made. The state
        becomes `LOGGED_IN`, `INCORRECT_LOGIN` or `CONNECTED`.
        """
        config = self._require_config()

        # One session per refresh; overlapping refreshes never share it
        async with self._session_scope() as session:
            if isinstance(config.credentials, ExplicitCredentials):
                await self.login(session=session)

            identity = await self.fetch_identity(session=session)

        self._identity = identity
        if identity.is_anonymous:
            if isinstance(config.credentials, NoCredentials):
                self._state = ConnectionState.CONNECTED
            else:
                self._state = ConnectionState.INCORRECT_LOGIN
        else:
            self._state = ConnectionState.LOGGED_IN

        logger.info(
            f"Opencast user: {identity.username} (state: {self._state.value})"
        )

    async def login(self, session: aiohttp.ClientSession | None = None) -> None:
        """
        Log in with the configured username and password.

        The response body is ignored. Success only means the exchange
        worked; whether the credentials were accepted shows in the next
        identity check.
        """
        credentials = self._require_config().credentials
        if not isinstance(credentials, ExplicitCredentials):
            raise RuntimeError("Login requires username and password credentials")

        logger.debug(f"Logging in to Opencast as {credentials.username}")
        await self.request(
            LOGIN_PATH,
            method="POST",
            session=session,
            data={
                "j_username": credentials.username,
                "j_password": credentials.password,
                "_spring_security_remember_me": "on",
            },
        )

    async def fetch_identity(
        self, session: aiohttp.ClientSession | None = None
    ) -> Identity:
        """Request `info/me.json` and parse the user from it."""
        data = await self.json_request(IDENTITY_PATH, session=session)
        logger.debug(f"info/me.json: {data}")

        try:
            return Identity.from_dict(data)
        except ValueError as e:
            url = self._url(IDENTITY_PATH)
            self._state = ConnectionState.INVALID_RESPONSE
            raise RequestError(
                ConnectionState.INVALID_RESPONSE,
                f"invalid response (unexpected JSON) when accessing {url}: {e}",
                url=url,
                cause=e,
            ) from e

    async def json_request(
        self,
        path: str,
        method: str = "GET",
        session: aiohttp.ClientSession | None = None,
        **kwargs: Any,
    ) -> Any:
        """
        Send a request expecting a JSON response.

        Returns:
            Parsed JSON body

        Raises:
            RequestError: On any request failure or if the body is not JSON
        """
        response = await self.request(path, method=method, session=session, **kwargs)

        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            url = self._url(path)
            self._state = ConnectionState.INVALID_RESPONSE
            raise RequestError(
                ConnectionState.INVALID_RESPONSE,
                f"invalid response (invalid JSON) when accessing {url}: {e}",
                url=url,
                cause=e,
            ) from e

    async def request(
        self,
        path: str,
        method: str = "GET",
        session: aiohttp.ClientSession | None = None,
        **kwargs: Any,
    ) -> RawResponse:
        """
        Send a request to the Opencast server.

        Cookies are sent and stored; redirects are not followed. A redirect
        response is returned like a successful one. The state is only
        changed when the request fails.

        Args:
            path: Path relative to the server URL
            method: HTTP method
            session: Session to send with; a short-lived one is opened if omitted

        Raises:
            RequestError: On network errors or non-success responses
        """
        url = self._url(path)

        try:
            async with self._session_scope(session) as active:
                async with active.request(
                    method, url, allow_redirects=False, **kwargs
                ) as resp:
                    body = await resp.read()
                    response = RawResponse(
                        status=resp.status,
                        reason=resp.reason or "",
                        url=url,
                        headers=dict(resp.headers),
                        body=body,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._state = ConnectionState.NETWORK_ERROR
            raise RequestError(
                ConnectionState.NETWORK_ERROR,
                f"network error when accessing '{url}': {type(e).__name__}: {e}",
                url=url,
                cause=e,
            ) from e

        logger.debug(f"{method} {url} -> {response.status}")

        if not response.ok and not response.is_redirect:
            self._state = ConnectionState.RESPONSE_NOT_OK
            raise RequestError(
                ConnectionState.RESPONSE_NOT_OK,
                f"unexpected {response.status} {response.reason} response "
                f"when accessing {url}",
                url=url,
                status=response.status,
                reason=response.reason,
            )

        return response

    def _require_config(self) -> ConnectionConfig:
        if self._config is None:
            raise RuntimeError("Opencast connection is not configured")
        return self._config

    def _url(self, path: str) -> str:
        return f"{self._require_config().server_url}/{path.lstrip('/')}"

    def _get_cookie_jar(self) -> aiohttp.CookieJar:
        """Get the cookie jar, recreating it if the event loop changed."""
        loop = asyncio.get_running_loop()
        if self._cookie_jar is None or self._cookie_jar_loop is not loop:
            if self._cookie_jar is not None:
                logger.debug("Event loop changed, starting with a new cookie jar")
            # unsafe=True allows cookies for servers addressed by IP
            self._cookie_jar = aiohttp.CookieJar(unsafe=True)
            self._cookie_jar_loop = loop
        return self._cookie_jar

    @asynccontextmanager
    async def _session_scope(
        self, session: aiohttp.ClientSession | None = None
    ) -> AsyncIterator[aiohttp.ClientSession]:
        """Use the given session, or open one for the duration of the block."""
        if session is not None:
            yield session
            return

        session = aiohttp.ClientSession(
            cookie_jar=self._get_cookie_jar(),
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        )
        try:
            yield session
        finally:
            await session.close()

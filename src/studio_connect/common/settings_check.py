"""
Settings check for the Opencast connection.

Tests submitted Opencast settings against the server and saves them only if
the server accepts them.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from studio_connect.common.config import StudioConfig
from studio_connect.common.models import ConnectionState, OpencastSettings
from studio_connect.common.opencast import ConnectionManager

logger = logging.getLogger(__name__)


class CheckStatus(Enum):
    """Outcome of a settings check."""

    SAVED = "saved"
    ACCEPTED = "accepted"  # Valid but not persisted
    ERROR = "error"


# User-facing messages per connection state
STATE_MESSAGES: dict[ConnectionState, str] = {
    ConnectionState.UNCONFIGURED: "No Opencast server URL is configured.",
    ConnectionState.CONNECTED: "Connected to Opencast without logging in.",
    ConnectionState.LOGGED_IN: "Logged in to Opencast.",
    ConnectionState.NETWORK_ERROR: (
        "The Opencast server could not be reached. Check the server URL and "
        "your network connection."
    ),
    ConnectionState.RESPONSE_NOT_OK: (
        "The Opencast server responded with an error. Check the server URL."
    ),
    ConnectionState.INVALID_RESPONSE: (
        "The server did not respond like an Opencast server. Check the server URL."
    ),
    ConnectionState.INCORRECT_LOGIN: "Incorrect username or password.",
}

PROVIDED_LOGIN_MESSAGE = (
    "The login provided by the hosting Opencast instance is not valid. "
    "Try logging in to Opencast again."
)
LOGIN_REQUIRED_MESSAGE = "A username and password are required."


def message_for_state(state: ConnectionState, login_provided: bool = False) -> str:
    """Get the user-facing message for a connection state."""
    if state is ConnectionState.INCORRECT_LOGIN and login_provided:
        return PROVIDED_LOGIN_MESSAGE
    return STATE_MESSAGES[state]


@dataclass
class SettingsCheckResult:
    """Result of checking Opencast settings."""

    status: CheckStatus
    state: ConnectionState
    message: str
    manager: ConnectionManager

    @property
    def success(self) -> bool:
        return self.status is not CheckStatus.ERROR


async def check_settings(
    config: StudioConfig,
    data: OpencastSettings | Mapping[str, Any],
    save: bool = True,
    require_login: bool = True,
) -> SettingsCheckResult:
    """
    Check submitted Opencast settings against the server.

    The submitted values are merged over the effective settings, so fields
    not shown in a form keep their stored or context values. On success the
    submitted values are saved (if `save` is set).

    Args:
        config: Settings provider
        data: Submitted settings (only the fields the user could edit)
        save: Persist the settings on success
        require_login: Treat an anonymous connection as an error

    Returns:
        SettingsCheckResult with the manager that ran the check
    """
    if isinstance(data, OpencastSettings):
        submitted = data.to_dict()
    else:
        submitted = OpencastSettings.normalize_keys(data)

    merged = {**config.opencast_settings().to_dict(), **submitted}
    # Context values cannot be overridden by the form
    for key, value in config.context.get("opencast", {}).items():
        merged[key] = value

    manager = await ConnectionManager.create(merged, timeout=config.timeout)
    state = manager.state()
    login_provided = manager.is_login_provided()

    if state is ConnectionState.LOGGED_IN or (
        state is ConnectionState.CONNECTED and not require_login
    ):
        if save:
            if not config.save_opencast_settings(submitted):
                logger.warning("Opencast settings are valid but could not be saved")
                return SettingsCheckResult(
                    CheckStatus.ACCEPTED, state, message_for_state(state), manager
                )
            return SettingsCheckResult(
                CheckStatus.SAVED, state, message_for_state(state), manager
            )
        return SettingsCheckResult(
            CheckStatus.ACCEPTED, state, message_for_state(state), manager
        )

    if state is ConnectionState.CONNECTED:
        logger.warning("Settings check connected anonymously but a login is required")
        return SettingsCheckResult(
            CheckStatus.ERROR, state, LOGIN_REQUIRED_MESSAGE, manager
        )

    return SettingsCheckResult(
        CheckStatus.ERROR,
        state,
        message_for_state(state, login_provided=login_provided),
        manager,
    )

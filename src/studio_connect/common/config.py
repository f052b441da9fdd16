"""
Settings management for Studio Connect.

Handles loading and saving user settings from:
- Platform-specific config directories
- Context settings fixed by the hosting environment

Context settings always win over user settings and cannot be changed by the
user.

Thread/process safety:
- Uses file locking (fcntl on Linux, skipped on Windows)
- Uses atomic writes (write to temp file, then rename)
"""

import copy
import os
import platform
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from studio_connect.common.models import OpencastSettings

# File locking support (Linux/Unix only)
fcntl = None  # type: ignore[assignment]
try:
    import fcntl as _fcntl

    fcntl = _fcntl
except ImportError:
    pass

CONFIG_DIR_ENV = "STUDIO_CONNECT_CONFIG_DIR"
CONFIG_FILENAME = "studio.yaml"


def get_config_dir() -> Path:
    """
    Get platform-specific configuration directory.

    Returns:
        Path to user config directory:
        - $STUDIO_CONNECT_CONFIG_DIR if set
        - Linux: ~/.config/StudioConnect/
        - Windows: ~/Documents/StudioConnect/
        - macOS: ~/Library/Application Support/StudioConnect/
    """
    override = os.environ.get(CONFIG_DIR_ENV)
    system = platform.system()

    if override:
        config_dir = Path(override)
    elif system == "Windows":
        config_dir = Path.home() / "Documents" / "StudioConnect"
    elif system == "Darwin":  # macOS
        config_dir = Path.home() / "Library" / "Application Support" / "StudioConnect"
    else:  # Linux and others
        xdg_config = os.environ.get("XDG_CONFIG_HOME")
        if xdg_config:
            config_dir = Path(xdg_config) / "StudioConnect"
        else:
            config_dir = Path.home() / ".config" / "StudioConnect"

    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_default_config() -> dict[str, Any]:
    """Get default settings."""
    return {
        "opencast": {
            "server_url": "",
            "workflow_id": "",
            "login_provided": False,
            "login_name": "",
            "login_password": "",
        },
        "connection": {
            "timeout": None,  # Seconds per request, None for no timeout
        },
    }


class StudioConfig:
    """Settings provider backed by a YAML file."""

    def __init__(
        self,
        config_path: Path | None = None,
        context: Mapping[str, Any] | None = None,
    ):
        """
        Initialize settings.

        Args:
            config_path: Optional path to the settings file
            context: Settings fixed by the hosting environment, e.g.
                {"opencast": {"server_url": ..., "login_provided": True}}.
                Opencast keys may use camelCase.
        """
        if config_path:
            self.config_path = config_path
        else:
            self.config_path = get_config_dir() / CONFIG_FILENAME

        self.context = self._normalize_context(context or {})
        self.config = get_default_config()
        self._load()

    @staticmethod
    def _normalize_context(context: Mapping[str, Any]) -> dict[str, Any]:
        normalized = copy.deepcopy(dict(context))
        opencast = normalized.get("opencast")
        if isinstance(opencast, Mapping):
            normalized["opencast"] = OpencastSettings.normalize_keys(opencast)
        return normalized

    def _load(self) -> None:
        """Load settings from file with shared lock for thread/process safety."""
        if self.config_path.exists():
            try:
                with open(self.config_path) as f:
                    if fcntl is not None:
                        fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                    try:
                        loaded = yaml.safe_load(f) or {}
                        self._deep_merge(self.config, loaded)
                    finally:
                        if fcntl is not None:
                            fcntl.flock(f.fileno(), fcntl.LOCK_UN)
            except Exception as e:
                print(f"Warning: Could not load settings: {e}")

    def _deep_merge(self, base: dict, override: Mapping) -> None:
        """Deep merge override into base dict."""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def save(self) -> bool:
        """
        Save settings to file with exclusive lock and atomic write.

        Context settings are never written.
        """
        tmp_path = None
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)

            tmp_path = self.config_path.with_suffix(".tmp")
            with open(tmp_path, "w") as f:
                if fcntl is not None:
                    fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                try:
                    yaml.safe_dump(self.config, f, default_flow_style=False)
                finally:
                    if fcntl is not None:
                        fcntl.flock(f.fileno(), fcntl.LOCK_UN)

            # Atomic rename (overwrites existing file)
            os.replace(tmp_path, self.config_path)
            return True
        except Exception as e:
            print(f"Error saving settings: {e}")
            if tmp_path and tmp_path.exists():
                try:
                    tmp_path.unlink()
                except OSError:
                    pass
            return False

    def _read(self, root: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
        value: Any = root
        for key in keys:
            if isinstance(value, Mapping):
                value = value.get(key)
            else:
                return None
            if value is None:
                return None
        return value

    def get(self, *keys: str, default: Any = None) -> Any:
        """Get a settings value by path, context settings first."""
        value = self._read(self.context, keys)
        if value is None:
            value = self._read(self.config, keys)
        return default if value is None else value

    def set(self, *keys: str, value: Any) -> None:
        """Set a user settings value by path."""
        d = self.config
        for key in keys[:-1]:
            if key not in d:
                d[key] = {}
            d = d[key]
        d[keys[-1]] = value

    def is_configurable(self, *keys: str) -> bool:
        """Check if the user may change a value (not fixed by the context)."""
        return self._read(self.context, keys) is None

    def is_username_configurable(self) -> bool:
        return self.is_configurable("opencast", "login_name") and not self.get(
            "opencast", "login_provided", default=False
        )

    def is_password_configurable(self) -> bool:
        return self.is_configurable("opencast", "login_password") and not self.get(
            "opencast", "login_provided", default=False
        )

    @property
    def timeout(self) -> float | None:
        """Get the per-request timeout in seconds."""
        return self.get("connection", "timeout")

    def opencast_settings(self) -> OpencastSettings:
        """Get the effective Opencast settings (context over user)."""
        keys = OpencastSettings.__dataclass_fields__
        return OpencastSettings.from_dict(
            {key: self.get("opencast", key) for key in keys}
        )

    def form_values(self) -> dict[str, Any]:
        """Get the user's own Opencast settings, as shown in a settings form."""
        return dict(self.config.get("opencast", {}))

    def save_opencast_settings(
        self, data: OpencastSettings | Mapping[str, Any]
    ) -> bool:
        """Persist accepted Opencast settings; values fixed by the context are skipped."""
        if isinstance(data, OpencastSettings):
            values = data.to_dict()
        else:
            values = OpencastSettings.from_dict(data).to_dict()
            # Only keep keys that were actually submitted
            submitted = OpencastSettings.normalize_keys(data)
            values = {k: v for k, v in values.items() if k in submitted}

        for key, value in values.items():
            if self.is_configurable("opencast", key):
                self.set("opencast", key, value=value if value is not None else "")
        return self.save()

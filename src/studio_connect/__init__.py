"""
Studio Connect.

Connects a capture client to an Opencast server: login, session check and
connection state tracking.
"""

from studio_connect.common.models import ConnectionState, Identity, OpencastSettings
from studio_connect.common.opencast import ConnectionManager, RequestError
from studio_connect.common.version import get_version

__version__ = get_version()

__all__ = [
    "ConnectionManager",
    "ConnectionState",
    "Identity",
    "OpencastSettings",
    "RequestError",
    "__version__",
]

"""Core application utilities.

``dependencies`` is imported directly by the API modules since it needs the
service layer, which in turn builds on this package.
"""

from .clock import Clock, utcnow
from .config import Settings, get_settings
from .database import (
    async_session_factory,
    build_engine,
    build_session_factory,
    close_db,
    engine,
    init_db,
)
from .security import TokenPayload, create_access_token, decode_token

__all__ = [
    # Clock
    "Clock",
    "utcnow",
    # Config
    "Settings",
    "get_settings",
    # Database
    "engine",
    "async_session_factory",
    "build_engine",
    "build_session_factory",
    "init_db",
    "close_db",
    # Security
    "TokenPayload",
    "create_access_token",
    "decode_token",
]

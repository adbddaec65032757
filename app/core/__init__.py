"""Core infrastructure: config, database, cache, security, logging, errors."""

from app.core.config import Settings, get_settings
from app.core.database import Base, fetch_all, fetch_one, get_db
from app.core.logging import get_logger, request_id_ctx

__all__ = [
    "Base",
    "Settings",
    "fetch_all",
    "fetch_one",
    "get_db",
    "get_logger",
    "get_settings",
    "request_id_ctx",
]

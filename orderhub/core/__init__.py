"""
Core package containing configuration, database, security, logging and errors.
"""
from orderhub.core.config import settings
from orderhub.core.database import Base, DbSession, get_db_context, get_db_session
from orderhub.core.logging import configure_logging, get_logger
from orderhub.core.security import decrypt_token, encrypt_token

__all__ = [
    "settings",
    "Base",
    "DbSession",
    "get_db_session",
    "get_db_context",
    "configure_logging",
    "get_logger",
    "encrypt_token",
    "decrypt_token",
]

"""Database module for the dynalink service."""
from dynalink.db.base import (
    create_engine,
    create_session_factory,
    init_models,
    DatabaseHealthCheck,
)
from dynalink.db.session import get_db, db_transaction, SessionManager

__all__ = [
    "create_engine",
    "create_session_factory",
    "init_models",
    "DatabaseHealthCheck",
    "get_db",
    "db_transaction",
    "SessionManager",
]

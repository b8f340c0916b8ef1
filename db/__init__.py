"""
Database package for the state store.
Provides the SQLAlchemy engine, session management, table definitions,
repository functions and the StateGateway used by the orchestrator.
"""

from db.engine import create_db_engine, get_engine
from db.gateway import StateGateway, StoredConfig
from db.session import make_session_factory
from db.tables import create_tables, get_table, metadata

__all__ = [
    "StateGateway",
    "StoredConfig",
    "create_db_engine",
    "create_tables",
    "get_engine",
    "get_table",
    "make_session_factory",
    "metadata",
]

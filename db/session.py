"""
SQLAlchemy session management for the state store.

Factories are created per engine; nothing here touches the engine at
import time.
"""

from sqlalchemy import Engine
from sqlalchemy.orm import sessionmaker

from db.engine import get_engine


def make_session_factory(engine: Engine | None = None) -> sessionmaker:
    """
    Create a session factory bound to ``engine`` (default: the lazy singleton).

    Sessions never autocommit; StateGateway commits or rolls back each
    transaction explicitly.
    """
    return sessionmaker(bind=engine or get_engine(), autocommit=False, autoflush=False)

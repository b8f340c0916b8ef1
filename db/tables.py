"""
SQLAlchemy table definitions for the state store.

Tables are declared here and created on demand with ``create_tables``.
JSON-valued columns are stored as text so any SQL backend works.
"""

from sqlalchemy import Boolean, Column, DateTime, Engine, Integer, MetaData, String, Table, Text, func

from db.engine import get_engine
from utils.logger import get_logger

logger = get_logger(__name__)

metadata = MetaData()

engines = Table(
    "engines",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(200), nullable=False),
    Column("kind", String(32), nullable=False),
    Column("endpoint_template", Text, nullable=False),
    Column("enabled", Boolean, nullable=False, default=True),
    Column("position", Integer, nullable=False, default=0),
    Column("options", Text, nullable=False, default="{}"),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now()),
)

settings = Table(
    "settings",
    metadata,
    Column("key", String(64), primary_key=True),
    Column("value", Text, nullable=False),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now()),
)

TABLE_NAMES = ["engines", "settings"]


def create_tables(engine: Engine | None = None) -> None:
    """Create missing tables (existing tables are left untouched)."""
    engine = engine or get_engine()
    metadata.create_all(engine)
    logger.debug(f"State store tables ready: {', '.join(TABLE_NAMES)}")


def get_table(name: str) -> Table:
    """
    Raises:
        ValueError: If name is not a state store table
    """
    if name not in metadata.tables:
        raise ValueError(f"Unknown table: {name}. Valid tables: {', '.join(TABLE_NAMES)}")
    return metadata.tables[name]

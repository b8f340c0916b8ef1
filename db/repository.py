"""
Repository layer for state store operations.
CRUD functions over the declared tables using SQLAlchemy Core.

Design principles:
- Functions do NOT commit - caller commits for transaction control
- Rows are returned as plain mappings; decoding into domain objects is the
  gateway's job
- Uses SQLAlchemy Core (insert/select/update/delete) not ORM
"""

import json
from typing import Any

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.orm import Session

from db.tables import engines, settings
from models.search_models import EngineConfig
from utils.logger import get_logger

logger = get_logger(__name__)

SETTING_AI = "ai"
SETTING_PRIORITY_KEYWORDS = "priority_keywords"


def _engine_values(engine: EngineConfig) -> dict[str, Any]:
    return {
        "name": engine.name,
        "kind": engine.kind.value,
        "endpoint_template": engine.endpoint_template,
        "enabled": engine.enabled,
        "options": json.dumps(dict(engine.options), ensure_ascii=False, sort_keys=True),
    }


# ============================================================================
# ENGINES
# ============================================================================


def list_engine_rows(db: Session) -> list[dict[str, Any]]:
    """
    Return all engine rows in display order.

    Returns:
        list[dict]: Rows with id, name, kind, endpoint_template, enabled, options (raw JSON text)
    """
    stmt = select(
        engines.c.id,
        engines.c.name,
        engines.c.kind,
        engines.c.endpoint_template,
        engines.c.enabled,
        engines.c.options,
    ).order_by(engines.c.position, engines.c.id)
    return [dict(row._mapping) for row in db.execute(stmt)]


def replace_engines(db: Session, engine_list: list[EngineConfig]) -> None:
    """
    Replace the whole engine list, keeping the given order.

    Note:
        Does NOT commit. Caller must commit.
    """
    db.execute(delete(engines))
    if not engine_list:
        return
    db.execute(
        insert(engines),
        [
            {"id": engine.id, "position": position, **_engine_values(engine)}
            for position, engine in enumerate(engine_list)
        ],
    )


def upsert_engine(db: Session, engine: EngineConfig) -> bool:
    """
    Insert an engine at the end of the list or update it in place.

    Returns:
        bool: True if a new row was created

    Note:
        Does NOT commit. Caller must commit.
    """
    exists = db.execute(select(engines.c.id).where(engines.c.id == engine.id)).scalar_one_or_none()
    if exists is not None:
        db.execute(update(engines).where(engines.c.id == engine.id).values(**_engine_values(engine)))
        return False

    next_position = db.execute(select(func.coalesce(func.max(engines.c.position) + 1, 0))).scalar_one()
    db.execute(insert(engines).values(id=engine.id, position=next_position, **_engine_values(engine)))
    logger.info(f"Engine added: {engine.id}", extra={"extra_fields": {"kind": engine.kind.value}})
    return True


def delete_engine(db: Session, engine_id: str) -> bool:
    """
    Returns:
        bool: True if a row was removed

    Note:
        Does NOT commit. Caller must commit.
    """
    result = db.execute(delete(engines).where(engines.c.id == engine_id))
    return result.rowcount > 0


def set_engine_enabled(db: Session, engine_id: str, enabled: bool) -> bool:
    """
    Returns:
        bool: True if the engine exists

    Note:
        Does NOT commit. Caller must commit.
    """
    result = db.execute(update(engines).where(engines.c.id == engine_id).values(enabled=enabled))
    return result.rowcount > 0


# ============================================================================
# SETTINGS
# ============================================================================


def get_settings(db: Session) -> dict[str, str]:
    """
    Returns:
        dict: setting key -> raw JSON text
    """
    return {row.key: row.value for row in db.execute(select(settings.c.key, settings.c.value))}


def put_setting(db: Session, key: str, value: Any) -> None:
    """
    Store ``value`` (JSON-serializable) under ``key``.

    Note:
        Does NOT commit. Caller must commit.
    """
    encoded = json.dumps(value, ensure_ascii=False, sort_keys=True)
    result = db.execute(update(settings).where(settings.c.key == key).values(value=encoded))
    if result.rowcount == 0:
        db.execute(insert(settings).values(key=key, value=encoded))

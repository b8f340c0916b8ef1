"""
StateGateway - durable configuration (engine list, AI settings, priority keywords).

Every public method runs in exactly one transaction. Storage failures are
raised as PersistenceError, the one error category callers must surface to
the user.
"""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.config import Config
from db import repository
from db.engine import get_engine
from db.session import make_session_factory
from db.tables import create_tables
from models.errors import PersistenceError, PersistenceErrorKind
from models.search_models import AIConfig, EngineConfig, EngineKind
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class StoredConfig:
    engines: tuple[EngineConfig, ...] = ()
    ai: AIConfig = field(default_factory=AIConfig)
    priority_keywords: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "engines": [engine.to_dict() for engine in self.engines],
            "ai": self.ai.to_dict(),
            "priority_keywords": list(self.priority_keywords),
        }


class StateGateway:
    """
    Read/write access to the state store.

    Example usage:
        gateway = StateGateway()
        stored = gateway.load_config()
        gateway.set_engine_enabled("nyaa", False)
    """

    def __init__(self, engine: Engine | None = None, config: Config | None = None):
        """
        Args:
            engine: SQLAlchemy engine (defaults to the STATE_DATABASE_URL singleton)
            config: Environment configuration providing AI defaults

        Raises:
            PersistenceError: If the tables cannot be created
        """
        self.engine = engine or get_engine()
        self.config = config or Config()
        self._session_factory = make_session_factory(self.engine)
        try:
            create_tables(self.engine)
        except SQLAlchemyError as exc:
            raise PersistenceError(
                PersistenceErrorKind.IO_FAILURE, f"Could not initialise state store: {exc}"
            ) from exc

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error(
                f"State store {operation} failed: {exc}",
                extra={"extra_fields": {"operation": operation, "error_type": type(exc).__name__}},
            )
            raise PersistenceError(
                PersistenceErrorKind.IO_FAILURE,
                f"State store {operation} failed",
                details={"operation": operation, "error_type": type(exc).__name__},
            ) from exc
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load_config(self) -> StoredConfig:
        """
        Load engines, AI settings and priority keywords.

        Raises:
            PersistenceError: io_failure when the store cannot be read,
                corrupt when stored data cannot be decoded
        """
        with self._transaction("load") as db:
            rows = repository.list_engine_rows(db)
            raw_settings = repository.get_settings(db)

        engine_list = tuple(self._decode_engine(row) for row in rows)
        ai = self._decode_ai(raw_settings.get(repository.SETTING_AI))
        keywords = self._decode_keywords(raw_settings.get(repository.SETTING_PRIORITY_KEYWORDS))
        return StoredConfig(engines=engine_list, ai=ai, priority_keywords=keywords)

    def _decode_engine(self, row: dict[str, Any]) -> EngineConfig:
        try:
            options = json.loads(row["options"] or "{}")
            if not isinstance(options, dict):
                raise ValueError("options must be a JSON object")
            return EngineConfig(
                id=row["id"],
                name=row["name"],
                kind=EngineKind(row["kind"]),
                endpoint_template=row["endpoint_template"],
                enabled=bool(row["enabled"]),
                options=options,
            )
        except (ValueError, TypeError) as exc:
            raise self._corrupt(f"engine {row.get('id')!r}", exc) from exc

    def _decode_ai(self, raw: str | None) -> AIConfig:
        defaults = self.config.default_ai_config()
        if raw is None:
            return defaults
        try:
            overrides = json.loads(raw)
            if not isinstance(overrides, dict):
                raise ValueError("AI settings must be a JSON object")
            return defaults.merged(overrides)
        except (ValueError, TypeError) as exc:
            raise self._corrupt("AI settings", exc) from exc

    def _decode_keywords(self, raw: str | None) -> tuple[str, ...]:
        if raw is None:
            return ()
        try:
            keywords = json.loads(raw)
        except ValueError as exc:
            raise self._corrupt("priority keywords", exc) from exc
        if not isinstance(keywords, list) or not all(isinstance(k, str) for k in keywords):
            raise self._corrupt("priority keywords", ValueError("expected a list of strings"))
        return tuple(keywords)

    def _corrupt(self, what: str, exc: Exception) -> PersistenceError:
        logger.error(
            f"Stored {what} could not be decoded: {exc}",
            extra={"extra_fields": {"item": what}},
        )
        return PersistenceError(
            PersistenceErrorKind.CORRUPT,
            f"Stored {what} is corrupt: {exc}",
            details={"item": what},
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save_config(
        self,
        engines: list[EngineConfig] | None = None,
        ai: AIConfig | None = None,
        priority_keywords: list[str] | None = None,
    ) -> None:
        """
        Atomically replace any of the given parts; None leaves a part unchanged.

        Raises:
            ValueError: If engine ids are not unique
            PersistenceError: If the write fails (nothing is changed)
        """
        if engines is not None:
            ids = [engine.id for engine in engines]
            if len(ids) != len(set(ids)):
                raise ValueError("Engine ids must be unique")

        with self._transaction("save") as db:
            if engines is not None:
                repository.replace_engines(db, list(engines))
            if ai is not None:
                repository.put_setting(db, repository.SETTING_AI, ai.to_dict())
            if priority_keywords is not None:
                cleaned = [k.strip() for k in priority_keywords if k and k.strip()]
                repository.put_setting(db, repository.SETTING_PRIORITY_KEYWORDS, cleaned)

        logger.info(
            "Configuration saved",
            extra={
                "extra_fields": {
                    "engines": engines is not None,
                    "ai": ai is not None,
                    "priority_keywords": priority_keywords is not None,
                }
            },
        )

    def upsert_engine(self, engine: EngineConfig) -> bool:
        """Returns True if the engine was newly created."""
        with self._transaction("upsert_engine") as db:
            return repository.upsert_engine(db, engine)

    def remove_engine(self, engine_id: str) -> bool:
        with self._transaction("remove_engine") as db:
            return repository.delete_engine(db, engine_id)

    def set_engine_enabled(self, engine_id: str, enabled: bool) -> bool:
        with self._transaction("set_engine_enabled") as db:
            return repository.set_engine_enabled(db, engine_id, enabled)

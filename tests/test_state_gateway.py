"""
Tests for StateGateway persistence on an in-memory SQLite database.
"""

import json

import pytest
from sqlalchemy import insert, update

from db.tables import engines, get_table, settings
from models.errors import PersistenceError, PersistenceErrorKind
from models.search_models import AIConfig
from tests.fakes import extraction_engine, structured_engine


class TestLoad:
    def test_empty_store_returns_env_defaults(self, gateway):
        stored = gateway.load_config()

        assert stored.engines == ()
        assert stored.priority_keywords == ()
        assert stored.ai.provider == "openai"
        assert stored.ai.model == "gpt-4o-mini"

    def test_corrupt_engine_options(self, gateway):
        with gateway.engine.begin() as conn:
            conn.execute(
                insert(engines).values(
                    id="bad", name="Bad", kind="structured", endpoint_template="u", enabled=True,
                    position=0, options="{not json",
                )
            )

        with pytest.raises(PersistenceError) as exc_info:
            gateway.load_config()

        assert exc_info.value.kind is PersistenceErrorKind.CORRUPT

    def test_unknown_engine_kind_is_corrupt(self, gateway):
        gateway.save_config(engines=[structured_engine("a")])
        with gateway.engine.begin() as conn:
            conn.execute(update(engines).values(kind="telepathy"))

        with pytest.raises(PersistenceError) as exc_info:
            gateway.load_config()

        assert exc_info.value.kind is PersistenceErrorKind.CORRUPT

    def test_corrupt_keywords(self, gateway):
        with gateway.engine.begin() as conn:
            conn.execute(insert(settings).values(key="priority_keywords", value=json.dumps({"a": 1})))

        with pytest.raises(PersistenceError) as exc_info:
            gateway.load_config()

        assert exc_info.value.kind is PersistenceErrorKind.CORRUPT

    def test_missing_table_is_io_failure(self, gateway):
        engines.drop(gateway.engine)

        with pytest.raises(PersistenceError) as exc_info:
            gateway.load_config()

        assert exc_info.value.kind is PersistenceErrorKind.IO_FAILURE


class TestSave:
    def test_round_trip_preserves_order_and_options(self, gateway):
        saved = [
            extraction_engine("zeta"),
            structured_engine("alpha", results_key="data.items", field_map={"title": "name"}),
        ]

        gateway.save_config(engines=saved, priority_keywords=[" 1080p ", "", "x265"])
        stored = gateway.load_config()

        assert list(stored.engines) == saved
        assert stored.priority_keywords == ("1080p", "x265")

    def test_replace_drops_missing_engines(self, gateway):
        gateway.save_config(engines=[structured_engine("a"), structured_engine("b")])
        gateway.save_config(engines=[structured_engine("b")])

        assert [e.id for e in gateway.load_config().engines] == ["b"]

    def test_ai_overrides_merge_with_env_defaults(self, gateway):
        gateway.save_config(ai=AIConfig(provider="gemini", model="gemini-2.5-flash", analysis_batch_size=3))

        ai = gateway.load_config().ai

        assert ai.provider == "gemini"
        assert ai.model == "gemini-2.5-flash"
        assert ai.analysis_batch_size == 3

    def test_duplicate_ids_rejected_before_write(self, gateway):
        gateway.save_config(engines=[structured_engine("a")])

        with pytest.raises(ValueError):
            gateway.save_config(engines=[structured_engine("x"), structured_engine("x")])

        assert [e.id for e in gateway.load_config().engines] == ["a"]

    def test_none_leaves_parts_unchanged(self, gateway):
        gateway.save_config(engines=[structured_engine("a")], priority_keywords=["hdr"])
        gateway.save_config(ai=AIConfig(analysis_batch_size=7))

        stored = gateway.load_config()

        assert [e.id for e in stored.engines] == ["a"]
        assert stored.priority_keywords == ("hdr",)
        assert stored.ai.analysis_batch_size == 7


class TestEngineEdits:
    def test_upsert_appends_then_updates_in_place(self, gateway):
        gateway.save_config(engines=[structured_engine("a"), structured_engine("b")])

        assert gateway.upsert_engine(extraction_engine("c")) is True
        assert gateway.upsert_engine(structured_engine("a", results_key="hits")) is False

        stored = gateway.load_config().engines
        assert [e.id for e in stored] == ["a", "b", "c"]
        assert stored[0].options == {"results_key": "hits"}

    def test_remove_and_toggle(self, gateway):
        gateway.save_config(engines=[structured_engine("a"), structured_engine("b")])

        assert gateway.set_engine_enabled("a", False) is True
        assert gateway.set_engine_enabled("missing", False) is False
        assert gateway.remove_engine("b") is True
        assert gateway.remove_engine("b") is False

        stored = gateway.load_config().engines
        assert len(stored) == 1
        assert stored[0].enabled is False


def test_get_table_rejects_unknown_names():
    assert get_table("engines") is engines
    with pytest.raises(ValueError):
        get_table("users")

import json
import threading

import pytest

from models.errors import ExtractionError, ExtractionErrorKind
from models.search_models import RawResult
from orchestrator.extraction_stage import ExtractionStage, truncate_utf8
from tests.fakes import FakeAIClient, error_response, magnet


def _raw(payload, source_url="https://b.test/search/ubuntu/1"):
    return RawResult(engine_id="b", page_index=1, payload=payload, source_url=source_url)


class TestExtract:
    def test_valid_reply_becomes_search_result(self):
        ai = FakeAIClient()
        stage = ExtractionStage(ai)

        result = stage.extract(_raw(f"<li><b>Ubuntu 24.04</b> {magnet('u')}</li>"))

        assert result.title == "Ubuntu 24.04"
        assert result.magnet_link == magnet("u")
        assert result.engine_id == "b"
        assert result.source_url == "https://b.test/search/ubuntu/1"
        assert result.size_bytes == int(1.5 * 1024 ** 3)
        call = ai.calls[0]
        assert call["json_mode"] is True
        assert call["purpose"] == "extraction"

    def test_reply_without_magnet_is_schema_invalid(self):
        stage = ExtractionStage(FakeAIClient())

        with pytest.raises(ExtractionError) as exc_info:
            stage.extract(_raw("<li><b>No link</b></li>"))

        assert exc_info.value.kind is ExtractionErrorKind.SCHEMA_INVALID

    def test_fenced_json_reply_is_accepted(self):
        reply = "```json\n" + json.dumps({"title": "T", "magnetLink": magnet("t")}) + "\n```"
        stage = ExtractionStage(FakeAIClient(lambda m, k: reply))

        result = stage.extract(_raw("<li>whatever</li>"))

        assert result.magnet_link == magnet("t")
        assert result.size_bytes is None

    def test_client_error_is_service_unavailable(self):
        stage = ExtractionStage(FakeAIClient(lambda m, k: error_response("provider_error")))

        with pytest.raises(ExtractionError) as exc_info:
            stage.extract(_raw("<li>x</li>"))

        assert exc_info.value.kind is ExtractionErrorKind.SERVICE_UNAVAILABLE
        assert exc_info.value.details["error_code"] == "provider_error"

    @pytest.mark.parametrize("payload", ["", "   ", {"title": "already structured"}])
    def test_unusable_payload_is_rejected_without_ai_call(self, payload):
        ai = FakeAIClient()
        stage = ExtractionStage(ai)

        with pytest.raises(ExtractionError) as exc_info:
            stage.extract(_raw(payload))

        assert exc_info.value.kind is ExtractionErrorKind.SCHEMA_INVALID
        assert ai.calls == []

    def test_cancel_before_call_returns_none(self):
        ai = FakeAIClient()
        cancel = threading.Event()
        cancel.set()

        assert ExtractionStage(ai).extract(_raw("<li>x</li>"), cancel) is None
        assert ai.calls == []

    def test_payload_is_truncated_to_budget(self):
        ai = FakeAIClient(lambda m, k: json.dumps({"title": "big", "magnet_link": magnet("big")}))
        stage = ExtractionStage(ai, max_payload_bytes=100)

        stage.extract(_raw("x" * 5000))

        user_message = ai.calls[0]["messages"][-1]["content"]
        assert "x" * 100 in user_message
        assert "x" * 101 not in user_message


def test_truncate_utf8_never_splits_characters():
    text = "é" * 10  # 2 bytes each

    cut, truncated = truncate_utf8(text, 5)

    assert truncated is True
    assert cut == "éé"
    assert truncate_utf8("short", 100) == ("short", False)

import pytest

from orchestrator.response_validator import ResponseValidator
from tests.fakes import magnet


@pytest.fixture
def validator():
    return ResponseValidator()


class TestParseJson:
    def test_plain_json(self, validator):
        assert validator.parse_json('{"a": 1}') == {"a": 1}

    def test_code_fence(self, validator):
        assert validator.parse_json('```json\n[1, 2]\n```') == [1, 2]

    def test_chatter_around_object(self, validator):
        text = 'Here you go: {"title": "x"} hope that helps'
        assert validator.parse_json(text) == {"title": "x"}

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "not json at all",
            "I'm sorry, but I can't assist with that request.",
        ],
    )
    def test_unusable_replies_raise(self, validator, text):
        with pytest.raises(ValueError):
            validator.parse_json(text)


class TestValidateRecord:
    def test_aliases_and_size_parsing(self, validator):
        record = validator.validate_record(
            {"title": "  Ubuntu \n 24.04 ", "magnetLink": magnet("u"), "size": "2 GB", "url": " "}
        )
        assert record.title == "Ubuntu 24.04"
        assert record.magnet_link == magnet("u")
        assert record.size_bytes == 2 * 1000 ** 3
        assert record.source_url is None

    def test_single_item_list_is_unwrapped(self, validator):
        record = validator.validate_record([{"title": "t", "magnet_link": magnet("t")}])
        assert record.title == "t"

    def test_unreadable_size_becomes_none(self, validator):
        record = validator.validate_record({"title": "t", "magnet_link": magnet("t"), "size": "huge"})
        assert record.size_bytes is None

    @pytest.mark.parametrize(
        "data",
        [
            {"title": "t"},
            {"title": "t", "magnet_link": None},
            {"title": "t", "magnet_link": "magnet:?dn=no-hash"},
            {"title": "t", "magnet_link": "https://example.com/file.torrent"},
            {"title": "", "magnet_link": magnet("t")},
            "just a string",
        ],
    )
    def test_invalid_records_raise(self, validator, data):
        with pytest.raises(ValueError):
            validator.validate_record(data)


class TestValidateAnalysis:
    def test_wrapped_results_and_rejections(self, validator):
        data = {
            "results": [
                {"id": "a", "cleaned_title": "A", "tags": "x, y", "purity_score": 70},
                {"id": "b", "cleaned_title": "B", "tags": [], "purity_score": -1},
                {"id": "zzz", "cleaned_title": "Z", "tags": [], "purity_score": 10},
                {"id": "c", "cleaned_title": "C", "tags": [], "purity_score": True},
            ]
        }

        accepted, rejected = validator.validate_analysis(data, ["a", "b", "c"])

        assert set(accepted) == {"a"}
        assert accepted["a"].tags == frozenset({"x", "y"})
        assert len(rejected) == 3
        assert any(r["reason"] == "unknown id" for r in rejected)

    def test_first_entry_per_id_wins(self, validator):
        data = [
            {"itemId": "a", "cleanedTitle": "first", "purityScore": 10},
            {"id": "a", "cleaned_title": "second", "purity_score": 90},
        ]

        accepted, _ = validator.validate_analysis(data, ["a"])

        assert accepted["a"].cleaned_title == "first"
        assert accepted["a"].purity_score == 10

    def test_non_list_document_raises(self, validator):
        with pytest.raises(ValueError):
            validator.validate_analysis({"something": "else"}, ["a"])

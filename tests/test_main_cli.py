import json

import pytest

import main
from models.errors import PersistenceError, PersistenceErrorKind
from orchestrator.search_orchestrator import SearchOrchestrator
from tests.fakes import FakeAIClient, FakeFetcher, analysis_responder, json_page, magnet, structured_engine


@pytest.fixture
def cli(gateway, monkeypatch):
    monkeypatch.setattr(main, "StateGateway", lambda: gateway)
    return gateway


def test_engines_add_list_disable(cli, capsys):
    assert main.main([
        "engines", "add", "nyaa", "extraction", "https://nyaa.test/?q={keyword}&p={page}",
        "--option", "item_pattern=<tr>.*?</tr>", "--option", "page_offset=-1",
    ]) == 0
    assert main.main(["engines", "disable", "nyaa"]) == 0
    assert main.main(["engines", "list"]) == 0

    out = capsys.readouterr().out
    assert "Engine added: nyaa" in out
    assert "[off] nyaa" in out
    engine = cli.load_config().engines[0]
    assert engine.options == {"item_pattern": "<tr>.*?</tr>", "page_offset": -1}


def test_unknown_engine_exits_non_zero(cli, capsys):
    assert main.main(["engines", "remove", "ghost"]) == 1
    assert "unknown engine" in capsys.readouterr().out


def test_bad_option_is_reported(cli, capsys):
    assert main.main(["engines", "add", "x", "structured", "https://x/{keyword}", "--option", "oops"]) == 1
    assert "key=value" in capsys.readouterr().out


def test_settings_show(cli, capsys):
    cli.save_config(priority_keywords=["remux"])

    assert main.main(["settings", "show"]) == 0

    out = capsys.readouterr().out
    shown = json.loads(out[: out.index("\n\n")])
    assert shown["priority_keywords"] == ["remux"]
    assert shown["ai"]["provider"] == "openai"


def test_search_prints_results_and_analysis(cli, monkeypatch, capsys):
    cli.upsert_engine(structured_engine("a"))
    pages = {"https://a.test/api?q=ubuntu&page=1": json_page(("Ubuntu Desktop", magnet("one")), ("Ubuntu Server", magnet("two")))}
    monkeypatch.setattr(
        main,
        "SearchOrchestrator",
        lambda gateway: SearchOrchestrator(
            gateway,
            ai_client=FakeAIClient(analysis_responder),
            fetcher_factory=lambda ai_config: FakeFetcher(pages),
            max_workers=2,
        ),
    )

    assert main.main(["search", "ubuntu", "--analyze"]) == 0

    out = capsys.readouterr().out
    assert magnet("one") in out
    assert "=== Search completed: 2 results ===" in out
    assert "=== Analysis ===" in out
    assert " 80  " in out


def test_persistence_error_exit_code(monkeypatch, capsys):
    def broken():
        raise PersistenceError(PersistenceErrorKind.IO_FAILURE, "disk gone")

    monkeypatch.setattr(main, "StateGateway", broken)

    assert main.main(["engines", "list"]) == 2
    assert "io_failure" in capsys.readouterr().out


@pytest.mark.parametrize(
    "size, expected",
    [(None, "?"), (512, "512 B"), (1536, "1.5 KiB"), (734003200, "700.0 MiB")],
)
def test_format_size(size, expected):
    assert main.format_size(size) == expected

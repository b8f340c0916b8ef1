"""
Test Suite: FastAPI Contract & Guardrail Validation

Exercises the public HTTP surface against an in-memory state store, the
real SearchOrchestrator and offline fakes for pages and the AI client.
No network access and no provider tokens are used.

Covers:
- Health and API key enforcement
- Engine list and settings round trips through the state gateway
- NDJSON search stream framing (start, events, done)
- Result listing and analysis
- Guardrails: 400/404/422 for bad input, 503 when the state store fails
"""

import json

import pytest
from fastapi.testclient import TestClient

from db.engine import create_db_engine
from db.gateway import StateGateway
from models.errors import PersistenceError, PersistenceErrorKind
from orchestrator.search_orchestrator import SearchOrchestrator
from server import dependencies as deps
from server.app import create_app
from tests.fakes import (
    FakeAIClient,
    FakeFetcher,
    analysis_responder,
    extraction_responder,
    html_page,
    json_page,
    magnet,
)

pytestmark = pytest.mark.integration

HEADERS = {"X-API-Key": "dev-key-1"}

ENGINES_PAYLOAD = {
    "engines": [
        {
            "id": "a",
            "name": "Alpha",
            "kind": "structured",
            "endpoint_template": "https://a.test/api?q={keyword}&page={page}",
        },
        {
            "id": "b",
            "name": "Bravo",
            "kind": "extraction",
            "endpoint_template": "https://b.test/search/{keyword}/{page}",
            "options": {"item_pattern": "<li>.*?</li>"},
        },
    ]
}

PAGES = {
    "https://a.test/api?q=ubuntu&page=1": json_page(
        ("Ubuntu Desktop", magnet("one")), ("Ubuntu shared", magnet("shared"))
    ),
    "https://b.test/search/ubuntu/1": html_page(
        ("Ubuntu shared mirror", magnet("shared")), ("Ubuntu Server", magnet("two"))
    ),
}


def purpose_responder(messages, kwargs):
    if kwargs.get("purpose") == "analysis":
        return analysis_responder(messages, kwargs)
    return extraction_responder(messages, kwargs)


class BrokenGateway:
    def load_config(self):
        raise PersistenceError(PersistenceErrorKind.IO_FAILURE, "State store load failed")


# -------------------------------------------------------------------
# Pytest fixtures
# -------------------------------------------------------------------


@pytest.fixture()
def state(mock_env):
    return StateGateway(engine=create_db_engine("sqlite://"))


@pytest.fixture()
def app(state):
    """
    Build FastAPI app and override the gateway and orchestrator dependencies.
    """
    app = create_app()

    # Clear singleton caches to avoid cross-test leakage
    for dependency in (deps.get_orchestrator, deps.get_state_gateway):
        if hasattr(dependency, "_instance"):
            delattr(dependency, "_instance")

    orchestrator = SearchOrchestrator(
        state,
        ai_client=FakeAIClient(purpose_responder),
        fetcher_factory=lambda ai_config: FakeFetcher(PAGES),
        max_workers=4,
    )
    app.dependency_overrides[deps.get_state_gateway] = lambda: state
    app.dependency_overrides[deps.get_orchestrator] = lambda: orchestrator
    yield app
    orchestrator.close()


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def _stream(client, keyword="ubuntu", max_pages=1):
    with client.stream("POST", "/v1/search/stream", json={"keyword": keyword, "max_pages": max_pages}, headers=HEADERS) as r:
        assert r.status_code == 200
        assert r.headers["content-type"].startswith("application/x-ndjson")
        return [json.loads(line) for line in r.iter_lines() if line]


# -------------------------------------------------------------------
# Tests
# -------------------------------------------------------------------


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"
    assert r.json()["engine_count"] == 0


@pytest.mark.parametrize(
    "method, path",
    [
        ("get", "/v1/engines"),
        ("get", "/v1/settings"),
        ("get", "/v1/search/results"),
        ("post", "/v1/search/cancel"),
    ],
)
def test_endpoints_require_api_key(client, method, path):
    r = getattr(client, method)(path)
    assert r.status_code == 401

    r = getattr(client, method)(path, headers={"X-API-Key": "wrong"})
    assert r.status_code == 401


def test_engine_crud(client):
    r = client.put("/v1/engines", json=ENGINES_PAYLOAD, headers=HEADERS)
    assert r.status_code == 200
    assert [e["id"] for e in r.json()] == ["a", "b"]

    r = client.patch("/v1/engines/b", json={"enabled": False}, headers=HEADERS)
    assert r.status_code == 200
    assert [e["enabled"] for e in r.json()] == [True, False]

    assert client.patch("/v1/engines/zzz", json={"enabled": False}, headers=HEADERS).status_code == 404

    assert client.delete("/v1/engines/a", headers=HEADERS).status_code == 204
    assert client.delete("/v1/engines/a", headers=HEADERS).status_code == 404
    assert [e["id"] for e in client.get("/v1/engines", headers=HEADERS).json()] == ["b"]


def test_engine_validation(client):
    duplicate = {"engines": [ENGINES_PAYLOAD["engines"][0], ENGINES_PAYLOAD["engines"][0]]}
    assert client.put("/v1/engines", json=duplicate, headers=HEADERS).status_code == 400

    bad_kind = {"engines": [{**ENGINES_PAYLOAD["engines"][0], "kind": "telepathy"}]}
    assert client.put("/v1/engines", json=bad_kind, headers=HEADERS).status_code == 422


def test_settings_round_trip(client):
    payload = {"ai": {"analysis_batch_size": 4}, "priority_keywords": ["1080p", "x265"]}

    r = client.put("/v1/settings", json=payload, headers=HEADERS)

    assert r.status_code == 200
    assert r.json()["ai"]["analysis_batch_size"] == 4
    assert r.json()["priority_keywords"] == ["1080p", "x265"]
    assert client.get("/v1/settings", headers=HEADERS).json() == r.json()


def test_switching_provider_resets_model_to_provider_default(client):
    r = client.put("/v1/settings", json={"ai": {"provider": "gemini"}}, headers=HEADERS)

    assert r.status_code == 200
    assert r.json()["ai"]["provider"] == "gemini"
    assert r.json()["ai"]["model"] == ""


def test_search_stream_framing(client):
    client.put("/v1/engines", json=ENGINES_PAYLOAD, headers=HEADERS)

    lines = _stream(client)

    assert lines[0]["type"] == "start"
    assert lines[0]["engines"] == ["a", "b"]
    assert lines[-1]["type"] == "done"
    assert lines[-1]["session"]["status"] == "completed"
    assert lines[-1]["session"]["result_count"] == 3

    results = [line["result"]["magnet_link"] for line in lines if line["type"] == "result"]
    assert sorted(results) == sorted([magnet("one"), magnet("shared"), magnet("two")])
    statuses = [line["status"] for line in lines if line["type"] == "status"]
    assert statuses == ["running", "completed"]


def test_results_and_analyze_after_search(client):
    client.put("/v1/engines", json=ENGINES_PAYLOAD, headers=HEADERS)
    _stream(client)

    session = client.get("/v1/search/results", headers=HEADERS).json()
    assert session["result_count"] == 3
    ids = [r["id"] for r in session["results"]]

    r = client.post("/v1/analyze", json={"ids": [ids[0], "nope"]}, headers=HEADERS)
    assert r.status_code == 200
    assert r.json()["analyzed_ids"] == [ids[0]]
    assert r.json()["unknown_ids"] == ["nope"]

    r = client.post("/v1/analyze", json={}, headers=HEADERS)
    assert sorted(r.json()["analyzed_ids"]) == sorted(ids[1:])

    analyzed = client.get("/v1/search/results", headers=HEADERS).json()["results"]
    assert all(item["analysis_status"] == "analyzed" for item in analyzed)
    assert all(item["analysis"]["purity_score"] == 80 for item in analyzed)


def test_failed_engine_is_reported_in_stream(client, app):
    payload = {
        "engines": ENGINES_PAYLOAD["engines"]
        + [{"id": "c", "name": "Charlie", "kind": "structured", "endpoint_template": "https://c.test/{keyword}/{page}"}]
    }
    client.put("/v1/engines", json=payload, headers=HEADERS)
    pages = {**PAGES, "https://c.test/ubuntu/1": "<html>not json</html>"}
    orchestrator = app.dependency_overrides[deps.get_orchestrator]()
    orchestrator.fetcher_factory = lambda ai_config: FakeFetcher(pages)

    lines = _stream(client)

    failures = [line for line in lines if line["type"] == "provider_failed"]
    assert [f["engine_id"] for f in failures] == ["c"]
    assert failures[0]["error"]["kind"] == "malformed_response"
    assert lines[-1]["session"]["status"] == "partially_failed"
    assert lines[-1]["session"]["result_count"] == 3


@pytest.mark.parametrize(
    "payload",
    [
        {"keyword": ""},
        {"keyword": "   "},
        {"keyword": "ubuntu", "max_pages": 0},
        {"keyword": "ubuntu", "max_pages": 51},
    ],
)
def test_search_rejects_bad_queries(client, payload):
    r = client.post("/v1/search/stream", json=payload, headers=HEADERS)
    assert r.status_code == 422


def test_no_session_yet(client):
    assert client.get("/v1/search/results", headers=HEADERS).status_code == 404
    assert client.post("/v1/search/cancel", headers=HEADERS).status_code == 404
    assert client.post("/v1/analyze", json={}, headers=HEADERS).status_code == 404


def test_cancel_after_completion_returns_final_session(client):
    client.put("/v1/engines", json=ENGINES_PAYLOAD, headers=HEADERS)
    _stream(client)

    r = client.post("/v1/search/cancel", headers=HEADERS)

    assert r.status_code == 200
    assert r.json()["status"] == "completed"


def test_state_store_failure_is_503(app):
    app.dependency_overrides[deps.get_state_gateway] = lambda: BrokenGateway()

    with TestClient(app) as client:
        r = client.get("/v1/engines", headers=HEADERS)

    assert r.status_code == 503
    assert r.json()["error"]["kind"] == "io_failure"


def test_health_reports_degraded_state_store(app):
    app.dependency_overrides[deps.get_state_gateway] = lambda: BrokenGateway()

    with TestClient(app) as client:
        r = client.get("/health")

    assert r.status_code == 200
    assert r.json()["status"] == "degraded"
    assert r.json()["state_store"] == "unavailable"

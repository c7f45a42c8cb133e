from __future__ import annotations

from concurrent.futures import Executor, Future
from typing import Any, Callable, Dict

import pytest
from fastapi.testclient import TestClient

from inkreader import ReaderSettings, load_sample_document
from inkreader.api import SessionManager, create_app


class _InlineExecutor(Executor):
    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        future: Future = Future()
        future.set_result(fn(*args, **kwargs))
        return future


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_app(ReaderSettings()))


def _open_session(client: TestClient, document: Dict[str, Any], **extra: Any) -> Dict[str, Any]:
    response = client.post(
        "/api/sessions", json={"story_id": "story", "document": document, **extra}
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client: TestClient) -> None:
    assert client.get("/api/health").json() == {"status": "ok"}


def test_analyze_reports_pages_and_nodes(client: TestClient, branching_document) -> None:
    response = client.post("/api/stories/analyze", json={"document": branching_document})

    assert response.status_code == 200
    payload = response.json()
    assert payload["format"] == "named-graph"
    assert payload["start_node"] == "root"
    assert payload["total_pages"] == 2
    assert payload["used_fallback"] is False
    assert payload["node_to_page"] == {"root": 1, "b": 2}
    assert payload["page_to_node"] == {"1": "root", "2": "b"}
    assert [node["id"] for node in payload["nodes"]] == ["root", "b"]
    assert payload["nodes"][0]["choices"] == [{"text": "go", "next_node": "b"}]
    assert payload["orphans"] == []
    assert payload["dead_ends"] == []


def test_analyze_compiled_script(client: TestClient, compiled_document) -> None:
    payload = client.post(
        "/api/stories/analyze", json={"document": compiled_document}
    ).json()

    assert payload["format"] == "compiled-script"
    assert payload["start_node"] == "fragment_1"
    assert payload["total_pages"] == 4


def test_export_returns_ink_source(client: TestClient, branching_document) -> None:
    response = client.post("/api/stories/export", json={"document": branching_document})

    assert response.status_code == 200
    script = response.json()["script"]
    assert "=== root ===\nA\n" in script
    assert "* go\n    -> b" in script


def test_empty_compiled_root_yields_placeholder_page(client: TestClient) -> None:
    response = client.post(
        "/api/stories/analyze", json={"document": {"inkVersion": 21, "root": []}}
    )

    assert response.status_code == 200
    assert response.json()["total_pages"] == 1


def test_session_lifecycle(client: TestClient, branching_document) -> None:
    created = _open_session(client, branching_document)
    session_id = created["session_id"]

    assert created["backend"] == "graph"
    assert created["state"]["node"] == "root"
    assert created["state"]["page"] == 1
    assert created["state"]["can_go_back"] is False

    chosen = client.post(f"/api/sessions/{session_id}/choose", json={"index": 0})
    assert chosen.status_code == 200
    assert chosen.json()["state"]["node"] == "b"
    assert chosen.json()["state"]["page"] == 2

    back = client.post(f"/api/sessions/{session_id}/back")
    assert back.json()["state"]["text"] == "A"

    jumped = client.post(f"/api/sessions/{session_id}/page", json={"page": 2})
    assert jumped.json()["state"]["node"] == "b"

    restarted = client.post(f"/api/sessions/{session_id}/restart")
    assert restarted.json()["state"]["page"] == 1
    assert restarted.json()["state"]["can_go_back"] is False

    fetched = client.get(f"/api/sessions/{session_id}")
    assert fetched.json()["state"]["page"] == 1

    assert client.delete(f"/api/sessions/{session_id}").status_code == 204
    assert client.get(f"/api/sessions/{session_id}").status_code == 404


def test_continue_on_linear_story(client: TestClient, linear_document) -> None:
    session_id = _open_session(client, linear_document)["session_id"]

    response = client.post(f"/api/sessions/{session_id}/continue")

    assert response.status_code == 200
    assert response.json()["state"]["text"] == "Two"


def test_rejected_navigation_returns_conflict(client: TestClient, branching_document) -> None:
    branching_document["root"]["choices"].append({"text": "vanish", "nextNode": "nowhere"})
    session_id = _open_session(client, branching_document)["session_id"]

    dangling = client.post(f"/api/sessions/{session_id}/choose", json={"index": 1})
    assert dangling.status_code == 409
    assert "nowhere" in dangling.json()["detail"]

    assert client.post(f"/api/sessions/{session_id}/back").status_code == 409
    assert (
        client.post(f"/api/sessions/{session_id}/page", json={"page": 9}).status_code == 409
    )
    assert client.get(f"/api/sessions/{session_id}").json()["state"]["page"] == 1


def test_runtime_backend_session(client: TestClient) -> None:
    created = _open_session(client, load_sample_document(), backend="runtime")
    session_id = created["session_id"]

    assert created["backend"] == "runtime"
    response = client.post(f"/api/sessions/{session_id}/page", json={"page": 3})

    assert response.status_code == 200
    assert response.json()["state"]["node"] == "lamp_room"


def test_unknown_session_returns_404(client: TestClient) -> None:
    assert client.post("/api/sessions/missing/continue").status_code == 404
    assert client.delete("/api/sessions/missing").status_code == 404


def test_session_requires_nodes(client: TestClient) -> None:
    response = client.post("/api/sessions", json={"story_id": "empty", "document": {}})

    assert response.status_code == 400


def test_session_manager_evicts_oldest(branching_document) -> None:
    manager = SessionManager(max_sessions=2)

    first, _ = manager.create_session("a", branching_document)
    manager.create_session("b", branching_document)
    manager.create_session("c", branching_document)

    assert len(manager) == 2
    with pytest.raises(KeyError):
        manager.get_session(first)


def test_comment_counts_are_reported(branching_document) -> None:
    manager = SessionManager(
        comment_counter=lambda story_id, page: page + 100,
        executor=_InlineExecutor(),
    )
    client = TestClient(create_app(ReaderSettings(), session_manager=manager))

    created = _open_session(client, branching_document)
    assert created["comment_count"] == 101

    chosen = client.post(f"/api/sessions/{created['session_id']}/choose", json={"index": 0})
    assert chosen.json()["comment_count"] == 102

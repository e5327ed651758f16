import asyncio
import threading

import cv2
import httpx
import numpy as np
import pytest
from fastapi.testclient import TestClient

from floorplan_ai import main
from floorplan_ai.errors import ServiceAccessDenied, ServiceConfigurationError


class _StubClient:
    def __init__(self, payload=None, error=None):
        self.payload = payload
        self.error = error

    def detect(self, image_bytes):
        if self.error is not None:
            raise self.error
        return self.payload


PAYLOAD = {
    "predictions": [
        {"x": 100, "y": 50, "width": 40, "height": 20, "class": "door", "confidence": 0.87},
        {"x": 500, "y": 250, "width": 1000, "height": 500, "class": "perimeter", "confidence": 0.95},
    ],
    "image": {"width": 1000, "height": 500},
}


def _png():
    ok, buffer = cv2.imencode(".png", np.full((50, 100, 3), 255, dtype=np.uint8))
    assert ok
    return buffer.tobytes()


@pytest.fixture
def client(monkeypatch):
    main.session_store.sessions.clear()
    monkeypatch.setattr(main, "get_client", lambda: _StubClient(PAYLOAD))
    return TestClient(main.app)


def _upload(client, session_id="s1"):
    return client.post(
        f"/api/sessions/{session_id}/analyze",
        files={"file": ("plan.png", _png(), "image/png")},
    )


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"


def test_detect_proxies_raw_payload(client):
    response = client.post("/api/detect", files={"file": ("plan.png", _png(), "image/png")})

    assert response.status_code == 200
    assert response.json() == PAYLOAD


def test_detect_without_file_is_rejected(client):
    response = client.post("/api/detect")

    assert response.status_code == 400
    assert response.json()["error"] == "No file provided"


@pytest.mark.parametrize(
    "error, status",
    [(ServiceConfigurationError(), 500), (ServiceAccessDenied(details="quota"), 403)],
)
def test_service_errors_map_to_status_codes(client, monkeypatch, error, status):
    monkeypatch.setattr(main, "get_client", lambda: _StubClient(error=error))

    response = client.post("/api/detect", files={"file": ("plan.png", _png(), "image/png")})

    assert response.status_code == status
    assert response.json()["error"] == str(error)


def test_analyze_returns_canonical_overlay(client):
    response = _upload(client)

    assert response.status_code == 200
    body = response.json()
    assert body["phase"] == "populated"
    door = body["elements"][0]
    assert door["category"] == "door"
    assert door["box"] == [80, 80, 120, 120]
    assert "87%" in door["label"]
    assert body["summary"]["door"] == 1
    assert body["summary"]["perimeter"] == 1
    assert body["boxes"][0]["style"]["top"] == "8%"


def test_analyze_failure_resets_session(client, monkeypatch):
    _upload(client)
    monkeypatch.setattr(main, "get_client", lambda: _StubClient(error=ServiceAccessDenied()))

    response = _upload(client)

    assert response.status_code == 403
    assert client.get("/api/sessions/s1").json()["phase"] == "empty"


def test_edit_flow(client):
    _upload(client)

    body = client.post("/api/sessions/s1/tool", json={"tool": "add", "category": "window"}).json()
    assert body["phase"] == "editing_add"

    body = client.post("/api/sessions/s1/elements", json={"start": [100, 100], "end": [300, 400]}).json()
    manual = body["elements"][-1]
    assert manual["box"] == [100, 100, 300, 400]
    assert manual["label"] == "window (Manual)"
    assert body["phase"] == "editing_add"

    body = client.post("/api/sessions/s1/elements", json={"start": [0, 0], "end": [5, 5]}).json()
    assert len(body["elements"]) == 3

    body = client.post("/api/sessions/s1/tool", json={"tool": "remove"}).json()
    assert body["phase"] == "editing_remove"
    body = client.delete(f"/api/sessions/s1/elements/{manual['id']}").json()
    assert body["summary"]["window"] == 0
    body = client.delete("/api/sessions/s1/elements/nonexistent-id").json()
    assert len(body["elements"]) == 2

    body = client.post("/api/sessions/s1/visibility/door").json()
    assert body["visibility"]["door"] is False
    assert [box["category"] for box in body["boxes"]] == ["perimeter"]

    body = client.post("/api/sessions/s1/tool", json={"tool": "none"}).json()
    assert body["phase"] == "populated"


def test_export_returns_png(client):
    _upload(client)

    response = client.get("/api/sessions/s1/export")

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.content.startswith(b"\x89PNG")


def test_export_without_image_is_rejected(client, monkeypatch):
    monkeypatch.setattr(main, "get_client", lambda: _StubClient(error=ServiceAccessDenied()))
    _upload(client)

    assert client.get("/api/sessions/s1/export").status_code == 400


def test_reset_session(client):
    _upload(client)

    body = client.delete("/api/sessions/s1").json()

    assert body["phase"] == "empty"
    assert body["elements"] == []
    assert client.get("/api/sessions/s1").status_code == 404


class _BlockingClient:
    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()
        self.finished = False

    def detect(self, image_bytes):
        self.entered.set()
        self.release.wait(timeout=5)
        self.finished = True
        return PAYLOAD


def test_detect_does_not_block_other_requests(monkeypatch):
    stub = _BlockingClient()
    monkeypatch.setattr(main, "get_client", lambda: stub)

    async def scenario():
        transport = httpx.ASGITransport(app=main.app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
            detect = asyncio.create_task(
                http.post("/api/detect", files={"file": ("plan.png", _png(), "image/png")})
            )
            await asyncio.to_thread(stub.entered.wait, 5)
            health = await http.get("/health")
            finished_before_health = stub.finished
            stub.release.set()
            return health, finished_before_health, await detect

    health, finished_before_health, detect = asyncio.run(scenario())

    assert health.status_code == 200
    assert finished_before_health is False
    assert detect.json() == PAYLOAD


def test_edits_need_the_matching_tool(client):
    _upload(client)

    body = client.post("/api/sessions/s1/elements", json={"start": [100, 100], "end": [300, 400]}).json()
    assert len(body["elements"]) == 2

    client.post("/api/sessions/s1/tool", json={"tool": "add", "category": "window"})
    body = client.delete(f"/api/sessions/s1/elements/{body['elements'][0]['id']}").json()
    assert len(body["elements"]) == 2
    assert body["phase"] == "editing_add"


def test_non_addable_category_is_refused(client):
    _upload(client)

    body = client.post("/api/sessions/s1/tool", json={"tool": "add", "category": "furniture"}).json()
    assert body["phase"] == "populated"

    client.post("/api/sessions/s1/tool", json={"tool": "add", "category": "door"})
    body = client.post(
        "/api/sessions/s1/elements",
        json={"start": [100, 100], "end": [300, 400], "category": "not-a-category"},
    ).json()

    assert len(body["elements"]) == 2
    assert "not-a-category" not in body["summary"]
    assert body["summary"]["door"] == 1
    assert "unknown" not in body["summary"]


def test_unknown_session_is_not_created_by_reads(client):
    assert client.get("/api/sessions/nope").status_code == 404
    assert client.get("/api/sessions/nope/export").status_code == 404
    assert client.post("/api/sessions/nope/visibility/door").status_code == 404
    assert client.post("/api/sessions/nope/tool", json={"tool": "add"}).status_code == 404
    assert client.delete("/api/sessions/nope").status_code == 404

    assert main.session_store.sessions == {}


def test_remove_at_pointer_position(client):
    _upload(client)
    client.post("/api/sessions/s1/tool", json={"tool": "remove"})
    client.post("/api/sessions/s1/visibility/perimeter")

    # 20,10 on a 200x100 render is canonical (100, 100), inside the door
    body = client.post(
        "/api/sessions/s1/elements/remove-at",
        json={"x": 20, "y": 10, "width": 200, "height": 100},
    ).json()

    assert body["summary"]["door"] == 0
    assert body["summary"]["perimeter"] == 1


def test_export_as_data_url(client):
    _upload(client)

    response = client.get("/api/sessions/s1/export", params={"format": "dataurl"})

    assert response.status_code == 200
    assert response.json()["image"].startswith("data:image/png;base64,")

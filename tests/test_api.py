import json as json_module

from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from src.project_review import config
from src.project_review.api.main import app
from src.project_review.api.routers import functions as functions_router
from src.project_review.api.routers import projects as projects_router
from src.project_review.domain.errors import ModelUnavailable, StoreWriteFailure
from src.project_review.domain.models import EvaluateFunctionRequest
from src.project_review.infrastructure import repository as repository_module
from src.project_review.services import model_client, remote_evaluator
from src.project_review.services import heuristic

from utils import FakeResponse


client = TestClient(app)

OWNER = {"X-User-Id": "alice"}
GOOD_DESCRIPTION = (
    "An adaptive tutoring app. The goal is to help students practise maths with instant hints and feedback. "
    "Teachers get weekly progress reports."
)


def _create(title="AI Tutor", description=GOOD_DESCRIPTION, headers=OWNER):
    r = client.post("/projects", json={"title": title, "description": description}, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


def test_health_endpoint():
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["components"]["model"] == "heuristic-only"


def test_project_crud_scoped_to_owner():
    proj = _create()
    assert proj["status"] == "pending"
    assert proj["feedback"] is None

    r = client.get("/projects", headers=OWNER)
    assert [p["project_id"] for p in r.json()] == [proj["project_id"]]
    assert client.get("/projects", headers={"X-User-Id": "bob"}).json() == []
    assert client.get(f"/projects/{proj['project_id']}", headers={"X-User-Id": "bob"}).status_code == 404

    r = client.delete(f"/projects/{proj['project_id']}", headers=OWNER)
    assert r.status_code == 204
    assert client.get(f"/projects/{proj['project_id']}", headers=OWNER).status_code == 404


def test_create_rejects_blank_text():
    r = client.post("/projects", json={"title": "   ", "description": "desc"}, headers=OWNER)
    assert r.status_code == 422


def test_evaluate_with_heuristic_only_approves_and_notifies():
    proj = _create()
    r = client.post(f"/projects/{proj['project_id']}/evaluate", headers=OWNER)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["status"] == "approved"
    assert body["strategy"] == "heuristic"
    assert body["used_fallback"] is True
    assert body["evaluation"]["suggestions"] == []

    stored = client.get(f"/projects/{proj['project_id']}", headers=OWNER).json()
    assert stored["status"] == "approved"
    assert stored["feedback"]["recommendation"] == "APPROVE"

    notes = client.get(f"/projects/{proj['project_id']}/notifications", headers=OWNER).json()
    assert [n["kind"] for n in notes] == ["approved"]


def test_evaluate_weak_project_is_rejected_with_suggestions():
    proj = _create(title="x", description="short")
    body = client.post(f"/projects/{proj['project_id']}/evaluate", headers=OWNER).json()
    assert body["status"] == "rejected"
    assert len(body["evaluation"]["suggestions"]) == 4


def test_evaluate_uses_model_when_configured(monkeypatch):
    config.reset_settings(config.ReviewSettings(gemini_api_key="k"))
    reply = '```json\n{"recommendation": "REJECT", "feedback": "Scope unclear", "suggestions": ["Define users"]}\n```'
    monkeypatch.setattr(model_client.GeminiModelClient, "generate", lambda self, prompt: reply)

    proj = _create()
    body = client.post(f"/projects/{proj['project_id']}/evaluate", headers=OWNER).json()

    assert body["strategy"] == "direct-model"
    assert body["used_fallback"] is False
    assert body["status"] == "rejected"
    assert body["evaluation"]["feedback"] == "Scope unclear"


def test_unstructured_model_reply_keeps_project_pending(monkeypatch):
    config.reset_settings(config.ReviewSettings(gemini_api_key="k"))
    monkeypatch.setattr(model_client.GeminiModelClient, "generate", lambda self, prompt: "Looks interesting overall.")

    proj = _create()
    body = client.post(f"/projects/{proj['project_id']}/evaluate", headers=OWNER).json()

    assert body["status"] == "pending"
    assert body["evaluation"] == {"recommendation": "PENDING", "feedback": "Looks interesting overall.", "suggestions": []}
    notes = client.get(f"/projects/{proj['project_id']}/notifications", headers=OWNER).json()
    assert notes == []


def test_direct_failure_falls_back_to_remote_function(monkeypatch):
    config.reset_settings(
        config.ReviewSettings(
            gemini_api_key="client-key",
            evaluate_function_url="https://fn.example.test/functions/evaluate-project",
        )
    )

    def direct(self, prompt):
        raise ModelUnavailable("quota exceeded")

    monkeypatch.setattr(model_client.GeminiModelClient, "generate", direct)

    class LoopbackSession:
        """Routes the remote call to the in-process function handler."""

        def __init__(self):
            self.calls = 0

        def post(self, url, json=None, headers=None, timeout=None):
            self.calls += 1
            out = functions_router.evaluate_project(EvaluateFunctionRequest(**json), authorization=headers.get("Authorization"))
            if isinstance(out, JSONResponse):
                return FakeResponse(out.status_code, json_module.loads(out.body))
            return FakeResponse(200, out.model_dump(mode="json"))

    session = LoopbackSession()
    monkeypatch.setattr(remote_evaluator, "_build_session", lambda: session)

    proj = _create(title="x", description="short")
    body = client.post(f"/projects/{proj['project_id']}/evaluate", headers=OWNER).json()

    assert session.calls == 1
    assert body["strategy"] == "remote-function"
    assert body["status"] == "rejected"
    assert body["evaluation"] == heuristic.score("x", "short").model_dump(mode="json")


def test_evaluation_gate_blocks_concurrent_requests():
    proj = _create()
    projects_router._evaluating.add(proj["project_id"])
    r = client.post(f"/projects/{proj['project_id']}/evaluate", headers=OWNER)
    assert r.status_code == 409
    projects_router._evaluating.discard(proj["project_id"])
    assert client.post(f"/projects/{proj['project_id']}/evaluate", headers=OWNER).status_code == 200
    assert projects_router._evaluating == set()


def test_store_failure_reports_unavailable(monkeypatch):
    proj = _create()

    def fail(project_id, fields):
        raise StoreWriteFailure("db down")

    monkeypatch.setattr(repository_module._repo, "update", fail)
    r = client.post(f"/projects/{proj['project_id']}/evaluate", headers=OWNER)
    assert r.status_code == 503
    assert r.json()["detail"] == "Evaluation service unavailable, try again later"
    assert projects_router._evaluating == set()


def test_edit_rejected_project_resets_status_and_feedback():
    proj = _create(title="x", description="short")
    pid = proj["project_id"]
    assert client.post(f"/projects/{pid}/evaluate", headers=OWNER).json()["status"] == "rejected"

    r = client.put(f"/projects/{pid}", json={"title": "AI Tutor", "description": GOOD_DESCRIPTION}, headers=OWNER)
    assert r.status_code == 200
    updated = r.json()
    assert updated["status"] == "pending"
    assert updated["feedback"] is None
    assert updated["title"] == "AI Tutor"

    assert client.post(f"/projects/{pid}/evaluate", headers=OWNER).json()["status"] == "approved"


def test_reset_and_edit_refused_for_approved_projects():
    proj = _create()
    pid = proj["project_id"]
    client.post(f"/projects/{pid}/evaluate", headers=OWNER)

    assert client.post(f"/projects/{pid}/reset", headers=OWNER).status_code == 409
    r = client.put(f"/projects/{pid}", json={"title": "Other", "description": "Other text"}, headers=OWNER)
    assert r.status_code == 409


def test_reset_rejected_project():
    proj = _create(title="x", description="short")
    pid = proj["project_id"]
    client.post(f"/projects/{pid}/evaluate", headers=OWNER)

    r = client.post(f"/projects/{pid}/reset", headers=OWNER)
    assert r.status_code == 200
    assert r.json()["status"] == "pending"
    assert r.json()["feedback"] is None
    assert r.json()["description"] == "short"


def test_api_prefix_routes():
    r = client.post("/api/projects", json={"title": "Prefixed", "description": "desc"}, headers=OWNER)
    assert r.status_code == 201

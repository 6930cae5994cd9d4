import pytest
import requests

from src.project_review.config import ReviewSettings
from src.project_review.domain.errors import ModelResponseInvalid, ModelUnavailable
from src.project_review.domain.models import Recommendation
from src.project_review.services.remote_evaluator import RemoteEvaluationClient

from utils import FakeResponse, FakeSession


def _client(session, token=None):
    return RemoteEvaluationClient(url="https://fn.example.test/evaluate-project", token=token, session=session)


def test_posts_project_id_and_returns_evaluation():
    body = {
        "success": True,
        "evaluation": {"recommendation": "REJECT", "feedback": "Needs work", "suggestions": ["Add goals"]},
        "newStatus": "rejected",
        "usedFallback": True,
    }
    session = FakeSession(FakeResponse(payload=body))
    result = _client(session, token="tok").evaluate("t", "d", project_id="PRJ-2026-0001")

    assert result.recommendation == Recommendation.REJECT
    assert result.suggestions == ["Add goals"]
    url, kwargs = session.calls[0]
    assert url == "https://fn.example.test/evaluate-project"
    assert kwargs["json"] == {"projectId": "PRJ-2026-0001"}
    assert kwargs["headers"]["Authorization"] == "Bearer tok"


def test_error_payload_is_model_unavailable():
    session = FakeSession(FakeResponse(status_code=404, payload={"error": "Project not found"}))
    with pytest.raises(ModelUnavailable, match="Project not found"):
        _client(session).evaluate("t", "d", project_id="missing")


def test_transport_error_is_model_unavailable():
    session = FakeSession(error=requests.exceptions.ConnectTimeout("slow"))
    with pytest.raises(ModelUnavailable):
        _client(session).evaluate("t", "d", project_id="PRJ-1")


def test_reply_without_evaluation_is_invalid():
    session = FakeSession(FakeResponse(payload={"success": True, "newStatus": "approved"}))
    with pytest.raises(ModelResponseInvalid):
        _client(session).evaluate("t", "d", project_id="PRJ-1")


def test_requires_project_id():
    with pytest.raises(ModelUnavailable):
        _client(FakeSession()).evaluate("t", "d")


def test_from_settings_requires_url():
    with pytest.raises(RuntimeError):
        RemoteEvaluationClient.from_settings(ReviewSettings())
    client = RemoteEvaluationClient.from_settings(ReviewSettings(evaluate_function_url="https://fn.test/x"))
    assert client.url == "https://fn.test/x"

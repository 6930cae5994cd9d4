import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)


@pytest.fixture(autouse=True)
def _isolate_state(monkeypatch):
    """Fresh store, heuristic-only settings and an empty notification buffer per test."""
    from src.project_review import config
    from src.project_review.api.routers import projects as projects_router
    from src.project_review.infrastructure import repository
    from src.project_review.services import notifications

    for key in (
        "GEMINI_API_KEY",
        "REVIEW_SERVER_GEMINI_API_KEY",
        "REVIEW_EVALUATE_FUNCTION_URL",
        "REVIEW_FUNCTION_TOKEN",
        "REVIEW_REPO_IMPL",
        "REDIS_URL",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr(repository, "_repo", repository.InMemoryProjectRepository())
    monkeypatch.setattr(repository, "_file_repo", None)
    config.reset_settings(config.ReviewSettings())
    notifications.reset_notification_center(notifications.NotificationCenter())
    projects_router._evaluating.clear()
    yield
    config.reset_settings()
    notifications.reset_notification_center()

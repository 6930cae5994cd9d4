from __future__ import annotations

"""Create, edit and reset transitions for projects.

Edited or reset projects always return to ``pending`` with their feedback
cleared; only the evaluation pipeline moves a project out of ``pending``.
"""

import logging
from typing import Tuple

from ..domain.errors import ProjectNotFound, ProjectValidationError
from ..domain.models import Project, ProjectStatus
from ..infrastructure.repository import ProjectRepository

logger = logging.getLogger("review.projects")


def _validated(title: str, description: str) -> Tuple[str, str]:
    title = (title or "").strip()
    description = (description or "").strip()
    if not title:
        raise ProjectValidationError("Title must not be empty")
    if not description:
        raise ProjectValidationError("Description must not be empty")
    return title, description


def _require(repo: ProjectRepository, project_id: str) -> Project:
    proj = repo.get(project_id)
    if proj is None:
        raise ProjectNotFound(project_id)
    return proj


def create_project(repo: ProjectRepository, owner_id: str, title: str, description: str) -> Project:
    title, description = _validated(title, description)
    pid = repo.insert(title, description, owner_id)
    logger.info("project_created project_id=%s owner_id=%s", pid, owner_id)
    return _require(repo, pid)


def edit_project(repo: ProjectRepository, project_id: str, title: str, description: str) -> Project:
    title, description = _validated(title, description)
    _require(repo, project_id)
    updated = repo.update(
        project_id,
        {
            "title": title,
            "description": description,
            "status": ProjectStatus.PENDING,
            "feedback": None,
        },
    )
    logger.info("project_edited project_id=%s", project_id)
    return updated


def reset_project(repo: ProjectRepository, project_id: str) -> Project:
    _require(repo, project_id)
    updated = repo.update(project_id, {"status": ProjectStatus.PENDING, "feedback": None})
    logger.info("project_reset project_id=%s", project_id)
    return updated

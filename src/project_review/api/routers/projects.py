from __future__ import annotations

from typing import List, Set
import logging
from threading import Lock
from fastapi import APIRouter, Header, HTTPException, Response, status

from ...domain.errors import (
    EvaluationUnavailable,
    ProjectNotFound,
    ProjectValidationError,
    StoreWriteFailure,
)
from ...domain.models import (
    EvaluateResponse,
    NotificationView,
    Project,
    ProjectCreate,
    ProjectStatus,
    ProjectUpdate,
)
from ...infrastructure.repository import get_repo
from ...services.notifications import get_notification_center
from ...services.orchestrator import get_orchestrator
from ...services.project_service import create_project, edit_project, reset_project

logger = logging.getLogger("review.api")

router = APIRouter(prefix="/projects", tags=["projects"])

UNAVAILABLE_DETAIL = "Evaluation service unavailable, try again later"

# Projects with an evaluation in flight; one evaluation per project at a time
_evaluating: Set[str] = set()
_evaluating_lock = Lock()


def _owned(project_id: str, owner_id: str) -> Project:
    proj = get_repo().get(project_id)
    if not proj or proj.owner_id != owner_id:
        raise HTTPException(status_code=404, detail="Project not found")
    return proj


def _reject_if_approved(proj: Project) -> None:
    if proj.status == ProjectStatus.APPROVED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Approved projects cannot be changed")


@router.post("", response_model=Project, status_code=status.HTTP_201_CREATED)
def create(payload: ProjectCreate, x_user_id: str = Header(default="anonymous")) -> Project:
    try:
        return create_project(get_repo(), x_user_id, payload.title, payload.description)
    except ProjectValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except StoreWriteFailure:
        raise HTTPException(status_code=503, detail="Failed to save project")


@router.get("", response_model=List[Project])
def list_projects(x_user_id: str = Header(default="anonymous")) -> List[Project]:
    return get_repo().list(x_user_id)


@router.get("/{project_id}", response_model=Project)
def get_project(project_id: str, x_user_id: str = Header(default="anonymous")) -> Project:
    return _owned(project_id, x_user_id)


@router.put("/{project_id}", response_model=Project)
def update_project(project_id: str, payload: ProjectUpdate, x_user_id: str = Header(default="anonymous")) -> Project:
    _reject_if_approved(_owned(project_id, x_user_id))
    try:
        return edit_project(get_repo(), project_id, payload.title, payload.description)
    except ProjectValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except ProjectNotFound:
        raise HTTPException(status_code=404, detail="Project not found")
    except StoreWriteFailure:
        raise HTTPException(status_code=503, detail="Failed to save project")


@router.post("/{project_id}/reset", response_model=Project)
def reset(project_id: str, x_user_id: str = Header(default="anonymous")) -> Project:
    _reject_if_approved(_owned(project_id, x_user_id))
    try:
        return reset_project(get_repo(), project_id)
    except ProjectNotFound:
        raise HTTPException(status_code=404, detail="Project not found")
    except StoreWriteFailure:
        raise HTTPException(status_code=503, detail="Failed to save project")


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
def delete_project(project_id: str, x_user_id: str = Header(default="anonymous")) -> Response:
    _owned(project_id, x_user_id)
    try:
        get_repo().delete(project_id)
    except StoreWriteFailure:
        raise HTTPException(status_code=503, detail="Failed to delete project")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{project_id}/evaluate", response_model=EvaluateResponse)
def evaluate(project_id: str, x_user_id: str = Header(default="anonymous")) -> EvaluateResponse:
    _owned(project_id, x_user_id)
    with _evaluating_lock:
        if project_id in _evaluating:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Evaluation already in progress")
        _evaluating.add(project_id)
    try:
        outcome = get_orchestrator().run(project_id)
    except ProjectNotFound:
        raise HTTPException(status_code=404, detail="Project not found")
    except (EvaluationUnavailable, StoreWriteFailure) as exc:
        logger.error("evaluate_failed project_id=%s err=%s", project_id, exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=UNAVAILABLE_DETAIL)
    finally:
        with _evaluating_lock:
            _evaluating.discard(project_id)
    return EvaluateResponse(
        project_id=project_id,
        status=outcome.status,
        evaluation=outcome.result,
        strategy=outcome.strategy,
        used_fallback=outcome.used_fallback,
    )


@router.get("/{project_id}/notifications", response_model=List[NotificationView])
def notifications(project_id: str, x_user_id: str = Header(default="anonymous")) -> List[NotificationView]:
    _owned(project_id, x_user_id)
    return [
        NotificationView(kind=n.kind, project_id=n.project_id, emitted_at=n.emitted_at, expires_at=n.expires_at)
        for n in get_notification_center().active(project_id)
    ]

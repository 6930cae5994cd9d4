from __future__ import annotations

import os
from datetime import UTC, datetime
from typing import Any, Dict, List, Mapping, Optional, Protocol
from pathlib import Path
import json
import logging
from threading import RLock
from ..domain.errors import ProjectNotFound, StoreWriteFailure
from ..domain.models import EvaluationResult, Project, ProjectStatus

logger = logging.getLogger("review.store")

UPDATABLE_FIELDS = frozenset({"title", "description", "status", "feedback"})


class ProjectRepository(Protocol):
    def list(self, owner_id: str) -> List[Project]: ...
    def get(self, project_id: str) -> Optional[Project]: ...
    def insert(self, title: str, description: str, owner_id: str) -> str: ...
    def update(self, project_id: str, fields: Mapping[str, Any]) -> Project: ...
    def delete(self, project_id: str) -> bool: ...


def _coerce_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Unsupported project fields: {sorted(unknown)}")
    out: Dict[str, Any] = dict(fields)
    if "status" in out:
        out["status"] = ProjectStatus(out["status"])
    if "feedback" in out and out["feedback"] is not None and not isinstance(out["feedback"], EvaluationResult):
        out["feedback"] = EvaluationResult.model_validate(out["feedback"])
    return out


class InMemoryProjectRepository:
    """Simple in-memory project store keyed by project id."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._projects: Dict[str, Project] = {}
        self._counter: int = 0

    def _generate_project_id(self) -> str:
        self._counter += 1
        year = datetime.now(UTC).year
        return f"PRJ-{year}-{self._counter:04d}"

    def _persist(self) -> None:
        """Hook for durable subclasses; in-memory writes always succeed."""

    def list(self, owner_id: str) -> List[Project]:
        with self._lock:
            items = [p for p in self._projects.values() if p.owner_id == owner_id]
            items.sort(key=lambda p: p.created_at, reverse=True)
            return [p.model_copy(deep=True) for p in items]

    def get(self, project_id: str) -> Optional[Project]:
        with self._lock:
            proj = self._projects.get(project_id)
            return proj.model_copy(deep=True) if proj else None

    def insert(self, title: str, description: str, owner_id: str) -> str:
        with self._lock:
            pid = self._generate_project_id()
            now = datetime.now(UTC)
            self._projects[pid] = Project(
                project_id=pid,
                owner_id=owner_id,
                title=title,
                description=description,
                status=ProjectStatus.PENDING,
                feedback=None,
                created_at=now,
                updated_at=now,
            )
            self._commit(pid, previous=None)
            return pid

    def update(self, project_id: str, fields: Mapping[str, Any]) -> Project:
        changes = _coerce_fields(fields)
        with self._lock:
            proj = self._projects.get(project_id)
            if proj is None:
                raise ProjectNotFound(project_id)
            updated = proj.model_copy(update={**changes, "updated_at": datetime.now(UTC)})
            self._projects[project_id] = updated
            self._commit(project_id, previous=proj)
            return updated.model_copy(deep=True)

    def delete(self, project_id: str) -> bool:
        with self._lock:
            proj = self._projects.pop(project_id, None)
            if proj is None:
                return False
            self._commit(project_id, previous=proj)
            return True

    def _commit(self, project_id: str, previous: Optional[Project]) -> None:
        try:
            self._persist()
        except OSError as exc:
            # Keep memory consistent with what is on disk
            if previous is None:
                self._projects.pop(project_id, None)
            else:
                self._projects[project_id] = previous
            logger.error("store_write_failed project_id=%s err=%s", project_id, exc)
            raise StoreWriteFailure(f"Failed to persist project {project_id}") from exc


class FileProjectRepository(InMemoryProjectRepository):
    """JSON file-backed repository for development persistence.

    Structure: a single JSON object mapping project_id -> project dict.
    Thread-safe with a coarse RLock; suitable for dev/test, not high concurrency.
    """

    def __init__(self, file_path: Optional[str] = None) -> None:
        super().__init__()
        root = Path(__file__).resolve().parents[3]
        default_path = root / "run" / "projects.json"
        self._path = Path(file_path or os.getenv("REVIEW_PROJECTS_FILE", str(default_path)))
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._load()

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            # Unreadable file: start clean rather than refuse to boot
            logger.warning("store_load_failed path=%s err=%s", self._path, exc)
            return
        max_seq = 0
        for pid, p in (data or {}).items():
            try:
                self._projects[pid] = Project.model_validate(p)
            except ValueError:
                logger.warning("store_skip_invalid_record project_id=%s", pid)
                continue
            # track numeric suffix for counter continuity: PRJ-YYYY-####
            parts = str(pid).split("-")
            if len(parts) == 3 and parts[2].isdigit():
                max_seq = max(max_seq, int(parts[2]))
        self._counter = max_seq

    def _persist(self) -> None:
        obj = {pid: proj.model_dump(mode="json") for pid, proj in self._projects.items()}
        self._path.write_text(json.dumps(obj, indent=2), encoding="utf-8")


_repo: ProjectRepository = InMemoryProjectRepository()
_file_repo: ProjectRepository | None = None


def get_repo() -> ProjectRepository:
    global _file_repo
    impl = os.getenv("REVIEW_REPO_IMPL", "memory").lower()
    if impl == "file":
        if _file_repo is None:
            _file_repo = FileProjectRepository()
        return _file_repo
    return _repo

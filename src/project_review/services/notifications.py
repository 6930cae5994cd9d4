from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from threading import Lock
from typing import Callable, Dict, List, Optional

from ..config import get_settings
from ..infrastructure.events import publish_event

_logger = logging.getLogger("review.notifications")

APPROVED = "approved"
REJECTED = "rejected"
DEFAULT_DISPLAY_MS = 2500

Listener = Callable[[str], None]


@dataclass
class Notification:
    kind: str
    project_id: str
    emitted_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    display_ms: int = DEFAULT_DISPLAY_MS

    @property
    def expires_at(self) -> datetime:
        return self.emitted_at + timedelta(milliseconds=self.display_ms)

    def active(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now(UTC)) < self.expires_at


class NotificationCenter:
    """Approved/rejected signals for the presentation layer.

    Each signal stays visible for ``display_ms`` and then clears itself; it has
    no effect on project data.
    """

    def __init__(self, display_ms: int = DEFAULT_DISPLAY_MS) -> None:
        self.display_ms = display_ms
        self._lock = Lock()
        self._recent: List[Notification] = []
        self._listeners: Dict[str, List[Listener]] = {APPROVED: [], REJECTED: []}

    def on_approved(self, listener: Listener) -> None:
        self._listeners[APPROVED].append(listener)

    def on_rejected(self, listener: Listener) -> None:
        self._listeners[REJECTED].append(listener)

    def emit(self, kind: str, project_id: str) -> Notification:
        if kind not in self._listeners:
            raise ValueError(f"Unknown notification kind: {kind}")
        note = Notification(kind=kind, project_id=project_id, display_ms=self.display_ms)
        with self._lock:
            self._prune(note.emitted_at)
            self._recent.append(note)
        _logger.info("project_%s project_id=%s", kind, project_id)
        publish_event(f"project.{kind}", {"project_id": project_id, "emitted_at": note.emitted_at.isoformat()})
        for listener in list(self._listeners[kind]):
            try:
                listener(project_id)
            except Exception:
                # A broken listener must not undo a persisted evaluation
                _logger.exception("notification_listener_failed kind=%s project_id=%s", kind, project_id)
        return note

    def active(self, project_id: Optional[str] = None, now: Optional[datetime] = None) -> List[Notification]:
        now = now or datetime.now(UTC)
        with self._lock:
            self._prune(now)
            return [n for n in self._recent if project_id is None or n.project_id == project_id]

    def _prune(self, now: datetime) -> None:
        self._recent = [n for n in self._recent if n.active(now)]


_center: Optional[NotificationCenter] = None


def get_notification_center() -> NotificationCenter:
    global _center
    if _center is None:
        _center = NotificationCenter(display_ms=get_settings().notification_ms)
    return _center


def reset_notification_center(center: Optional[NotificationCenter] = None) -> None:
    global _center
    _center = center

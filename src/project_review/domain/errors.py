from __future__ import annotations

"""Error kinds raised by the evaluation pipeline and the project store."""


class EvaluationError(Exception):
    """Base class for review service errors."""


class ModelUnavailable(EvaluationError):
    """The external model (or remote function) call could not be completed."""


class ModelResponseInvalid(EvaluationError):
    """A 2xx reply did not carry the expected payload field."""


class EvaluationUnavailable(EvaluationError):
    """Every evaluation strategy failed; nothing was persisted."""


class StoreWriteFailure(EvaluationError):
    """The project store rejected a write."""


class ProjectNotFound(EvaluationError, KeyError):
    def __init__(self, project_id: str) -> None:
        super().__init__(project_id)
        self.project_id = project_id

    def __str__(self) -> str:
        return f"Project not found: {self.project_id}"


class ProjectValidationError(EvaluationError, ValueError):
    """Title or description failed the non-empty checks."""

from __future__ import annotations

"""Server-side evaluation function.

Holds the server credential, evaluates with its own model client and the
shared heuristic, and persists the verdict. Errors are reported as
``{"error": ...}`` with a non-2xx status.
"""

from typing import Optional
import logging
from fastapi import APIRouter, Header, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ...config import get_settings
from ...domain.errors import EvaluationUnavailable, ProjectNotFound, StoreWriteFailure
from ...domain.models import EvaluateFunctionRequest, EvaluateFunctionResponse
from ...services.orchestrator import get_function_orchestrator

logger = logging.getLogger("review.function")

router = APIRouter(prefix="/functions", tags=["functions"])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Keep the function's ``{"error": ...}`` shape for malformed bodies."""
    if request.url.path.endswith(f"{router.prefix}/evaluate-project"):
        logger.warning("function_request_invalid path=%s errors=%s", request.url.path, exc.errors())
        return _error(400, "Invalid request body")
    return await request_validation_exception_handler(request, exc)


@router.post("/evaluate-project", response_model=EvaluateFunctionResponse)
def evaluate_project(
    payload: EvaluateFunctionRequest,
    authorization: Optional[str] = Header(default=None),
):
    token = get_settings().function_token
    if token and authorization != f"Bearer {token}":
        return _error(401, "Unauthorized")
    if not payload.projectId:
        return _error(400, "Project ID is required")

    try:
        outcome = get_function_orchestrator().run(payload.projectId)
    except ProjectNotFound:
        return _error(404, "Project not found")
    except StoreWriteFailure:
        return _error(500, "Failed to update project")
    except EvaluationUnavailable as exc:
        logger.error("function_evaluation_failed project_id=%s err=%s", payload.projectId, exc)
        return _error(500, str(exc))

    logger.info("Project %s evaluated: %s", payload.projectId, outcome.status.value)
    return EvaluateFunctionResponse(
        success=True,
        evaluation=outcome.result,
        newStatus=outcome.status,
        usedFallback=outcome.used_fallback,
    )

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field


class ProjectStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Recommendation(str, Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    PENDING = "PENDING"


STATUS_BY_RECOMMENDATION = {
    Recommendation.APPROVE: ProjectStatus.APPROVED,
    Recommendation.REJECT: ProjectStatus.REJECTED,
    Recommendation.PENDING: ProjectStatus.PENDING,
}


def status_for(recommendation: Recommendation) -> ProjectStatus:
    return STATUS_BY_RECOMMENDATION[recommendation]


class EvaluationResult(BaseModel):
    recommendation: Recommendation
    feedback: str = Field(min_length=1)
    suggestions: List[str] = Field(default_factory=list)


class ProjectCreate(BaseModel):
    title: str
    description: str


class ProjectUpdate(BaseModel):
    title: str
    description: str


class Project(BaseModel):
    project_id: str
    owner_id: str
    title: str
    description: str
    status: ProjectStatus = ProjectStatus.PENDING
    feedback: Optional[EvaluationResult] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class EvaluateResponse(BaseModel):
    project_id: str
    status: ProjectStatus
    evaluation: EvaluationResult
    strategy: str
    used_fallback: bool


class EvaluateFunctionRequest(BaseModel):
    projectId: Optional[str] = None


class EvaluateFunctionResponse(BaseModel):
    """Wire shape of the server-side evaluation function."""

    success: bool = True
    evaluation: EvaluationResult
    newStatus: ProjectStatus
    usedFallback: bool = False


class NotificationView(BaseModel):
    kind: str
    project_id: str
    emitted_at: datetime
    expires_at: datetime

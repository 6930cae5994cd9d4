from __future__ import annotations

"""Evaluation pipeline: ordered strategies with fallback and a single write.

Strategies are tried in order until one returns a result. A PENDING verdict
counts as a result. Failures and timeouts only move the chain forward. The
winning result is written to the store once, and an approved/rejected
notification is emitted after that write succeeds.
"""

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence
import logging
import time

from ..config import ReviewSettings, get_settings
from ..domain.errors import EvaluationUnavailable, ProjectNotFound, StoreWriteFailure
from ..domain.models import EvaluationResult, Project, ProjectStatus, Recommendation, status_for
from ..infrastructure.repository import ProjectRepository, get_repo
from ..observability.metrics import observe_attempt
from .heuristic import HeuristicScorer
from .model_client import GeminiModelClient
from .notifications import APPROVED, REJECTED, NotificationCenter, get_notification_center
from .remote_evaluator import RemoteEvaluationClient

LOG = logging.getLogger("review.evaluation")

_NOTIFY_KIND = {
    Recommendation.APPROVE: APPROVED,
    Recommendation.REJECT: REJECTED,
}


class EvaluationStrategy(Protocol):
    name: str
    is_fallback: bool

    def evaluate(self, title: str, description: str, project_id: Optional[str] = None) -> EvaluationResult: ...


@dataclass(frozen=True)
class EvaluationOutcome:
    project_id: str
    result: EvaluationResult
    status: ProjectStatus
    strategy: str
    used_fallback: bool


class EvaluationOrchestrator:
    def __init__(
        self,
        strategies: Sequence[EvaluationStrategy],
        repo: ProjectRepository,
        notifier: Optional[NotificationCenter] = None,
        attempt_timeout: Optional[float] = 15.0,
    ) -> None:
        if not strategies:
            raise ValueError("At least one evaluation strategy is required")
        self.strategies: List[EvaluationStrategy] = list(strategies)
        self.repo = repo
        self.notifier = notifier
        self.attempt_timeout = attempt_timeout

    def _call(self, strategy: EvaluationStrategy, project: Project) -> EvaluationResult:
        if self.attempt_timeout is None or getattr(strategy, "is_fallback", False):
            return strategy.evaluate(project.title, project.description, project_id=project.project_id)
        # One worker per attempt: the deadline starts with the call, never behind other projects
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="review-eval")
        future = pool.submit(strategy.evaluate, project.title, project.description, project_id=project.project_id)
        try:
            return future.result(timeout=self.attempt_timeout)
        except FutureTimeout:
            # A running call cannot be interrupted; its late result is dropped
            future.cancel()
            raise
        finally:
            pool.shutdown(wait=False)

    def _attempt(self, strategy: EvaluationStrategy, project: Project) -> Optional[EvaluationResult]:
        start = time.perf_counter()
        try:
            result = self._call(strategy, project)
        except FutureTimeout:
            observe_attempt(strategy.name, "timeout", time.perf_counter() - start)
            LOG.warning(
                "strategy_timeout strategy=%s project_id=%s timeout_s=%s",
                strategy.name,
                project.project_id,
                self.attempt_timeout,
            )
            return None
        except Exception as exc:
            observe_attempt(strategy.name, "error", time.perf_counter() - start)
            LOG.warning(
                "strategy_failed strategy=%s project_id=%s err=%s: %s",
                strategy.name,
                project.project_id,
                type(exc).__name__,
                exc,
            )
            return None
        if not isinstance(result, EvaluationResult):
            observe_attempt(strategy.name, "invalid", time.perf_counter() - start)
            LOG.warning("strategy_invalid_result strategy=%s project_id=%s", strategy.name, project.project_id)
            return None
        observe_attempt(strategy.name, "success", time.perf_counter() - start)
        return result

    def run(self, project_id: str) -> EvaluationOutcome:
        project = self.repo.get(project_id)
        if project is None:
            raise ProjectNotFound(project_id)

        for strategy in self.strategies:
            result = self._attempt(strategy, project)
            if result is None:
                continue
            status = status_for(result.recommendation)
            self._persist(project_id, result, status)
            LOG.info(
                "project_evaluated project_id=%s status=%s strategy=%s",
                project_id,
                status.value,
                strategy.name,
            )
            self._notify(project_id, result)
            return EvaluationOutcome(
                project_id=project_id,
                result=result,
                status=status,
                strategy=strategy.name,
                used_fallback=bool(getattr(strategy, "is_fallback", False)),
            )

        LOG.error("evaluation_exhausted project_id=%s strategies=%s", project_id, [s.name for s in self.strategies])
        raise EvaluationUnavailable("Evaluation service unavailable, try again later")

    def evaluate(self, project_id: str) -> EvaluationResult:
        return self.run(project_id).result

    def _persist(self, project_id: str, result: EvaluationResult, status: ProjectStatus) -> None:
        try:
            self.repo.update(project_id, {"status": status, "feedback": result})
        except (StoreWriteFailure, ProjectNotFound):
            raise
        except Exception as exc:
            LOG.error("store_update_failed project_id=%s err=%s", project_id, exc)
            raise StoreWriteFailure(f"Failed to update project {project_id}") from exc

    def _notify(self, project_id: str, result: EvaluationResult) -> None:
        kind = _NOTIFY_KIND.get(result.recommendation)
        if kind is None or self.notifier is None:
            return
        self.notifier.emit(kind, project_id)


def build_client_strategies(settings: ReviewSettings) -> List[EvaluationStrategy]:
    """Direct model call, then the server-side function, then the heuristic."""
    strategies: List[EvaluationStrategy] = []
    if settings.gemini_api_key:
        strategies.append(GeminiModelClient.from_settings(settings))
    else:
        LOG.debug("direct_model_strategy_disabled reason=no_api_key")
    if settings.evaluate_function_url:
        strategies.append(RemoteEvaluationClient.from_settings(settings))
    else:
        LOG.debug("remote_function_strategy_disabled reason=no_url")
    strategies.append(HeuristicScorer())
    return strategies


def build_function_strategies(settings: ReviewSettings) -> List[EvaluationStrategy]:
    """Chain used by the server-side function: its own model key, then the heuristic."""
    strategies: List[EvaluationStrategy] = []
    if settings.server_gemini_api_key:
        strategies.append(GeminiModelClient.from_settings(settings, api_key=settings.server_gemini_api_key))
    strategies.append(HeuristicScorer())
    return strategies


def get_orchestrator() -> EvaluationOrchestrator:
    settings = get_settings()
    return EvaluationOrchestrator(
        build_client_strategies(settings),
        repo=get_repo(),
        notifier=get_notification_center(),
        attempt_timeout=settings.attempt_timeout,
    )


def get_function_orchestrator() -> EvaluationOrchestrator:
    settings = get_settings()
    return EvaluationOrchestrator(
        build_function_strategies(settings),
        repo=get_repo(),
        notifier=None,
        attempt_timeout=settings.attempt_timeout,
    )

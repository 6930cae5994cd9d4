from __future__ import annotations

"""Deterministic project scoring used when no model is reachable.

Four checks worth 25 points each; the total maps to a recommendation tier.
Pure and total: no I/O, never raises.
"""

from typing import List, Optional, Tuple

from ..domain.models import EvaluationResult, Recommendation

MIN_TITLE_CHARS = 5
MIN_DESCRIPTION_CHARS = 50
DETAILED_DESCRIPTION_CHARS = 100
POINTS_PER_CHECK = 25
APPROVE_THRESHOLD = 75
PENDING_THRESHOLD = 50
GOAL_KEYWORDS = ("goal", "objective", "purpose", "aim")

SUGGEST_TITLE = "Provide a more descriptive title (at least 5 characters)"
SUGGEST_DESCRIPTION = "Provide a more detailed description (at least 50 characters)"
SUGGEST_DETAIL = "Add more details about your project goals and implementation"
SUGGEST_GOALS = "Clearly state your project's goals and objectives"

TIER_FEEDBACK = {
    Recommendation.APPROVE: "Your project meets the basic criteria and has been approved. Good job on providing clear details!",
    Recommendation.PENDING: "Your project shows promise but needs some improvements before approval.",
    Recommendation.REJECT: "Your project needs significant improvements before it can be approved.",
}


def _checks(title: Optional[str], description: Optional[str]) -> Tuple[int, List[str]]:
    title = (title or "").strip()
    description = (description or "").strip()
    lowered = description.lower()

    score = 0
    suggestions: List[str] = []
    for passed, suggestion in (
        (len(title) >= MIN_TITLE_CHARS, SUGGEST_TITLE),
        (len(description) >= MIN_DESCRIPTION_CHARS, SUGGEST_DESCRIPTION),
        (len(description) >= DETAILED_DESCRIPTION_CHARS, SUGGEST_DETAIL),
        (any(k in lowered for k in GOAL_KEYWORDS), SUGGEST_GOALS),
    ):
        if passed:
            score += POINTS_PER_CHECK
        else:
            suggestions.append(suggestion)
    return score, suggestions


def points(title: Optional[str], description: Optional[str]) -> int:
    """Return the 0-100 heuristic score."""
    return _checks(title, description)[0]


def recommendation_for(score: int) -> Recommendation:
    if score >= APPROVE_THRESHOLD:
        return Recommendation.APPROVE
    if score >= PENDING_THRESHOLD:
        return Recommendation.PENDING
    return Recommendation.REJECT


def score(title: Optional[str], description: Optional[str]) -> EvaluationResult:
    total, suggestions = _checks(title, description)
    recommendation = recommendation_for(total)
    return EvaluationResult(
        recommendation=recommendation,
        feedback=TIER_FEEDBACK[recommendation],
        suggestions=suggestions,
    )


class HeuristicScorer:
    """Strategy wrapper around :func:`score`."""

    name = "heuristic"
    is_fallback = True

    def evaluate(self, title: str, description: str, project_id: Optional[str] = None) -> EvaluationResult:
        return score(title, description)

from __future__ import annotations

"""Gemini-backed project evaluation.

The model is asked for a JSON verdict but answers in free text, so the reply
goes through a lenient extractor: a fenced code block first, then the first
balanced ``{...}`` span, then the whole text. Text that never parses is kept as
a PENDING result carrying the raw reply.
"""

from typing import Any, Dict, Iterator, List, Optional, Tuple
import json
import logging
import re

import requests
from requests.adapters import HTTPAdapter

from ..config import ReviewSettings
from ..domain.errors import ModelResponseInvalid, ModelUnavailable
from ..domain.models import EvaluationResult, Recommendation

LOG = logging.getLogger("review.llm")

PROMPT_TEMPLATE = """
You are an AI project evaluator. Please evaluate the following project and provide:
1. A recommendation (APPROVE or REJECT)
2. Detailed feedback explaining your decision
3. Specific suggestions for improvement if rejecting

Project Title: {title}
Project Description: {description}

Evaluation Criteria:
- Clarity and feasibility of the project
- Potential impact and value
- Technical soundness
- Resource requirements
- Risk assessment

Please provide your response in the following JSON format:
{{
  "recommendation": "APPROVE" or "REJECT",
  "feedback": "Detailed explanation of your decision",
  "suggestions": ["suggestion 1", "suggestion 2", ...]
}}
"""

_FENCED_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)

_RECOMMENDATIONS = {
    "APPROVE": Recommendation.APPROVE,
    "REJECT": Recommendation.REJECT,
}


def build_prompt(title: str, description: str) -> str:
    return PROMPT_TEMPLATE.format(title=title, description=description)


def _build_session() -> requests.Session:
    # Fallback across strategies replaces transport-level retries
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=0, pool_connections=10, pool_maxsize=10)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def _first_balanced_object(text: str) -> Optional[str]:
    start = text.find("{")
    if start < 0:
        return None
    depth = 0
    in_string = False
    escaped = False
    for idx in range(start, len(text)):
        ch = text[idx]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : idx + 1]
    return None


def _json_candidates(text: str) -> Iterator[str]:
    fenced = _FENCED_RE.search(text)
    if fenced:
        yield fenced.group(1)
    span = _first_balanced_object(text)
    if span:
        yield span
    yield text


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Return the first JSON object found in ``text``, or ``None``."""
    for candidate in _json_candidates(text):
        try:
            data = json.loads(candidate)
        except (TypeError, ValueError):
            continue
        if isinstance(data, dict):
            return data
    return None


def _normalize_suggestions(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    return [str(s).strip() for s in raw if s is not None and str(s).strip()]


def parse_model_reply(text: str) -> EvaluationResult:
    """Turn the model's free-text answer into an :class:`EvaluationResult`.

    Never raises for unparsable text: the raw reply becomes PENDING feedback.
    """
    if not text or not text.strip():
        raise ModelResponseInvalid("Model reply text is empty")
    data = extract_json_object(text)
    if data is None:
        LOG.info("model_reply_unstructured", extra={"chars": len(text)})
        return EvaluationResult(recommendation=Recommendation.PENDING, feedback=text, suggestions=[])

    raw_rec = data.get("recommendation")
    recommendation = _RECOMMENDATIONS.get(raw_rec, Recommendation.PENDING) if isinstance(raw_rec, str) else Recommendation.PENDING
    feedback = data.get("feedback")
    if not isinstance(feedback, str) or not feedback.strip():
        feedback = text
    # Approved projects carry no improvement suggestions
    suggestions = [] if recommendation == Recommendation.APPROVE else _normalize_suggestions(data.get("suggestions"))
    return EvaluationResult(recommendation=recommendation, feedback=feedback, suggestions=suggestions)


def _extract_text(payload: Any) -> str:
    try:
        text = payload["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ModelResponseInvalid("Model reply is missing candidates[0].content.parts[0].text") from exc
    if not isinstance(text, str) or not text.strip():
        raise ModelResponseInvalid("Model reply text is empty")
    return text


class GeminiModelClient:
    """Calls the Gemini ``generateContent`` endpoint for one project."""

    name = "direct-model"
    is_fallback = False

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str,
        model: str,
        timeout: Tuple[float, float] = (3, 15),
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._timeout = timeout
        self._session = session or _build_session()

    @classmethod
    def from_settings(cls, settings: ReviewSettings, api_key: Optional[str] = None) -> "GeminiModelClient":
        return cls(
            api_key=api_key if api_key is not None else settings.gemini_api_key,
            base_url=settings.gemini_base_url,
            model=settings.gemini_model,
            timeout=settings.llm_timeout,
        )

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def generate(self, prompt: str) -> str:
        if not self.api_key:
            raise ModelUnavailable("Gemini API key not configured")
        LOG.debug("model_call", extra={"model": self.model, "base_url": self.base_url})
        try:
            resp = self._session.post(
                self.endpoint,
                params={"key": self.api_key},
                json={"contents": [{"parts": [{"text": prompt}]}]},
                headers={"Content-Type": "application/json"},
                timeout=self._timeout,
            )
        except requests.exceptions.RequestException as exc:
            LOG.warning("model_call_failed", extra={"model": self.model, "err": str(exc)})
            raise ModelUnavailable(f"Gemini request failed: {exc}") from exc
        if not resp.ok:
            LOG.warning("model_call_rejected", extra={"model": self.model, "status": resp.status_code, "body": resp.text[:500]})
            raise ModelUnavailable(f"Gemini API returned HTTP {resp.status_code}")
        try:
            payload = resp.json()
        except ValueError as exc:
            raise ModelResponseInvalid("Gemini reply is not JSON") from exc
        return _extract_text(payload)

    def evaluate(self, title: str, description: str, project_id: Optional[str] = None) -> EvaluationResult:
        text = self.generate(build_prompt(title, description))
        result = parse_model_reply(text)
        LOG.info("model_evaluation", extra={"model": self.model, "recommendation": result.recommendation.value})
        return result

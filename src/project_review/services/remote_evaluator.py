from __future__ import annotations

"""Client for the server-side ``evaluate-project`` function.

The function holds its own model credential and falls back to the heuristic
internally; this client only forwards the project id and reads the verdict.
"""

from typing import Any, Optional, Tuple
import logging

import requests
from requests.adapters import HTTPAdapter
from pydantic import ValidationError

from ..config import ReviewSettings
from ..domain.errors import ModelResponseInvalid, ModelUnavailable
from ..domain.models import EvaluateFunctionResponse, EvaluationResult

LOG = logging.getLogger("review.llm")


def _build_session() -> requests.Session:
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=0)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def _error_message(resp: requests.Response) -> str:
    try:
        body: Any = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return resp.text[:200]


class RemoteEvaluationClient:
    name = "remote-function"
    is_fallback = False

    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        timeout: Tuple[float, float] = (3, 15),
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self._token = token
        self._timeout = timeout
        self._session = session or _build_session()

    @classmethod
    def from_settings(cls, settings: ReviewSettings) -> "RemoteEvaluationClient":
        if not settings.evaluate_function_url:
            raise RuntimeError("REVIEW_EVALUATE_FUNCTION_URL is not configured")
        return cls(
            url=settings.evaluate_function_url,
            token=settings.function_token,
            timeout=settings.llm_timeout,
        )

    def evaluate(self, title: str, description: str, project_id: Optional[str] = None) -> EvaluationResult:
        if not project_id:
            raise ModelUnavailable("Remote evaluation requires a project id")
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        try:
            resp = self._session.post(self.url, json={"projectId": project_id}, headers=headers, timeout=self._timeout)
        except requests.exceptions.RequestException as exc:
            LOG.warning("remote_function_failed", extra={"url": self.url, "err": str(exc)})
            raise ModelUnavailable(f"Remote evaluation request failed: {exc}") from exc
        if not resp.ok:
            message = _error_message(resp)
            LOG.warning("remote_function_rejected", extra={"url": self.url, "status": resp.status_code, "err": message})
            raise ModelUnavailable(f"Remote evaluation returned HTTP {resp.status_code}: {message}")
        try:
            body = EvaluateFunctionResponse.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise ModelResponseInvalid("Remote evaluation reply is missing 'evaluation'") from exc
        if not body.success:
            raise ModelUnavailable("Remote evaluation reported failure")
        LOG.info("remote_function_evaluation", extra={"project_id": project_id, "used_fallback": body.usedFallback})
        return body.evaluation

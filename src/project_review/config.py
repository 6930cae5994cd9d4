from __future__ import annotations

"""Process-wide settings for the review service.

Values are read from the environment once and injected into the clients that
need them, so credentials never live in module-level literals.

Env vars:
- GEMINI_API_KEY / GEMINI_BASE_URL / GEMINI_MODEL
- REVIEW_SERVER_GEMINI_API_KEY (credential of the server-side function;
  defaults to GEMINI_API_KEY)
- REVIEW_EVALUATE_FUNCTION_URL / REVIEW_FUNCTION_TOKEN
- REVIEW_LLM_CONNECT_TIMEOUT (default 3) / REVIEW_LLM_READ_TIMEOUT (default 15)
- REVIEW_ATTEMPT_TIMEOUT (default 15)
- REVIEW_NOTIFICATION_MS (default 2500)
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple


DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_GEMINI_MODEL = "gemini-1.5-flash-latest"


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"Invalid numeric value for {name}: {raw!r}")


@dataclass(frozen=True)
class ReviewSettings:
    gemini_api_key: Optional[str] = None
    gemini_base_url: str = DEFAULT_GEMINI_BASE_URL
    gemini_model: str = DEFAULT_GEMINI_MODEL
    server_gemini_api_key: Optional[str] = None
    evaluate_function_url: Optional[str] = None
    function_token: Optional[str] = None
    connect_timeout: float = 3.0
    read_timeout: float = 15.0
    attempt_timeout: float = 15.0
    notification_ms: int = 2500

    @property
    def llm_timeout(self) -> Tuple[float, float]:
        return (self.connect_timeout, self.read_timeout)

    @staticmethod
    def from_env(env: Optional[Mapping[str, str]] = None) -> "ReviewSettings":
        env = env if env is not None else os.environ
        api_key = (env.get("GEMINI_API_KEY") or "").strip() or None
        server_key = (env.get("REVIEW_SERVER_GEMINI_API_KEY") or "").strip() or api_key
        return ReviewSettings(
            gemini_api_key=api_key,
            gemini_base_url=(env.get("GEMINI_BASE_URL") or DEFAULT_GEMINI_BASE_URL).rstrip("/"),
            gemini_model=env.get("GEMINI_MODEL") or DEFAULT_GEMINI_MODEL,
            server_gemini_api_key=server_key,
            evaluate_function_url=(env.get("REVIEW_EVALUATE_FUNCTION_URL") or "").strip() or None,
            function_token=(env.get("REVIEW_FUNCTION_TOKEN") or "").strip() or None,
            connect_timeout=_get_float(env, "REVIEW_LLM_CONNECT_TIMEOUT", 3.0),
            read_timeout=_get_float(env, "REVIEW_LLM_READ_TIMEOUT", 15.0),
            attempt_timeout=_get_float(env, "REVIEW_ATTEMPT_TIMEOUT", 15.0),
            notification_ms=int(_get_float(env, "REVIEW_NOTIFICATION_MS", 2500)),
        )


_settings: Optional[ReviewSettings] = None


def get_settings() -> ReviewSettings:
    global _settings
    if _settings is None:
        _settings = ReviewSettings.from_env()
    return _settings


def reset_settings(settings: Optional[ReviewSettings] = None) -> None:
    """Drop the cached settings (or pin explicit ones); used by tests."""
    global _settings
    _settings = settings

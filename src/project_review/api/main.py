from __future__ import annotations

from datetime import UTC, datetime
from dotenv import load_dotenv
import logging
from fastapi import FastAPI, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from .routers.projects import router as projects_router
from .routers.functions import router as functions_router, validation_error_handler
from ..config import get_settings
from ..observability.metrics import metrics_middleware_factory

load_dotenv()  # Load GEMINI_API_KEY and friends from .env if present

app = FastAPI(title="Project Review API", version="0.1.0")
app.add_exception_handler(RequestValidationError, validation_error_handler)

logging.basicConfig(level=logging.INFO)

# Observability: request latency histogram
app.middleware("http")(metrics_middleware_factory())

app.include_router(projects_router)
app.include_router(functions_router)

# Also expose the same routers under /api
app.include_router(projects_router, prefix="/api")
app.include_router(functions_router, prefix="/api")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def root():
    return {"name": "Project Review API", "version": "0.1.0"}


@app.get("/health")
def health():
    settings = get_settings()
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        "components": {
            "api": "ok",
            "model": "configured" if settings.gemini_api_key else "heuristic-only",
            "remote_function": "configured" if settings.evaluate_function_url else "disabled",
        },
    }


@app.get("/metrics")
def metrics() -> Response:
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)

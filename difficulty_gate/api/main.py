"""
FastAPI application for the difficulty gate.

Provides REST API for:
- Difficulty scoring (D from components, overall item evaluation, ambiguity)
- Target profiles from reference texts, item structure or the baseline
- Structure recovery from OCR text and worksheet images
- Evaluation-guided cloze and multiple-choice generation
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from config import get_settings
from difficulty_gate import API_VERSION, __version__
from difficulty_gate.errors import DifficultyGateError

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    logger.info("Starting difficulty-gate service...")
    logger.info(
        f"LLM backend: {settings.llm_backend}, embeddings: {settings.embedding_backend} "
        f"(dim={settings.embedding_dimension})"
    )
    logger.info(f"Service started on {settings.api_host}:{settings.api_port}")

    yield

    logger.info("Shutting down difficulty-gate service...")


app = FastAPI(
    title="Difficulty Gate",
    description="""
    Evaluation-guided candidate generation for language-learning exercises.

    ## Features

    - **Difficulty**: D = wL*L + wS*S + wA*A + wR*R over four normalized axes
    - **Targets**: mean components and tolerances from 1-3 reference items
    - **Structure**: blank slots and multiple-choice parts from OCR text or images
    - **Generation**: candidates scored, ranked and gated against the source

    ## Generation Flow

    ```
    source item
        ↓ structure (slots / parsed choices)
    candidates (model + deterministic)
        ↓ score, rank by distance to target
    similarity gate → softening → repair → fallback acceptance
    ```
    """,
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ========================================
# Error Handlers
# ========================================


@app.exception_handler(DifficultyGateError)
async def difficulty_gate_error_handler(request: Request, exc: DifficultyGateError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error(f"{request.url.path} failed: {exc.error_type} {exc.message}")
    else:
        logger.info(f"{request.url.path} rejected: {exc.error_type} ({exc.reason})")
    return JSONResponse(
        status_code=exc.http_status,
        content={"ok": False, "apiVersion": API_VERSION, **exc.to_dict()},
    )


# ========================================
# Health & Status Endpoints
# ========================================


@app.get("/", tags=["Health"])
def root() -> dict[str, str]:
    """Root endpoint returning service info."""
    return {
        "service": "difficulty-gate",
        "version": __version__,
        "apiVersion": API_VERSION,
        "status": "ok",
    }


@app.get("/health", tags=["Health"])
def health_check() -> dict[str, Any]:
    return {"ok": True, "apiVersion": API_VERSION, "status": "healthy"}


@app.get("/config", tags=["Health"])
def get_config() -> dict[str, Any]:
    """Get current configuration (non-sensitive)."""
    return {"ok": True, "apiVersion": API_VERSION, **settings.public_config()}


# ========================================
# Import and mount routers
# ========================================

from difficulty_gate.api.routers import (  # noqa: E402
    difficulty_router,
    generate_router,
    structure_router,
    target_router,
)

app.include_router(difficulty_router.router, prefix="/difficulty", tags=["Difficulty"])
app.include_router(target_router.router, prefix="/target", tags=["Target"])
app.include_router(structure_router.router, tags=["Structure"])
app.include_router(generate_router.router, prefix="/generate", tags=["Generation"])

"""FastAPI server for the CEA Querétaro support agent.

Run with:
    uvicorn cea_agent.server:app --reload --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from cea_agent.agent import create_cea_orchestrator
from cea_agent.api.routes import router
from cea_agent.config import CORS_ORIGINS, SERVER_HOST, SERVER_PORT

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Build the orchestrator once; its store and folio counters live for
    the whole process."""
    logger.info("Building CEA orchestrator…")
    application.state.orchestrator = create_cea_orchestrator()
    logger.info("Orchestrator ready.")
    yield


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="CEA Querétaro Support Agent",
    description=(
        "Customer-support chat for CEA Querétaro — leaks, payments, "
        "consumption, contracts and ticket follow-up."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID to every request for log correlation.

    Echoed back in the ``X-Request-ID`` response header.
    """
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(router)


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "CEA Querétaro Support Agent",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "chat": "/api/chat",
    }


if __name__ == "__main__":
    logger.info("Starting CEA agent server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "cea_agent.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
    )

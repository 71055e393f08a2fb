"""FastAPI route definitions for the CEA agent API."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
import uuid

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from cea_agent.api.schemas import ChatRequest, ChatResponse, ErrorResponse, HealthResponse
from cea_agent.config import REQUEST_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

router = APIRouter()

APOLOGY_MESSAGE = "Lo siento, hubo un error procesando tu mensaje. Por favor intenta de nuevo."


def _get_orchestrator(request: Request):
    """Retrieve the orchestrator built during the FastAPI lifespan."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=503,
            detail="The agent is still starting up. Please try again in a moment.",
        )
    return orchestrator


def _error(status_code: int, error: str, conversation_id: str, response: str = "") -> JSONResponse:
    body = ErrorResponse(error=error, response=response, conversation_id=conversation_id)
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True))


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.post("/api/chat", response_model=ChatResponse, response_model_exclude_none=True)
@router.post("/webhook", response_model=ChatResponse, response_model_exclude_none=True)
async def chat(payload: ChatRequest, http_request: Request):
    """Answer one user message.

    ``/webhook`` is an alias kept for n8n.  The workflow is synchronous (it
    blocks on the model and tool backend), so it runs in a worker thread,
    bounded by ``REQUEST_TIMEOUT_SECONDS``.  A run that outlives the timeout
    is flagged as cancelled so it never writes its history back.
    """
    request_id = getattr(http_request.state, "request_id", "?")

    if not payload.message:
        return _error(
            400,
            "Missing required field: message",
            payload.conversation_id or str(uuid.uuid4()),
        )

    orchestrator = _get_orchestrator(http_request)
    logger.info("[%s] Processing message: %s...", request_id, payload.message[:50])

    cancelled = threading.Event()
    try:
        result = await asyncio.wait_for(
            asyncio.to_thread(
                orchestrator.run, payload.message, payload.conversation_id, cancelled=cancelled,
            ),
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
    except Exception as e:
        # The worker thread cannot be killed; tell it not to persist anything
        cancelled.set()
        # Full traceback stays in the server log; the caller gets the apology
        logger.exception("[%s] Error processing chat request", request_id)
        return _error(500, str(e) or type(e).__name__, str(uuid.uuid4()), APOLOGY_MESSAGE)

    if result.tripped:
        logger.warning("[%s] Guardrail tripped", request_id)
        reply = json.dumps(result.guardrail, ensure_ascii=False)
    else:
        reply = result.output_text or ""

    classification = result.classification.value if result.classification else None
    logger.info("[%s] Response classification: %s", request_id, classification)
    return ChatResponse(
        response=reply,
        classification=classification,
        conversation_id=payload.conversation_id or str(uuid.uuid4()),
    )

"""Pydantic schemas for the FastAPI endpoints.

Field names on the wire are camelCase (``conversationId``) for the n8n and
WhatsApp integrations that call this service.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """Incoming chat message.

    ``message`` is optional here so the route can answer a missing message
    with the documented 400 body instead of a generic validation error.
    """

    model_config = ConfigDict(populate_by_name=True)

    message: str | None = Field(None, max_length=4000, description="The user's message")
    conversation_id: str | None = Field(
        None,
        alias="conversationId",
        max_length=200,
        description="Conversation identifier for continuity across requests",
    )


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response: str = Field(..., description="The agent's reply")
    classification: str | None = Field(None, description="Intent label assigned to the message")
    conversation_id: str = Field(..., alias="conversationId")


class ErrorResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    error: str
    response: str = ""
    conversation_id: str = Field(..., alias="conversationId")


class HealthResponse(BaseModel):
    status: str = "ok"
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())

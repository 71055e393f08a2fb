"""Exceptions that end a chat request.

All of them surface at the HTTP boundary as a 500 with the fixed apology
message; recoverable conditions (remote ticket hiccups, guardrail masking)
never raise.
"""

from __future__ import annotations


class CeaAgentError(Exception):
    """Base exception for workflow failures."""

    code = "WORKFLOW_ERROR"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ClassificationError(CeaAgentError):
    """The classification agent produced no usable label."""

    code = "CLASSIFICATION_FAILED"


class AgentOutputError(CeaAgentError):
    """A specialist agent produced no text, even after fallback extraction."""

    code = "AGENT_OUTPUT_MISSING"


class ApprovalExhaustedError(AgentOutputError):
    """The approval loop gave up while the agent was still interrupted."""

    code = "APPROVAL_EXHAUSTED"


class AgentTimeoutError(CeaAgentError):
    """An agent run exceeded its wall-clock deadline."""

    code = "AGENT_TIMEOUT"

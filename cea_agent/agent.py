"""Agent definitions and wiring for the CEA Querétaro support assistant.

Architecture:
  One classification agent (cheap model, structured output) labels every
  user turn; six specialist agents (full model, bound to the backend tools)
  answer it:

    fuga        → Fugas Agent
    pagos       → Pagos Agent
    consumos    → Consumos Agent
    contrato    → Contratos Agent
    tickets     → Tickets Agent   (every tool call needs approval)
    informacion → Information Agent
    hablar_asesor → no agent: an urgent ticket is opened directly

  ``create_cea_orchestrator`` builds every collaborator once (clock, folio
  generator, backend client, ticket service, conversation store, approval
  loop) and injects them into the :class:`Orchestrator`.
"""

from __future__ import annotations

import logging

from langchain_anthropic import ChatAnthropic

from cea_agent.approval import ApprovalLoop
from cea_agent.config import (
    ANTHROPIC_API_KEY,
    APPROVAL_LOOP_TIMEOUT_SECONDS,
    CLASSIFIER_MODEL_NAME,
    LLM_MAX_RETRIES,
    LLM_TIMEOUT_SECONDS,
    MAX_APPROVAL_ROUNDS,
    MAX_CONVERSATIONS,
    MODEL_NAME,
    REFERENCE_TIMEZONE,
)
from cea_agent.models import ClassificationLabel, ClassificationResult
from cea_agent.orchestrator import Orchestrator
from cea_agent.prompts import (
    CLASSIFICATION_INSTRUCTIONS,
    CONSUMOS_INSTRUCTIONS,
    CONTRATOS_INSTRUCTIONS,
    FUGAS_INSTRUCTIONS,
    INFORMATION_INSTRUCTIONS,
    PAGOS_INSTRUCTIONS,
    TICKETS_INSTRUCTIONS,
)
from cea_agent.runner import Agent, AgentRunner
from cea_agent.services.clock import Clock
from cea_agent.services.conversation_store import ConversationStore
from cea_agent.services.folio import FolioGenerator
from cea_agent.services.guardrails import JAILBREAK, GuardrailSuite, NoopGuardrail
from cea_agent.services.tickets import TicketService
from cea_agent.services.tool_backend import ToolBackendClient, get_tool_backend
from cea_agent.tools.backend import build_backend_tools

logger = logging.getLogger(__name__)


# ── LLM builders ────────────────────────────────────────────────────


def _build_classifier_llm() -> ChatAnthropic:
    """Cheap, deterministic model for intent classification."""
    return ChatAnthropic(
        model=CLASSIFIER_MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        temperature=0.0,
        max_tokens=256,
        timeout=LLM_TIMEOUT_SECONDS,
        max_retries=LLM_MAX_RETRIES,
    )


def _build_llm() -> ChatAnthropic:
    """Primary model shared by the specialist agents."""
    return ChatAnthropic(
        model=MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        temperature=0.3,
        max_tokens=2048,
        timeout=LLM_TIMEOUT_SECONDS,
        max_retries=LLM_MAX_RETRIES,
    )


# ── Agents ──────────────────────────────────────────────────────────


def build_classification_agent() -> Agent:
    return Agent(
        name="Classification agent",
        instructions=CLASSIFICATION_INSTRUCTIONS,
        llm=_build_classifier_llm(),
        output_type=ClassificationResult,
    )


def build_specialists(tools) -> dict[ClassificationLabel, Agent]:
    """One agent per routed label; they all share the backend tools."""
    llm = _build_llm()
    tools = tuple(tools)
    return {
        ClassificationLabel.FUGA: Agent("Fugas Agent", FUGAS_INSTRUCTIONS, llm, tools),
        ClassificationLabel.PAGOS: Agent("Pagos Agent", PAGOS_INSTRUCTIONS, llm, tools),
        ClassificationLabel.CONSUMOS: Agent("Consumos Agent", CONSUMOS_INSTRUCTIONS, llm, tools),
        ClassificationLabel.CONTRATO: Agent("Contratos Agent", CONTRATOS_INSTRUCTIONS, llm, tools),
        ClassificationLabel.TICKETS: Agent(
            "Tickets Agent", TICKETS_INSTRUCTIONS, llm, tools, requires_approval=True,
        ),
        ClassificationLabel.INFORMACION: Agent(
            "Information Agent", INFORMATION_INSTRUCTIONS, llm, tools,
        ),
    }


# ── Wiring ──────────────────────────────────────────────────────────


def create_cea_orchestrator(
    *,
    backend: ToolBackendClient | None = None,
    store: ConversationStore | None = None,
    clock: Clock | None = None,
) -> Orchestrator:
    """Build the orchestrator and every collaborator it needs.

    The returned object is meant to live for the whole process: the
    conversation store and folio counters it owns are process memory.
    """
    clock = clock or Clock(REFERENCE_TIMEZONE)
    backend = backend or get_tool_backend()
    ticket_service = TicketService(backend, FolioGenerator(clock))
    tools = build_backend_tools(backend, ticket_service)

    orchestrator = Orchestrator(
        classifier=build_classification_agent(),
        specialists=build_specialists(tools),
        approval_loop=ApprovalLoop(
            AgentRunner(),
            max_rounds=MAX_APPROVAL_ROUNDS,
            timeout_seconds=APPROVAL_LOOP_TIMEOUT_SECONDS,
        ),
        ticket_service=ticket_service,
        store=store or ConversationStore(MAX_CONVERSATIONS),
        clock=clock,
        guardrails=GuardrailSuite([NoopGuardrail(JAILBREAK)]),
    )
    logger.debug(
        "CEA orchestrator ready — classifier: %s, specialists: %s, tools: %d",
        CLASSIFIER_MODEL_NAME, MODEL_NAME, len(tools),
    )
    return orchestrator

"""Classify-then-route workflow for one chat turn.

The workflow is a LangGraph StateGraph:

    guardrails → (tripped?)        → END
               → classify → (hablar_asesor?) → advisor    → END
                          → (anything else?) → specialist → END

* **guardrails** — masks and/or blocks the input before any model sees it.
* **classify** — the classification agent labels the turn; its plain text
  output is kept out of the transcript.
* **specialist** — the agent for that label answers (tool approvals are
  handled by the :class:`ApprovalLoop`).
* **advisor** — no model: opens an ``urgente`` ticket and answers with a
  fixed message carrying the folio.

The orchestrator owns history assembly: it loads the conversation, appends
the new user turn, runs the graph, and writes the resulting history back
only when the whole run succeeded.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from typing import Any

from langgraph.graph import END, StateGraph
from typing_extensions import TypedDict

from cea_agent.approval import ApprovalLoop, extract_output_text
from cea_agent.errors import (
    AgentOutputError,
    AgentTimeoutError,
    ApprovalExhaustedError,
    ClassificationError,
)
from cea_agent.models import (
    ClassificationLabel,
    ClassificationResult,
    ConversationTurn,
    TicketType,
    WorkflowOutput,
)
from cea_agent.prompts import (
    ADVISOR_RESPONSE_TEMPLATE,
    ADVISOR_TICKET_DESCRIPTION_TEMPLATE,
    ADVISOR_TICKET_TITLE,
    build_context_line,
)
from cea_agent.runner import Agent, FinalOutput
from cea_agent.services.clock import Clock
from cea_agent.services.conversation_store import ConversationStore
from cea_agent.services.guardrails import GuardrailSuite
from cea_agent.services.tickets import TicketService

logger = logging.getLogger(__name__)

PENDING_FOLIO = "PENDING"


class WorkflowState(TypedDict, total=False):
    """State flowing through the graph.

    ``history`` is replaced wholesale by each node (the guardrail node may
    rewrite user turns); every other node only ever extends it.
    """

    input_text: str
    history: list[ConversationTurn]
    classification: ClassificationLabel
    output_text: str
    guardrail_failure: dict[str, Any]


def after_guardrails(state: WorkflowState) -> str:
    return END if state.get("guardrail_failure") is not None else "classify"


def route_by_classification(state: WorkflowState) -> str:
    if state["classification"] == ClassificationLabel.HABLAR_ASESOR:
        return "advisor"
    return "specialist"


def _raise_if_cancelled(cancelled: threading.Event | None, conversation_id: str | None) -> None:
    if cancelled is not None and cancelled.is_set():
        logger.warning(
            "Request for conversation %s was abandoned; history left untouched",
            conversation_id or "<stateless>",
        )
        raise AgentTimeoutError("Request abandoned by the caller")


class Orchestrator:
    """Runs one user message through guardrails, classification and routing."""

    def __init__(
        self,
        *,
        classifier: Agent,
        specialists: Mapping[ClassificationLabel, Agent],
        approval_loop: ApprovalLoop,
        ticket_service: TicketService,
        store: ConversationStore,
        clock: Clock,
        guardrails: GuardrailSuite | None = None,
    ) -> None:
        missing = set(ClassificationLabel) - {ClassificationLabel.HABLAR_ASESOR} - set(specialists)
        if missing:
            raise ValueError(f"No specialist agent for: {', '.join(sorted(m.value for m in missing))}")

        self._classifier = classifier
        self._specialists = dict(specialists)
        self._approval_loop = approval_loop
        self._ticket_service = ticket_service
        self._store = store
        self._clock = clock
        self._guardrails = guardrails or GuardrailSuite()
        self._graph = self._build_graph()

    # ── Public API ───────────────────────────────────────────────────

    def run(
        self,
        message: str,
        conversation_id: str | None = None,
        *,
        cancelled: threading.Event | None = None,
    ) -> WorkflowOutput:
        """Answer *message*; continue *conversation_id* when given.

        Without a conversation id the request is stateless: nothing is read
        from or written to the store.  Once *cancelled* is set (the caller
        gave up waiting) the run stops at the next check and never writes
        its history back.
        """
        if not conversation_id:
            return self._run(message, None, cancelled)
        with self._store.lock(conversation_id):
            return self._run(message, conversation_id, cancelled)

    # ── Workflow ─────────────────────────────────────────────────────

    def _run(
        self,
        message: str,
        conversation_id: str | None,
        cancelled: threading.Event | None,
    ) -> WorkflowOutput:
        _raise_if_cancelled(cancelled, conversation_id)
        history = self._store.get(conversation_id) if conversation_id else []
        context = build_context_line(self._clock.now())
        history.append(ConversationTurn.user(f"{context}\n{message}"))

        state = self._graph.invoke({"input_text": message, "history": history})

        if state.get("guardrail_failure") is not None:
            return WorkflowOutput(guardrail=state["guardrail_failure"])

        _raise_if_cancelled(cancelled, conversation_id)
        if conversation_id:
            self._store.put(conversation_id, state["history"])

        logger.info(
            "Conversation %s classified as %s (%d turns)",
            conversation_id or "<stateless>", state["classification"].value, len(state["history"]),
        )
        return WorkflowOutput(
            output_text=state["output_text"],
            classification=state["classification"],
        )

    def _build_graph(self):
        graph = StateGraph(WorkflowState)

        graph.add_node("guardrails", self._guardrails_node)
        graph.add_node("classify", self._classify_node)
        graph.add_node("specialist", self._specialist_node)
        graph.add_node("advisor", self._advisor_node)

        graph.set_entry_point("guardrails")
        graph.add_conditional_edges(
            "guardrails", after_guardrails, {"classify": "classify", END: END},
        )
        graph.add_conditional_edges(
            "classify",
            route_by_classification,
            {"specialist": "specialist", "advisor": "advisor"},
        )
        graph.add_edge("specialist", END)
        graph.add_edge("advisor", END)

        return graph.compile()

    # ── Nodes ────────────────────────────────────────────────────────

    def _guardrails_node(self, state: WorkflowState) -> dict:
        outcome = self._guardrails.apply(state["input_text"], state["history"])
        update: dict[str, Any] = {"input_text": outcome.input_text, "history": outcome.history}
        if outcome.tripped:
            update["guardrail_failure"] = outcome.failure_payload
        return update

    def _classify_node(self, state: WorkflowState) -> dict:
        run = self._approval_loop.run(self._classifier, state["history"])
        result = run.result
        parsed = result.parsed if isinstance(result, FinalOutput) else None
        if not isinstance(parsed, ClassificationResult):
            raise ClassificationError("Classification agent returned no label")

        # The classifier's own text would read as a duplicate reply
        kept = [item for item in run.new_items if not item.is_plain_assistant_message]
        logger.debug("Classified as %s", parsed.classification.value)
        return {"history": state["history"] + kept, "classification": parsed.classification}

    def _specialist_node(self, state: WorkflowState) -> dict:
        agent = self._specialists[state["classification"]]
        run = self._approval_loop.run(agent, state["history"])

        output = extract_output_text(run.result)
        if output is None:
            if run.exhausted:
                raise ApprovalExhaustedError(
                    f"{agent.name} still needed approval after {run.rounds} round(s)"
                )
            raise AgentOutputError(f"{agent.name} produced no output")

        return {"history": state["history"] + run.new_items, "output_text": output}

    def _advisor_node(self, state: WorkflowState) -> dict:
        folio = PENDING_FOLIO
        try:
            result = self._ticket_service.create_ticket(
                TicketType.URGENTE,
                ADVISOR_TICKET_TITLE,
                ADVISOR_TICKET_DESCRIPTION_TEMPLATE.format(message=state["input_text"]),
            )
        except Exception:
            logger.exception("Advisor ticket creation failed")
        else:
            if result.success and result.folio:
                folio = result.folio
            else:
                logger.error("Advisor ticket not created: %s", result.error)

        output = ADVISOR_RESPONSE_TEMPLATE.format(folio=folio)
        return {
            "history": state["history"] + [ConversationTurn.assistant(output)],
            "output_text": output,
        }

"""Domain models shared by the workflow, the ticket service and the API.

Conversation turns are frozen pydantic models: once a turn is appended to a
history it never changes.  Approving a tool-call request produces a *copy*
with the same ``id`` so the approval can be correlated with the request.
"""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


def _new_turn_id() -> str:
    return f"turn_{uuid.uuid4().hex}"


# ── Conversation ─────────────────────────────────────────────────────


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_RESULT = "tool-result"
    TOOL_APPROVAL_REQUEST = "tool-approval-request"


class TextPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ToolCallPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["tool_call"] = "tool_call"
    call_id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolResultPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["tool_result"] = "tool_result"
    call_id: str
    name: str = ""
    output: str
    is_error: bool = False


ContentPart = Annotated[Union[TextPart, ToolCallPart, ToolResultPart], Field(discriminator="type")]


class ConversationTurn(BaseModel):
    """One message contributed by the user, an agent or a tool."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_turn_id)
    role: Role
    content: Union[str, list[ContentPart]] = Field(default_factory=list)
    # Only meaningful for tool-approval requests; ``None`` until resolved
    approved: bool | None = None

    # ── Constructors ─────────────────────────────────────────────────

    @classmethod
    def user(cls, text: str) -> ConversationTurn:
        return cls(role=Role.USER, content=[TextPart(text=text)])

    @classmethod
    def assistant(cls, text: str) -> ConversationTurn:
        return cls(role=Role.ASSISTANT, content=[TextPart(text=text)])

    # ── Views ────────────────────────────────────────────────────────

    @property
    def parts(self) -> list[TextPart | ToolCallPart | ToolResultPart]:
        if isinstance(self.content, str):
            return [TextPart(text=self.content)]
        return list(self.content)

    @property
    def text(self) -> str:
        """Concatenated text of the turn (plain string or text parts)."""
        if isinstance(self.content, str):
            return self.content
        return "".join(p.text for p in self.content if isinstance(p, TextPart))

    @property
    def tool_calls(self) -> list[ToolCallPart]:
        return [p for p in self.parts if isinstance(p, ToolCallPart)]

    @property
    def tool_results(self) -> list[ToolResultPart]:
        return [p for p in self.parts if isinstance(p, ToolResultPart)]

    @property
    def is_plain_assistant_message(self) -> bool:
        """An assistant message carrying text only (no tool calls)."""
        return self.role is Role.ASSISTANT and not self.tool_calls

    @property
    def is_tool_call_request(self) -> bool:
        return self.role is Role.TOOL_APPROVAL_REQUEST and bool(self.tool_calls)

    def approve(self) -> ConversationTurn:
        """Return the approved copy of a tool-call approval request."""
        if not self.is_tool_call_request:
            raise ValueError(f"Turn {self.id} is not a tool-call approval request")
        return self.model_copy(update={"approved": True})

    def with_text(self, text: str) -> ConversationTurn:
        """Return a copy whose text parts are replaced by *text* (same id)."""
        if isinstance(self.content, str):
            return self.model_copy(update={"content": text})
        parts = [p.model_copy(update={"text": text}) if isinstance(p, TextPart) else p for p in self.content]
        return self.model_copy(update={"content": parts})


# ── Classification ───────────────────────────────────────────────────


class ClassificationLabel(str, Enum):
    FUGA = "fuga"
    PAGOS = "pagos"
    HABLAR_ASESOR = "hablar_asesor"
    INFORMACION = "informacion"
    CONSUMOS = "consumos"
    CONTRATO = "contrato"
    TICKETS = "tickets"


class ClassificationResult(BaseModel):
    """Structured output of the classification agent."""

    classification: ClassificationLabel = Field(
        ..., description="The single intent category of the user's latest message",
    )


# ── Tickets ──────────────────────────────────────────────────────────


class TicketType(str, Enum):
    FUGA = "fuga"
    ACLARACIONES = "aclaraciones"
    PAGOS = "pagos"
    LECTURAS = "lecturas"
    REVISION_RECIBO = "revision_recibo"
    RECIBO_DIGITAL = "recibo_digital"
    URGENTE = "urgente"


class TicketRecord(BaseModel):
    """One support case as sent to the remote ticket system."""

    service_type: TicketType
    title: str
    description: str
    contract_number: str | None = None
    email: str | None = None
    location: str | None = None
    status: str = "open"
    folio: str


class TicketCreationResult(BaseModel):
    success: bool
    message: str
    folio: str | None = None
    error: str | None = None
    # Set only when the remote system issued its own folio
    remote_folio: str | None = None
    record: TicketRecord | None = None


# ── Workflow ─────────────────────────────────────────────────────────


class WorkflowOutput(BaseModel):
    """Result of one orchestrator run."""

    output_text: str | None = None
    classification: ClassificationLabel | None = None
    # Structured failure payload when a guardrail tripped
    guardrail: dict[str, Any] | None = None

    @property
    def tripped(self) -> bool:
        return self.guardrail is not None

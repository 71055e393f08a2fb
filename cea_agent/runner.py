"""One agent invocation over a conversation history.

An :class:`Agent` is a chat model plus instructions, optional tools and an
optional structured output type.  :class:`AgentRunner` translates the
conversation turns to LangChain messages, calls the model, runs tools, and
reports one of three outcomes:

* :class:`FinalOutput` — the model answered (text, or a parsed object for
  structured-output agents).
* :class:`Interruption` — the model asked for tools on an agent whose tool
  calls need approval; one ``tool-approval-request`` turn per call is
  pending.
* :class:`Failure` — the model kept calling tools past ``max_turns``.

Every result carries ``new_items``: the turns produced during the run, in
order, ready to be appended to the history.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Union

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_core.tools import BaseTool
from pydantic import BaseModel

from cea_agent.models import ConversationTurn, Role, TextPart, ToolCallPart, ToolResultPart
from cea_agent.services.metrics import metrics

logger = logging.getLogger(__name__)

MAX_MODEL_TURNS = 10

_NOT_EXECUTED = "This tool call was not executed because it was not approved."


@dataclass(frozen=True)
class Agent:
    name: str
    instructions: str
    llm: BaseChatModel
    tools: tuple[BaseTool, ...] = ()
    # Every tool call must be approved before it runs
    requires_approval: bool = False
    output_type: type[BaseModel] | None = None


# ── Results ──────────────────────────────────────────────────────────


@dataclass
class FinalOutput:
    text: str
    new_items: list[ConversationTurn] = field(default_factory=list)
    parsed: BaseModel | None = None


@dataclass
class Interruption:
    pending: list[ConversationTurn]
    new_items: list[ConversationTurn] = field(default_factory=list)


@dataclass
class Failure:
    reason: str
    new_items: list[ConversationTurn] = field(default_factory=list)


AgentResult = Union[FinalOutput, Interruption, Failure]


# ── Message translation ──────────────────────────────────────────────


def _content_text(content: Any) -> str:
    """Text of a LangChain message content (string or content blocks)."""
    if isinstance(content, str):
        return content
    chunks = []
    for block in content or []:
        if isinstance(block, str):
            chunks.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            chunks.append(block.get("text", ""))
    return "".join(chunks)


def to_langchain_messages(history: Sequence[ConversationTurn]) -> list[BaseMessage]:
    """Translate turns to the message list a chat model expects.

    Each tool result is placed right after the assistant message that issued
    the call; calls without a result (never approved) get an error result.
    Approval requests are bookkeeping and never reach the model.
    """
    results = {part.call_id: part for turn in history for part in turn.tool_results}

    messages: list[BaseMessage] = []
    for turn in history:
        if turn.role is Role.USER:
            messages.append(HumanMessage(content=turn.text))
        elif turn.role is Role.ASSISTANT:
            calls = turn.tool_calls
            messages.append(
                AIMessage(
                    content=turn.text,
                    tool_calls=[{"name": c.name, "args": c.arguments, "id": c.call_id} for c in calls],
                )
            )
            for call in calls:
                part = results.get(call.call_id)
                if part is None:
                    messages.append(
                        ToolMessage(content=_NOT_EXECUTED, tool_call_id=call.call_id, status="error")
                    )
                else:
                    messages.append(
                        ToolMessage(
                            content=part.output,
                            tool_call_id=part.call_id,
                            status="error" if part.is_error else "success",
                        )
                    )
    return messages


def turn_from_ai_message(message: AIMessage) -> ConversationTurn:
    parts: list[TextPart | ToolCallPart] = []
    text = _content_text(message.content)
    if text:
        parts.append(TextPart(text=text))
    for call in message.tool_calls or []:
        parts.append(ToolCallPart(call_id=call["id"], name=call["name"], arguments=call.get("args") or {}))
    return ConversationTurn(role=Role.ASSISTANT, content=parts)


# ── Runner ───────────────────────────────────────────────────────────


class AgentRunner:
    """Runs agents; stateless apart from its configuration."""

    def __init__(self, max_turns: int = MAX_MODEL_TURNS) -> None:
        self._max_turns = max_turns

    def run(self, agent: Agent, history: Sequence[ConversationTurn]) -> AgentResult:
        tools_by_name = {t.name: t for t in agent.tools}
        new_items = self._resolve_approved_calls(tools_by_name, history)

        if agent.output_type is not None:
            return self._run_structured(agent, history, new_items)

        model = agent.llm.bind_tools(list(agent.tools)) if agent.tools else agent.llm
        for _ in range(self._max_turns):
            messages = [SystemMessage(content=agent.instructions)]
            messages += to_langchain_messages([*history, *new_items])
            response = self._invoke(agent, model, messages)

            turn = turn_from_ai_message(response)
            new_items.append(turn)
            if not turn.tool_calls:
                return FinalOutput(text=turn.text, new_items=new_items)

            if agent.requires_approval:
                pending = [
                    ConversationTurn(role=Role.TOOL_APPROVAL_REQUEST, content=[call])
                    for call in turn.tool_calls
                ]
                new_items.extend(pending)
                logger.debug(
                    "%s requested approval for %s",
                    agent.name, ", ".join(c.name for c in turn.tool_calls),
                )
                return Interruption(pending=pending, new_items=new_items)

            new_items.extend(self._execute(tools_by_name, call) for call in turn.tool_calls)

        logger.warning("%s exceeded %d model turns", agent.name, self._max_turns)
        return Failure(reason=f"{agent.name} exceeded {self._max_turns} model turns", new_items=new_items)

    # ── Internal ──────────────────────────────────────────────────────

    def _run_structured(
        self,
        agent: Agent,
        history: Sequence[ConversationTurn],
        new_items: list[ConversationTurn],
    ) -> AgentResult:
        model = agent.llm.with_structured_output(agent.output_type)
        messages = [SystemMessage(content=agent.instructions)]
        messages += to_langchain_messages([*history, *new_items])
        parsed = self._invoke(agent, model, messages)
        if parsed is None:
            return Failure(reason=f"{agent.name} returned no structured output", new_items=new_items)

        text = parsed.model_dump_json()
        new_items.append(ConversationTurn.assistant(text))
        return FinalOutput(text=text, parsed=parsed, new_items=new_items)

    def _resolve_approved_calls(
        self,
        tools_by_name: dict[str, BaseTool],
        history: Sequence[ConversationTurn],
    ) -> list[ConversationTurn]:
        """Run approved tool calls from *history* that have no result yet."""
        resolved = {part.call_id for turn in history for part in turn.tool_results}
        approved = [
            call
            for turn in history
            if turn.role is Role.TOOL_APPROVAL_REQUEST and turn.approved
            for call in turn.tool_calls
            if call.call_id not in resolved
        ]
        return [self._execute(tools_by_name, call) for call in approved]

    @staticmethod
    def _execute(tools_by_name: dict[str, BaseTool], call: ToolCallPart) -> ConversationTurn:
        tool = tools_by_name.get(call.name)
        is_error = False
        if tool is None:
            output = f"Error: {call.name} is not a valid tool."
            is_error = True
        else:
            try:
                output = str(tool.invoke(call.arguments))
            except Exception as exc:
                # The model sees the failure and can recover, like ToolNode does
                logger.exception("Tool %s failed", call.name)
                output = f"Error: {exc!r}"
                is_error = True

        return ConversationTurn(
            role=Role.TOOL_RESULT,
            content=[ToolResultPart(call_id=call.call_id, name=call.name, output=output, is_error=is_error)],
        )

    @staticmethod
    def _invoke(agent: Agent, model: Any, messages: list[BaseMessage]) -> Any:
        t0 = time.perf_counter()
        try:
            response = model.invoke(messages)
        except Exception as exc:
            metrics.record_call(
                "anthropic", agent.name,
                latency_ms=(time.perf_counter() - t0) * 1000,
                error_type=type(exc).__name__,
            )
            raise
        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_call("anthropic", agent.name, latency_ms=elapsed)
        logger.debug("%s responded in %.0fms", agent.name, elapsed)
        return response
